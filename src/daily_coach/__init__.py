"""daily-coach: expert coordination engine for daily training sessions."""

__version__ = "0.3.0"
