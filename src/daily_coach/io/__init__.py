"""Adapters for storage, auth and remote persistence."""
