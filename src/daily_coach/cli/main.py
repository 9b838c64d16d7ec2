"""
CLI entry point using Typer.

Provides commands for daily planning:
- plan: Build today's session from a context file
- replan: Rebuild it with coach-chat adjustments
- readiness: Show today's readiness and its reasons
- init: Create the local store
- log-session: Log a completed session
- history: Display stored plans and sessions
"""

from .app import app
from .commands import planning, sessions  # noqa: F401  (registers commands)

__all__ = ["app"]


if __name__ == "__main__":
    app()
