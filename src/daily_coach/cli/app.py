"""Shared Typer app object, shared option types, and store/context utilities."""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from ..core.models import Context
from ..io.plan_store import FileStore, get_default_store
from ..io.serializers import ValidationError, dict_to_context
from ..logger import setup_logger
from . import views

# Shared --context option type used by the planning commands
ContextOption = Annotated[
    Path,
    typer.Option("--context", "-c", help="Path to a JSON planning context"),
]

# Shared --store option type; omitted means ~/.daily-coach
StoreOption = Annotated[
    Optional[Path],
    typer.Option("--store", "-s", help="Directory holding plans and history (default: ~/.daily-coach)"),
]

JsonOption = Annotated[
    bool,
    typer.Option("--json", "-j", help="Output as JSON for machine processing"),
]

app = typer.Typer(
    name="daily-coach",
    help="Daily workout planner: one safe session from strength, recovery, schedule, aesthetic and time advice.",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Console log level (DEBUG, INFO, WARNING, ERROR)"),
    ] = "WARNING",
    log_file: Annotated[
        Optional[Path],
        typer.Option("--log-file", help="Also write a debug log to this file"),
    ] = None,
) -> None:
    """
    daily-coach: plan today's training session.
    """
    setup_logger(level=log_level.upper(), log_file=log_file)


def get_store(store_path: Path | None) -> FileStore:
    """Get a FileStore from path or the default location."""
    if store_path is None:
        return get_default_store()
    return FileStore(store_path)


def load_context(path: Path) -> Context:
    """
    Read a planning context from a JSON file, exiting with an error message
    when the file is missing or invalid.
    """
    try:
        with open(path, "r") as f:
            data = json.load(f)
        return dict_to_context(data)
    except FileNotFoundError:
        views.print_error(f"Context file not found: {path}")
        raise typer.Exit(1)
    except json.JSONDecodeError as e:
        views.print_error(f"Context file is not valid JSON: {e}")
        raise typer.Exit(1)
    except ValidationError as e:
        views.print_error(f"Invalid context: {e}")
        raise typer.Exit(1)
