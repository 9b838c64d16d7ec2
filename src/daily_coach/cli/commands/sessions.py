"""Session commands: init, log-session and history."""

from datetime import datetime
from typing import Annotated, Optional

import typer

from ...core.models import SessionRecord
from ...io.serializers import ValidationError, parse_logged_exercise, validate_date
from .. import views
from ..app import StoreOption, app, get_store


@app.command()
def init(
    user_id: Annotated[
        str,
        typer.Option("--user", "-u", help="Local user id used to scope history and plans"),
    ],
    store_path: StoreOption = None,
) -> None:
    """
    Create the local store and record the current user.
    """
    store = get_store(store_path)
    store.init(user_id)
    views.print_success(f"Store ready at {store.root} for user {user_id}")


@app.command("log-session")
def log_session(
    exercises: Annotated[
        list[str],
        typer.Option(
            "--exercise", "-e",
            help="Name:sets:reps[:rpe[:load_kg]] (repeatable), e.g. 'Back Squat:5:5:8:100'",
        ),
    ],
    date: Annotated[
        Optional[str],
        typer.Option("--date", "-d", help="Session date YYYY-MM-DD (default: today)"),
    ] = None,
    rpe: Annotated[
        Optional[float],
        typer.Option("--rpe", "-r", help="Session RPE 0-10"),
    ] = None,
    store_path: StoreOption = None,
) -> None:
    """
    Log a completed session so later plans can progress from it.
    """
    store = get_store(store_path)
    user_id = store.get_current_user_id()
    if user_id is None:
        views.print_error(f"No user recorded in {store.root}")
        views.print_info("Run 'init --user <id>' first.")
        raise typer.Exit(1)

    try:
        session_date = validate_date(date) if date else datetime.now().strftime("%Y-%m-%d")
        logged = tuple(parse_logged_exercise(text) for text in exercises)
        session = SessionRecord(date=session_date, exercises=logged, rpe=rpe)
    except (ValidationError, ValueError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    store.append_session(session, user_id)
    views.print_success(
        f"Logged {session.date}: {len(logged)} exercise(s), {session.total_sets} sets"
    )


@app.command()
def history(
    store_path: StoreOption = None,
    all_users: Annotated[
        bool,
        typer.Option("--all", help="Show every user's plans and sessions"),
    ] = False,
) -> None:
    """
    Show stored plans and logged sessions.
    """
    store = get_store(store_path)
    if not store.exists():
        views.print_error(f"Store not found: {store.root}")
        views.print_info("Run 'init --user <id>' first.")
        raise typer.Exit(1)

    user_id = None if all_users else store.get_current_user_id()
    try:
        sessions = [
            s for owner, s in store.load_history()
            if user_id is None or not owner or owner == user_id
        ]
    except ValidationError as e:
        views.print_error(f"Invalid data: {e}")
        raise typer.Exit(1)

    views.print_history(store.list_plans(user_id), sessions)
