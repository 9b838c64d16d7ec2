"""
CLI view formatters using Rich for pretty console output.

Handles table formatting and display of plans, readiness and history.
"""

from rich.console import Console
from rich.table import Table

from ..core.models import Block, Plan, Readiness, SessionRecord

console = Console()

_CATEGORY_LABELS = {
    "warm-up": "Warm-up",
    "main": "Main",
    "accessory": "Accessory",
    "conditioning": "Conditioning",
    "recovery": "Cool-down",
}


def _fmt_load(exercise) -> str:
    if exercise.load_kg is not None:
        return f"{exercise.load_kg:g} kg"
    if exercise.load_pct is not None:
        return f"{exercise.load_pct:.0%}"
    return "-"


def _fmt_rpe(value: float | None) -> str:
    return f"{value:g}" if value is not None else "-"


def format_block_table(block: Block) -> Table:
    """
    Create a Rich table for one workout block.

    Args:
        block: Block to display

    Returns:
        Rich Table object
    """
    title = _CATEGORY_LABELS.get(block.category, block.category)
    if block.intensity_multiplier != 1.0:
        title += f"  (intensity x{block.intensity_multiplier:g})"
    table = Table(title=title, title_justify="left", show_header=True, header_style="dim")

    table.add_column("Exercise", style="cyan")
    table.add_column("Sets", justify="right", style="bold")
    table.add_column("Reps")
    table.add_column("RPE", justify="right")
    table.add_column("Load", justify="right")
    table.add_column("Min", justify="right", style="dim")

    for e in block.exercises:
        table.add_row(
            e.name,
            str(e.sets),
            e.reps,
            _fmt_rpe(e.target_rpe),
            _fmt_load(e),
            f"{e.estimated_minutes:g}",
        )
    return table


def print_plan(plan: Plan) -> None:
    """
    Print a plan: blocks, duration, rationale and warnings.

    Args:
        plan: Plan to display
    """
    console.print()
    if plan.is_fallback:
        console.print("[bold yellow]Safe fallback session[/bold yellow]")
    else:
        console.print("[bold]Today's session[/bold]")

    for block in plan.blocks:
        if block.exercises:
            console.print(format_block_table(block))

    console.print(f"Estimated duration: [bold]{plan.total_estimated_duration:g} min[/bold]")
    if plan.source_experts:
        console.print(f"[dim]Experts: {', '.join(plan.source_experts)}[/dim]")

    if plan.rationale:
        console.print()
        console.print("[bold]Why[/bold]")
        for line in plan.rationale:
            console.print(f"  - {line}")

    for warning in plan.warnings:
        print_warning(warning)
    console.print()


def print_readiness(readiness: Readiness) -> None:
    """Print today's readiness score and where it came from."""
    color = "green" if readiness.score >= 8 else "yellow" if readiness.score >= 5 else "red"
    source = "inferred" if readiness.inferred else "check-in"
    console.print(f"Readiness: [bold {color}]{readiness.score}/10[/bold {color}] ({source})")
    console.print(f"[dim]{readiness.rationale}[/dim]")


def format_plan_history_table(plans: list[tuple[str, dict]]) -> Table:
    """
    Create a Rich table of stored plans.

    Args:
        plans: (date, plan dict) pairs as returned by FileStore.list_plans

    Returns:
        Rich Table object
    """
    table = Table(title="Stored Plans")

    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Date", style="cyan")
    table.add_column("Readiness", justify="right")
    table.add_column("Main work")
    table.add_column("Min", justify="right")
    table.add_column("Fallback", justify="center")

    for i, (date, data) in enumerate(plans, 1):
        main = next((b for b in data.get("blocks", []) if b.get("category") == "main"), None)
        names = ", ".join(e.get("name", "?") for e in (main or {}).get("exercises", []))
        readiness = data.get("readiness") or {}
        table.add_row(
            str(i),
            date,
            str(readiness.get("score", "-")),
            names or "-",
            f"{data.get('total_estimated_duration', 0):g}",
            "yes" if data.get("is_fallback") else "",
        )
    return table


def format_session_table(sessions: list[SessionRecord]) -> Table:
    """
    Create a Rich table displaying logged sessions.

    Args:
        sessions: Sessions to display

    Returns:
        Rich Table object
    """
    table = Table(title="Training History")

    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Date", style="cyan")
    table.add_column("Exercises")
    table.add_column("Sets", justify="right")
    table.add_column("RPE", justify="right", style="bold")

    for i, session in enumerate(sessions, 1):
        rpe = session.session_rpe
        table.add_row(
            str(i),
            session.date,
            ", ".join(e.name for e in session.exercises) or "-",
            str(session.total_sets),
            f"{rpe:.1f}" if rpe is not None else "-",
        )
    return table


def print_history(plans: list[tuple[str, dict]], sessions: list[SessionRecord]) -> None:
    """
    Print stored plans and logged sessions.

    Args:
        plans: Stored plans, oldest first
        sessions: Logged sessions, oldest first
    """
    if not plans and not sessions:
        console.print("[yellow]No plans or sessions recorded yet.[/yellow]")
        return
    if plans:
        console.print(format_plan_history_table(plans))
    if sessions:
        console.print(format_session_table(sessions))


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]Error: {message}[/red]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]Warning: {message}[/yellow]")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]{message}[/blue]")
