"""Planning commands: plan, replan and readiness."""

import json
from dataclasses import replace
from typing import Annotated, Optional

import typer

from ...core.engine.config_loader import _deep_merge, load_coordinator_settings
from ...core.errors import FallbackFailure
from ...core.models import Plan
from ...core.pipeline import Coordinator
from ...core.readiness import get_readiness
from ...io.serializers import ValidationError, parse_assignment, plan_to_dict
from .. import views
from ..app import ContextOption, JsonOption, StoreOption, app, get_store, load_context

NoSaveOption = Annotated[
    bool,
    typer.Option("--no-save", help="Do not store the plan"),
]


def _coordinator(store_path, no_save: bool) -> Coordinator:
    """Coordinator that reads history from the store and saves plans unless *no_save*."""
    store = get_store(store_path)
    settings = load_coordinator_settings()
    if no_save:
        settings = replace(settings, persist_plans=False)
    return Coordinator(storage=store, auth=store, settings=settings)


def _show(plan: Plan, json_out: bool) -> None:
    if json_out:
        typer.echo(json.dumps(plan_to_dict(plan), indent=2))
    else:
        views.print_plan(plan)


@app.command()
def plan(
    context_path: ContextOption,
    store_path: StoreOption = None,
    json_out: JsonOption = False,
    no_save: NoSaveOption = False,
) -> None:
    """
    Build today's session from a planning context.

    History is read from the store when the context file has none, and the
    finished plan is saved there unless --no-save is given.
    """
    context = load_context(context_path)
    coordinator = _coordinator(store_path, no_save)
    try:
        result = coordinator.plan_today(context)
    except FallbackFailure as e:
        views.print_error(f"Planner is broken, no plan available: {e}")
        raise typer.Exit(2)
    finally:
        coordinator.close()
    _show(result, json_out)


@app.command()
def replan(
    context_path: ContextOption,
    too_hard: Annotated[
        bool,
        typer.Option("--too-hard", help="Today feels too hard: lower readiness by 2"),
    ] = False,
    less_time: Annotated[
        Optional[float],
        typer.Option("--less-time", "-t", help="Minutes available now"),
    ] = None,
    overrides: Annotated[
        Optional[list[str]],
        typer.Option("--set", help="Context override as dotted.key=value (repeatable)"),
    ] = None,
    store_path: StoreOption = None,
    json_out: JsonOption = False,
    no_save: NoSaveOption = False,
) -> None:
    """
    Rebuild today's session with adjustments.

    Examples:
        daily-coach replan -c today.json --too-hard
        daily-coach replan -c today.json --less-time 25
        daily-coach replan -c today.json --set preferences.aesthetic_focus=glutes
    """
    context = load_context(context_path)

    modifications: dict = {}
    try:
        for text in overrides or []:
            modifications = _deep_merge(modifications, parse_assignment(text))
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)
    if too_hard:
        modifications["too_hard"] = True
    if less_time is not None:
        modifications["less_time"] = less_time

    coordinator = _coordinator(store_path, no_save)
    try:
        result = coordinator.replan(context, modifications)
    except FallbackFailure as e:
        views.print_error(f"Planner is broken, no plan available: {e}")
        raise typer.Exit(2)
    finally:
        coordinator.close()
    _show(result, json_out)


@app.command()
def readiness(
    context_path: ContextOption,
    json_out: JsonOption = False,
) -> None:
    """
    Show today's readiness score and the signals behind it.
    """
    context = load_context(context_path)
    result = get_readiness(context)
    if json_out:
        typer.echo(
            json.dumps(
                {"score": result.score, "inferred": result.inferred, "rationale": result.rationale},
                indent=2,
            )
        )
        return
    views.print_readiness(result)
