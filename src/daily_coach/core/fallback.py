"""
Fallback plan library.

Hardcoded, low-impact bodyweight sessions used when the pipeline cannot
produce a valid plan.  Nothing here reads the catalog, the filesystem or
any other lookup that could be missing: the only inputs are the training
mode and time limit, and an unknown mode gets the simple session.
"""

from loguru import logger

from .config import TIME_TOLERANCE
from .errors import FallbackFailure
from .models import Block, Context, Exercise, Plan

_WARM_UP = (
    Exercise("General Mobility", sets=1, reps="4 min", target_rpe=2, pattern="mobility", minutes_per_set=4.0),
    Exercise("Arm Circles", sets=1, reps="20", target_rpe=2, pattern="mobility", minutes_per_set=1.0),
)

_SIMPLE_MAIN = (
    Exercise("Glute Bridge", sets=2, reps="12", target_rpe=5, pattern="bridge", minutes_per_set=2.0),
    Exercise("Incline Push-Up", sets=2, reps="10", target_rpe=5, pattern="horizontal_push", minutes_per_set=2.0),
    Exercise("Dead Bug", sets=2, reps="8 each side", target_rpe=4, pattern="core", minutes_per_set=2.0),
)

_ADVANCED_MAIN = _SIMPLE_MAIN + (
    Exercise("Bird Dog", sets=2, reps="8 each side", target_rpe=4, pattern="core", minutes_per_set=2.0),
    Exercise("Side Plank", sets=2, reps="30s each side", target_rpe=5, pattern="core", minutes_per_set=2.0),
)

_SIMPLE_COOL_DOWN = (
    Exercise("Box Breathing", sets=1, reps="3 min", target_rpe=1, pattern="breathing", minutes_per_set=3.0),
)

_ADVANCED_COOL_DOWN = _SIMPLE_COOL_DOWN + (
    Exercise("Child's Pose", sets=1, reps="2 min", target_rpe=1, pattern="mobility", minutes_per_set=2.0),
)

_SESSIONS = {
    "simple": (_WARM_UP, _SIMPLE_MAIN, _SIMPLE_COOL_DOWN),        # 20 min
    "advanced": (_WARM_UP, _ADVANCED_MAIN, _ADVANCED_COOL_DOWN),  # 30 min
}

FALLBACK_RATIONALE = "Using a safe full-body bodyweight session"


def build_fallback_plan(training_mode: str, reason: str | None = None) -> Plan:
    """
    Build the constant fallback session for *training_mode*.

    Raises:
        FallbackFailure: If the constant session cannot be built
    """
    try:
        warm_up, main, cool_down = _SESSIONS.get(training_mode, _SESSIONS["simple"])
        blocks = (
            Block("warm-up", warm_up),
            Block("main", main),
            Block("recovery", cool_down),
        )
        rationale = [FALLBACK_RATIONALE]
        if reason:
            rationale.append(reason)
        plan = Plan(
            blocks=blocks,
            total_estimated_duration=sum(b.estimated_minutes for b in blocks),
            rationale=tuple(rationale),
            is_fallback=True,
        )
    except Exception as exc:
        logger.critical(f"fallback plan construction failed: {exc!r}")
        raise FallbackFailure(f"fallback plan construction failed: {exc}") from exc

    if not plan.has_main_work:
        logger.critical("fallback plan has no main-block exercises")
        raise FallbackFailure("fallback plan has no main-block exercises")
    return plan


def _session_minutes(mode: str) -> float:
    return sum(e.sets * e.minutes_per_set for part in _SESSIONS[mode] for e in part)


def get_fallback_plan(context: Context | None = None, reason: str | None = None) -> Plan:
    """
    Fallback plan keyed on the context's training mode (simple when unknown).

    An advanced session that cannot fit the context's time limit gives way
    to the shorter simple session.
    """
    try:
        mode = context.preferences.training_mode if context is not None else "simple"
        limit = context.constraints.time_limit if context is not None else None
    except AttributeError:
        mode, limit = "simple", None
    if (
        mode in _SESSIONS
        and limit is not None
        and _session_minutes(mode) > limit * (1.0 + TIME_TOLERANCE)
    ):
        mode = "simple"
    return build_fallback_plan(mode, reason)
