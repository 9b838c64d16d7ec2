"""
Shared expert contract and the single error boundary around it.

Every expert implements ``propose(context, readiness)`` and returns either
a Proposal or Abstained.  run_expert() is the only place expert code is
invoked: it turns exceptions and malformed results into Failed outcomes so
nothing an expert does can escape into the planning pipeline.
"""

from loguru import logger

from ..catalog import equipment_alternative
from ..config import CATEGORY_ORDER
from ..errors import ExpertFailure
from ..models import (
    Abstained,
    Block,
    Constraints,
    Context,
    Exercise,
    ExpertOutcome,
    Failed,
    Proposal,
    Readiness,
)


class Expert:
    """Base class for proposal generators.  Subclasses set ``name``."""

    name: str = "expert"

    def propose(self, context: Context, readiness: Readiness) -> Proposal | Abstained:
        raise NotImplementedError

    def abstain(self, reason: str) -> Abstained:
        return Abstained(expert=self.name, reason=reason)


def fit_equipment(exercise: Exercise, constraints: Constraints) -> Exercise | None:
    """Return *exercise*, its catalog substitute, or None when neither can be done."""
    if constraints.has_equipment(exercise.equipment):
        return exercise
    alternative = equipment_alternative(exercise)
    if alternative is not None and constraints.has_equipment(alternative.equipment):
        return alternative
    return None


def fit_all(exercises, constraints: Constraints) -> tuple[Exercise, ...]:
    fitted = (fit_equipment(e, constraints) for e in exercises)
    return tuple(e for e in fitted if e is not None)


def _check_multiplier(expert: str, label: str, value: object) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not (0 < value <= 1.5):
        raise ExpertFailure(expert, f"{label} out of range: {value!r}")


def validate_proposal(result: object, expert: str) -> ExpertOutcome:
    """
    Check an expert's return value and normalize it to an ExpertOutcome.

    Args:
        result: Whatever the expert returned
        expert: Name the expert was registered under

    Returns:
        The validated Proposal or Abstained.  A proposal with neither
        exercises nor advisory content is returned as Abstained.

    Raises:
        ExpertFailure: If the value is not a well-formed outcome
    """
    if isinstance(result, Abstained):
        return result if result.expert == expert else Abstained(expert, result.reason)
    if not isinstance(result, Proposal):
        raise ExpertFailure(expert, f"returned {type(result).__name__} instead of an outcome")
    if result.expert != expert:
        raise ExpertFailure(expert, f"proposal labelled as {result.expert!r}")

    seen: set[str] = set()
    for block in result.blocks:
        if not isinstance(block, Block):
            raise ExpertFailure(expert, f"block of type {type(block).__name__}")
        if block.category not in CATEGORY_ORDER:
            raise ExpertFailure(expert, f"unknown block category {block.category!r}")
        if block.category in seen:
            raise ExpertFailure(expert, f"duplicate {block.category} block")
        seen.add(block.category)
        for exercise in block.exercises:
            if not isinstance(exercise, Exercise):
                raise ExpertFailure(expert, f"exercise of type {type(exercise).__name__}")
            if not isinstance(exercise.sets, int) or exercise.sets < 1:
                raise ExpertFailure(expert, f"{exercise.name}: invalid set count {exercise.sets!r}")

    _check_multiplier(expert, "volume_multiplier", result.volume_multiplier)
    _check_multiplier(expert, "intensity_multiplier", result.intensity_multiplier)
    if result.budget_minutes is not None and result.budget_minutes <= 0:
        raise ExpertFailure(expert, f"non-positive time budget {result.budget_minutes!r}")

    if result.is_advisory:
        has_advice = (
            result.budget_minutes is not None
            or result.volume_multiplier != 1.0
            or result.intensity_multiplier != 1.0
            or bool(result.notes)
        )
        if not has_advice:
            return Abstained(expert, "empty proposal")
    return result


def run_expert(expert: Expert, context: Context, readiness: Readiness) -> ExpertOutcome:
    """
    Invoke one expert behind the error boundary.

    Never raises for anything the expert does; failures come back as
    Failed(expert, reason) and are logged with the expert's name.
    """
    name = getattr(expert, "name", type(expert).__name__)
    try:
        result = expert.propose(context, readiness)
        return validate_proposal(result, name)
    except ExpertFailure as exc:
        logger.warning(f"expert {name} returned malformed data: {exc.reason}")
        return Failed(expert=name, reason=exc.reason)
    except Exception as exc:
        logger.opt(exception=exc).warning(f"expert {name} raised {type(exc).__name__}: {exc}")
        return Failed(expert=name, reason=f"{type(exc).__name__}: {exc}")
