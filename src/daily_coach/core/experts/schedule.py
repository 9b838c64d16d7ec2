"""
Sport-schedule / safety expert.

Two pure helpers, injury_exclusions() and game_proximity(), describe what
today's schedule and injury flags forbid.  The resolver calls them
directly so the safety rules hold even if this expert fails; the expert
itself contributes the low-impact replacement block for game eve.
"""

from dataclasses import dataclass

from loguru import logger

from ..catalog import CATALOG, InjuryProfile, get_injury
from ..config import GAME_LIGHTEN_DAYS, GAME_SUPPRESS_DAYS
from ..models import (
    INJURY_SUFFIXES,
    Abstained,
    Block,
    Constraints,
    Context,
    Exercise,
    Game,
    Proposal,
    Readiness,
)
from .base import Expert, fit_all


@dataclass(frozen=True)
class Exclusion:
    """One forbidden name/pattern substring and its vetted substitute."""

    pattern: str
    label: str
    alternative: Exercise | None = None

    def matches(self, exercise: Exercise) -> bool:
        return exercise.matches(self.pattern)


def _profile_for(flag: str) -> InjuryProfile | None:
    """Catalog profile for *flag*; knee_injury falls back to knee_pain and vice versa."""
    candidates = [flag]
    for suffix in INJURY_SUFFIXES:
        if flag.endswith(suffix):
            base = flag[: -len(suffix)]
            candidates += [base + other for other in INJURY_SUFFIXES if other != suffix]
    for candidate in candidates:
        profile = get_injury(candidate)
        if profile is not None:
            return profile
    return None


def injury_exclusions(context: Context) -> list[Exclusion]:
    """Exclusions from open injury flags plus coach-chat exclude requests."""
    out: list[Exclusion] = []
    for flag in context.constraints.injury_flags:
        profile = _profile_for(flag)
        if profile is None:
            logger.warning(f"no exclusion profile for injury flag {flag!r}")
            continue
        for pattern in profile.excluded:
            out.append(Exclusion(pattern, profile.label, profile.alternatives.get(pattern)))
    for name in context.constraints.excluded_names:
        out.append(Exclusion(name.lower(), "excluded on request"))
    return out


def first_exclusion(exercise: Exercise, exclusions: list[Exclusion]) -> Exclusion | None:
    for exclusion in exclusions:
        if exclusion.matches(exercise):
            return exclusion
    return None


def safe_alternative(
    exercise: Exercise,
    exclusions: list[Exclusion],
    constraints: Constraints,
    taken: set[str],
) -> Exercise | None:
    """
    First vetted substitute for *exercise* that is itself allowed.

    A substitute is rejected when any exclusion matches it, its equipment
    is missing, or its name is already in *taken* (lowercase names).
    """
    for exclusion in exclusions:
        alternative = exclusion.alternative
        if alternative is None or not exclusion.matches(exercise):
            continue
        if first_exclusion(alternative, exclusions) is not None:
            continue
        if not constraints.has_equipment(alternative.equipment):
            continue
        if alternative.name.lower() in taken:
            continue
        return alternative
    return None


@dataclass(frozen=True)
class GameWindow:
    """The nearest game close enough to change today's session."""

    days: int
    game: Game

    @property
    def suppresses_heavy_legs(self) -> bool:
        return self.game.importance == "high" and self.days <= GAME_SUPPRESS_DAYS

    @property
    def when(self) -> str:
        if self.days == 0:
            return "today"
        if self.days == 1:
            return "tomorrow"
        return f"in {self.days} days"


def game_proximity(context: Context) -> GameWindow | None:
    """Nearest game within GAME_LIGHTEN_DAYS; high importance wins a same-day tie."""
    window = None
    for days, game in context.future_games():
        if days > GAME_LIGHTEN_DAYS:
            break
        candidate = GameWindow(days, game)
        if window is None:
            window = candidate
        elif candidate.days == window.days and candidate.suppresses_heavy_legs:
            window = candidate
    return window


def is_heavy_leg_work(exercise: Exercise) -> bool:
    return exercise.leg_dominant and exercise.is_high_intensity


class ScheduleExpert(Expert):
    """Game-eve replacement work and injury awareness."""

    name = "schedule"

    def propose(self, context: Context, readiness: Readiness) -> Proposal | Abstained:
        window = game_proximity(context)
        exclusions = injury_exclusions(context)
        if window is None and not exclusions:
            return self.abstain("No game within two days and no injury flags")

        blocks: list[Block] = []
        notes: list[str] = []
        if window is not None and window.suppresses_heavy_legs:
            safe = tuple(
                e for e in fit_all(CATALOG.game_day, context.constraints)
                if first_exclusion(e, exclusions) is None
            )
            if safe:
                blocks.append(Block("main", safe))
            notes.append(f"High-importance game {window.when}: low-impact upper-body work")
        elif window is not None:
            notes.append(f"Game {window.when}: leg work lightened")

        labels = sorted({e.label for e in exclusions})
        if labels:
            notes.append(f"Avoiding aggravating movements: {', '.join(labels)}")

        return Proposal(expert=self.name, blocks=tuple(blocks), notes=tuple(notes))
