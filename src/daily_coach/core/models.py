"""
Data models for daily-coach.

Everything the coordinator consumes (the planning Context) and everything it
produces (expert outcomes, conflicts, directives, the final Plan) is a frozen
dataclass.  Context objects are validated once on construction so the
experts can assume well-formed input.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import date as _date
from datetime import datetime
from typing import Any, Literal

from .config import (
    CATEGORY_ORDER,
    DEFAULT_MINUTES_PER_SET,
    GAME_IMPORTANCE,
    HIGH_INTENSITY_LOAD_PCT,
    HIGH_INTENSITY_RPE,
    READINESS_MAX,
    READINESS_MIN,
    SEASON_PHASES,
    TRAINING_MODES,
)

Category = Literal["warm-up", "main", "accessory", "conditioning", "recovery"]
SeasonPhase = Literal["off", "pre", "in", "post"]
TrainingMode = Literal["simple", "advanced"]
Importance = Literal["low", "normal", "high"]
ConflictKind = Literal[
    "injury_exclusion",
    "game_proximity",
    "readiness_override",
    "time_overflow",
    "aesthetic_performance_split",
    "volume_spike",
]
Severity = Literal["block", "scale", "warn"]
DirectiveAction = Literal["suppress", "scale", "replace"]
ScaleDimension = Literal["volume", "intensity", "both"]

INJURY_SUFFIXES = ("_pain", "_injury")


def _validate_date(date_str: str) -> None:
    """Validate date string is ISO format YYYY-MM-DD."""
    if not isinstance(date_str, str) or not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        raise ValueError(f"Invalid date format: {date_str!r}. Expected YYYY-MM-DD")
    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(f"Invalid date: {date_str}") from e


def days_between(start: str, end: str) -> int:
    """Whole days from *start* to *end* (negative when end is earlier)."""
    d0 = datetime.strptime(start, "%Y-%m-%d")
    d1 = datetime.strptime(end, "%Y-%m-%d")
    return (d1 - d0).days


# =============================================================================
# Context (planning input)
# =============================================================================


@dataclass(frozen=True)
class UserProfile:
    """Athlete identity and anthropometrics."""

    user_id: str = ""
    sport: str = ""
    position: str = ""
    height_cm: float | None = None
    weight_kg: float | None = None

    def __post_init__(self) -> None:
        if self.height_cm is not None and self.height_cm <= 0:
            raise ValueError("height_cm must be positive")
        if self.weight_kg is not None and self.weight_kg <= 0:
            raise ValueError("weight_kg must be positive")


@dataclass(frozen=True)
class Game:
    """A scheduled competition."""

    date: str
    importance: Importance = "normal"
    opponent: str = ""

    def __post_init__(self) -> None:
        _validate_date(self.date)
        if self.importance not in GAME_IMPORTANCE:
            raise ValueError(f"Invalid game importance: {self.importance!r}")


@dataclass(frozen=True)
class Schedule:
    """Sport calendar as seen from today."""

    upcoming_games: tuple[Game, ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.upcoming_games, key=lambda g: g.date))
        object.__setattr__(self, "upcoming_games", ordered)


@dataclass(frozen=True)
class LoggedExercise:
    """One exercise as it was performed in a past session."""

    name: str
    sets: int = 0
    reps: int = 0
    rpe: float | None = None
    load_kg: float | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("LoggedExercise.name must be non-empty")
        if self.sets < 0 or self.reps < 0:
            raise ValueError("sets and reps must be non-negative")
        if self.rpe is not None and not (0 <= self.rpe <= 10):
            raise ValueError(f"rpe must be within 0..10, got {self.rpe}")
        if self.load_kg is not None and self.load_kg < 0:
            raise ValueError("load_kg must be non-negative")


@dataclass(frozen=True)
class SessionRecord:
    """
    A completed training session from history.

    ``rpe`` is the session RPE when the athlete logged one; otherwise the
    mean of the per-exercise RPEs is used.
    """

    date: str
    exercises: tuple[LoggedExercise, ...] = ()
    rpe: float | None = None

    def __post_init__(self) -> None:
        _validate_date(self.date)
        if self.rpe is not None and not (0 <= self.rpe <= 10):
            raise ValueError(f"rpe must be within 0..10, got {self.rpe}")

    @property
    def session_rpe(self) -> float | None:
        if self.rpe is not None:
            return self.rpe
        rated = [e.rpe for e in self.exercises if e.rpe is not None]
        if not rated:
            return None
        return sum(rated) / len(rated)

    @property
    def total_sets(self) -> int:
        return sum(e.sets for e in self.exercises)


@dataclass(frozen=True)
class ExternalActivity:
    """Training done outside the app (synced run, team practice, ...)."""

    date: str
    kind: str = ""
    minutes: float = 0.0

    def __post_init__(self) -> None:
        _validate_date(self.date)
        if self.minutes < 0:
            raise ValueError("minutes must be non-negative")


@dataclass(frozen=True)
class Preferences:
    """User-selected programming preferences."""

    aesthetic_focus: str | None = None
    training_mode: TrainingMode = "advanced"
    available_days: int = 3
    session_length: float = 60.0

    def __post_init__(self) -> None:
        if self.training_mode not in TRAINING_MODES:
            raise ValueError(
                f"Invalid training_mode: {self.training_mode!r}. Must be 'simple' or 'advanced'."
            )
        if not (1 <= self.available_days <= 7):
            raise ValueError("available_days must be within 1..7")
        if self.session_length <= 0:
            raise ValueError("session_length must be positive")


@dataclass(frozen=True)
class Constraints:
    """
    Hard limits for today's session.

    ``equipment`` empty means a fully equipped gym.  ``flags`` holds markers
    such as ``knee_pain``; flags ending in ``_pain`` or ``_injury`` are
    treated as open injuries.  ``overrides`` carries coach-chat requests,
    currently ``{"exclude": [exercise names]}``.
    """

    time_limit: float | None = None
    equipment: tuple[str, ...] = ()
    flags: tuple[str, ...] = ()
    overrides: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.time_limit is not None and self.time_limit <= 0:
            raise ValueError("time_limit must be positive")

    @property
    def injury_flags(self) -> tuple[str, ...]:
        return tuple(f for f in self.flags if f.endswith(INJURY_SUFFIXES))

    @property
    def excluded_names(self) -> tuple[str, ...]:
        raw = self.overrides.get("exclude") or ()
        return tuple(str(n) for n in raw if n)

    def has_equipment(self, item: str) -> bool:
        if not self.equipment or item == "bodyweight":
            return True
        return item in self.equipment


@dataclass(frozen=True)
class Context:
    """
    Complete, immutable input for one planning call.

    ``readiness`` is whatever the daily check-in produced; values outside
    1..10 (or non-integers) are treated as "no check-in" by the readiness
    provider rather than rejected here.  History is stored oldest first.
    """

    profile: UserProfile = field(default_factory=UserProfile)
    season_phase: SeasonPhase = "off"
    schedule: Schedule = field(default_factory=Schedule)
    history: tuple[SessionRecord, ...] = ()
    readiness: Any = None
    preferences: Preferences = field(default_factory=Preferences)
    constraints: Constraints = field(default_factory=Constraints)
    external_activities: tuple[ExternalActivity, ...] = ()
    week_number: int = 1
    today: str = field(default_factory=lambda: _date.today().isoformat())

    def __post_init__(self) -> None:
        _validate_date(self.today)
        if self.season_phase not in SEASON_PHASES:
            raise ValueError(f"Invalid season_phase: {self.season_phase!r}")
        if self.week_number < 1:
            raise ValueError("week_number must be >= 1")
        object.__setattr__(
            self, "history", tuple(sorted(self.history, key=lambda s: s.date))
        )

    @property
    def last_session(self) -> SessionRecord | None:
        return self.history[-1] if self.history else None

    def days_until(self, date_str: str) -> int:
        return days_between(self.today, date_str)

    def future_games(self) -> list[tuple[int, Game]]:
        """Upcoming games (today included) as (days_until, game), soonest first."""
        out = []
        for game in self.schedule.upcoming_games:
            days = self.days_until(game.date)
            if days >= 0:
                out.append((days, game))
        return out


# =============================================================================
# Workout structure
# =============================================================================


@dataclass(frozen=True)
class Exercise:
    """
    One prescribed exercise.

    ``intensity`` is the multiplier already applied to the prescription
    (1.0 = as programmed, 0.5 = recovery pace).  ``secondary`` marks work
    that is dropped first when time or readiness is short.
    """

    name: str
    sets: int
    reps: str = "8-10"
    target_rpe: float | None = None
    load_pct: float | None = None
    load_kg: float | None = None
    equipment: str = "bodyweight"
    pattern: str = ""
    leg_dominant: bool = False
    minutes_per_set: float = DEFAULT_MINUTES_PER_SET
    intensity: float = 1.0
    secondary: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Exercise.name must be non-empty")
        if self.sets < 1:
            raise ValueError(f"{self.name}: sets must be >= 1, got {self.sets}")
        if self.minutes_per_set <= 0:
            raise ValueError(f"{self.name}: minutes_per_set must be positive")
        if not (0 < self.intensity <= 1.5):
            raise ValueError(f"{self.name}: intensity must be within (0, 1.5]")
        if self.load_pct is not None and not (0 < self.load_pct <= 1.0):
            raise ValueError(f"{self.name}: load_pct must be within (0, 1]")

    @property
    def estimated_minutes(self) -> float:
        return self.sets * self.minutes_per_set

    @property
    def is_high_intensity(self) -> bool:
        if self.target_rpe is not None and self.target_rpe >= HIGH_INTENSITY_RPE:
            return True
        return self.load_pct is not None and self.load_pct >= HIGH_INTENSITY_LOAD_PCT

    def matches(self, needle: str) -> bool:
        """Case-insensitive substring match on name or movement pattern."""
        needle = needle.lower()
        return needle in self.name.lower() or (bool(self.pattern) and needle in self.pattern.lower())


@dataclass(frozen=True)
class Block:
    """A named phase of the workout."""

    category: Category
    exercises: tuple[Exercise, ...] = ()
    intensity_multiplier: float = 1.0

    def __post_init__(self) -> None:
        if self.category not in CATEGORY_ORDER:
            raise ValueError(f"Invalid block category: {self.category!r}")

    @property
    def estimated_minutes(self) -> float:
        return sum(e.estimated_minutes for e in self.exercises)

    @property
    def total_sets(self) -> int:
        return sum(e.sets for e in self.exercises)

    @property
    def is_empty(self) -> bool:
        return not self.exercises

    @property
    def is_high_intensity(self) -> bool:
        return any(e.is_high_intensity for e in self.exercises)


# =============================================================================
# Expert outcomes
# =============================================================================


@dataclass(frozen=True)
class Abstained:
    """The expert has no opinion about today."""

    expert: str
    reason: str = ""


@dataclass(frozen=True)
class Failed:
    """The expert crashed, timed out or returned something unusable."""

    expert: str
    reason: str


@dataclass(frozen=True)
class Proposal:
    """
    A populated expert opinion.

    A proposal without blocks is advisory: it only carries multipliers
    (recovery) or a time budget (time constraint).
    """

    expert: str
    blocks: tuple[Block, ...] = ()
    volume_multiplier: float = 1.0
    intensity_multiplier: float = 1.0
    dominant: bool = False
    budget_minutes: float | None = None
    notes: tuple[str, ...] = ()

    @property
    def is_advisory(self) -> bool:
        return not any(b.exercises for b in self.blocks)

    def block(self, category: str) -> Block | None:
        for b in self.blocks:
            if b.category == category:
                return b
        return None

    @property
    def total_sets(self) -> int:
        return sum(b.total_sets for b in self.blocks)

    @property
    def estimated_minutes(self) -> float:
        return sum(b.estimated_minutes for b in self.blocks)


ExpertOutcome = Proposal | Abstained | Failed


# =============================================================================
# Conflicts and directives
# =============================================================================


@dataclass(frozen=True)
class Conflict:
    """A detected clash between proposal content and the context."""

    kind: ConflictKind
    severity: Severity
    message: str
    expert: str | None = None
    category: str | None = None
    exercise: str | None = None


_PRECEDENCE = {"suppress": 3, "replace": 2, "scale": 1}


@dataclass(frozen=True)
class ResolutionDirective:
    """
    Instruction to suppress, scale or replace part of one proposal.

    With ``target_exercise`` unset the directive addresses the whole block.
    ``dimension`` says whether a scale touches sets, load or both.
    """

    target_expert: str
    target_category: Category
    action: DirectiveAction
    reason: str
    factor: float = 1.0
    replacement: Exercise | None = None
    target_exercise: str | None = None
    dimension: ScaleDimension = "both"
    detector: str = ""

    def __post_init__(self) -> None:
        if self.action not in _PRECEDENCE:
            raise ValueError(f"Invalid directive action: {self.action!r}")
        if self.target_category not in CATEGORY_ORDER:
            raise ValueError(f"Invalid directive category: {self.target_category!r}")
        if self.action == "scale" and not (0 < self.factor <= 1.0):
            raise ValueError(f"scale factor must be within (0, 1], got {self.factor}")
        if self.action == "replace" and (self.replacement is None or not self.target_exercise):
            raise ValueError("replace directives need target_exercise and replacement")
        if self.dimension not in ("volume", "intensity", "both"):
            raise ValueError(f"Invalid scale dimension: {self.dimension!r}")

    @property
    def key(self) -> tuple[str, str, str | None]:
        name = self.target_exercise.lower() if self.target_exercise else None
        return (self.target_expert, self.target_category, name)

    @property
    def block_key(self) -> tuple[str, str]:
        return (self.target_expert, self.target_category)

    @property
    def precedence(self) -> int:
        return _PRECEDENCE[self.action]

    def same_effect(self, other: "ResolutionDirective") -> bool:
        return (
            self.key == other.key
            and self.action == other.action
            and self.factor == other.factor
            and self.dimension == other.dimension
            and self.replacement == other.replacement
        )


@dataclass(frozen=True)
class Resolution:
    """Resolver output: accepted directives plus everything needed for the rationale."""

    directives: tuple[ResolutionDirective, ...] = ()
    superseded: tuple[ResolutionDirective, ...] = ()
    conflicts: tuple[Conflict, ...] = ()
    ambiguities: tuple[str, ...] = ()

    @property
    def warnings(self) -> tuple[str, ...]:
        return tuple(c.message for c in self.conflicts if c.severity == "warn")


# =============================================================================
# Output
# =============================================================================


@dataclass(frozen=True)
class Readiness:
    """Normalized readiness for today."""

    score: int
    inferred: bool
    rationale: str

    def __post_init__(self) -> None:
        if not (READINESS_MIN <= self.score <= READINESS_MAX):
            raise ValueError(f"readiness score must be within 1..10, got {self.score}")


@dataclass(frozen=True)
class Plan:
    """
    The assembled session handed to rendering and persistence.

    A non-fallback plan always holds at least one main-block exercise.
    """

    blocks: tuple[Block, ...]
    total_estimated_duration: float
    rationale: tuple[str, ...]
    is_fallback: bool
    source_experts: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    readiness: Readiness | None = None

    def block(self, category: str) -> Block | None:
        for b in self.blocks:
            if b.category == category:
                return b
        return None

    @property
    def main_block(self) -> Block | None:
        return self.block("main")

    @property
    def has_main_work(self) -> bool:
        main = self.main_block
        return main is not None and not main.is_empty

    @property
    def exercise_names(self) -> list[str]:
        return [e.name for b in self.blocks for e in b.exercises]

    def with_rationale(self, *lines: str) -> "Plan":
        return replace(self, rationale=self.rationale + tuple(lines))
