"""
Strength / progression expert.

Builds the session skeleton from the season-phase template: warm-up, main
lifts, conditioning and cool-down.  Main lifts are progressed from the
athlete's last logged RPE on the same movement, and every fourth week is a
deload week at 80% volume.
"""

from dataclasses import replace

from ..catalog import CATALOG, get_program
from ..config import (
    DELOAD_EVERY_WEEKS,
    DELOAD_VOLUME_FACTOR,
    LOAD_DECREMENT,
    LOAD_FLOOR_FRACTION,
    LOAD_INCREMENT_LARGE,
    LOAD_INCREMENT_SMALL,
    MAX_CUMULATIVE_LOAD_REDUCTION,
    PLATE_ROUNDING_KG,
    PROGRESSION_RPE_HIGH,
    PROGRESSION_RPE_LOW,
    PROGRESSION_RPE_VERY_LOW,
    round_half_up,
)
from ..directives import block_intensity
from ..models import (
    Abstained,
    Block,
    Context,
    Exercise,
    LoggedExercise,
    Proposal,
    Readiness,
    SessionRecord,
)
from .base import Expert, fit_all

PHASE_LABELS = {
    "off": "Off-season",
    "pre": "Pre-season",
    "in": "In-season",
    "post": "Post-season",
}


def is_deload_week(week_number: int) -> bool:
    """Every DELOAD_EVERY_WEEKS-th week of the cycle is a deload week."""
    return week_number > 0 and week_number % DELOAD_EVERY_WEEKS == 0


def _attempts(name: str, history: tuple[SessionRecord, ...]) -> list[LoggedExercise]:
    """Logged attempts of *name* with an RPE, oldest first."""
    key = name.lower()
    return [
        ex
        for session in history
        for ex in session.exercises
        if ex.name.lower() == key and ex.rpe is not None
    ]


def progression_factor(name: str, history: tuple[SessionRecord, ...]) -> tuple[float, str | None]:
    """
    Load multiplier for the next attempt of *name*.

    RPE above 8 on the previous attempt takes 5% off; consecutive hard
    attempts compound, but the total reduction is capped at 15% and the
    result never drops below LOAD_FLOOR_FRACTION of the prescription.
    RPE below 5 adds the large increment, below 6 the small one.

    Returns:
        (factor, note) where note is None when the load is unchanged
    """
    attempts = _attempts(name, history)
    if not attempts:
        return 1.0, None

    last_rpe = attempts[-1].rpe
    if last_rpe > PROGRESSION_RPE_HIGH:
        hard = 0
        for attempt in reversed(attempts):
            if attempt.rpe <= PROGRESSION_RPE_HIGH:
                break
            hard += 1
        reduction = min(LOAD_DECREMENT * hard, MAX_CUMULATIVE_LOAD_REDUCTION)
        factor = max(1.0 - reduction, LOAD_FLOOR_FRACTION)
        return factor, f"{name}: last RPE {last_rpe:g}, load -{reduction:.0%}"
    if last_rpe < PROGRESSION_RPE_VERY_LOW:
        return 1.0 + LOAD_INCREMENT_LARGE, f"{name}: last RPE {last_rpe:g}, load +{LOAD_INCREMENT_LARGE:.0%}"
    if last_rpe < PROGRESSION_RPE_LOW:
        return 1.0 + LOAD_INCREMENT_SMALL, f"{name}: last RPE {last_rpe:g}, load +{LOAD_INCREMENT_SMALL:.1%}"
    return 1.0, None


def _last_load(name: str, history: tuple[SessionRecord, ...]) -> float | None:
    key = name.lower()
    for session in reversed(history):
        for ex in session.exercises:
            if ex.name.lower() == key and ex.load_kg:
                return ex.load_kg
    return None


def progress_lift(lift: Exercise, history: tuple[SessionRecord, ...]) -> tuple[Exercise, str | None]:
    """Apply the progression factor to one main lift."""
    factor, note = progression_factor(lift.name, history)
    last_load = _last_load(lift.name, history)
    load_kg = None
    if last_load is not None:
        load_kg = round(last_load * factor / PLATE_ROUNDING_KG) * PLATE_ROUNDING_KG
    if factor == 1.0 and load_kg is None:
        return lift, note
    load_pct = min(1.0, round(lift.load_pct * factor, 4)) if lift.load_pct else lift.load_pct
    return (
        replace(lift, load_pct=load_pct, load_kg=load_kg, intensity=min(1.5, round(factor, 4))),
        note,
    )


class StrengthExpert(Expert):
    """Season-phase strength template with RPE-driven progression."""

    name = "strength"

    def propose(self, context: Context, readiness: Readiness) -> Proposal | Abstained:
        program = get_program(context.season_phase)
        constraints = context.constraints
        simple = context.preferences.training_mode == "simple"

        lifts = program.main
        if simple:
            lifts = tuple(e for e in lifts if not e.secondary)[:2]

        notes = [f"{PHASE_LABELS[program.phase]} focus: {program.emphasis}"]
        main: list[Exercise] = []
        for lift in fit_all(lifts, constraints):
            lift, note = progress_lift(lift, context.history)
            main.append(lift)
            if note:
                notes.append(note)
        if not main:
            return self.abstain("No main lift fits the available equipment")

        conditioning = list(fit_all(program.conditioning, constraints))

        volume = 1.0
        if is_deload_week(context.week_number):
            volume = DELOAD_VOLUME_FACTOR
            main = [replace(e, sets=max(1, round_half_up(e.sets * volume))) for e in main]
            conditioning = [
                replace(e, sets=max(1, round_half_up(e.sets * volume))) for e in conditioning
            ]
            notes.append(f"Deload week: -{1 - DELOAD_VOLUME_FACTOR:.0%} volume")

        blocks = [
            Block("warm-up", fit_all(CATALOG.warm_up, constraints)),
            Block("main", tuple(main), block_intensity(main)),
        ]
        if conditioning:
            blocks.append(Block("conditioning", tuple(conditioning)))
        if not simple:
            blocks.append(Block("recovery", fit_all(CATALOG.cool_down, constraints)))

        return Proposal(
            expert=self.name,
            blocks=tuple(b for b in blocks if not b.is_empty),
            volume_multiplier=volume,
            notes=tuple(notes),
        )
