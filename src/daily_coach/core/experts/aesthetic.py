"""
Aesthetic expert.

Picks accessories from the focus matrix (V-taper, glutes, toned,
functional) and keeps them within the 30% aesthetic share of the session.
"""

import math
from dataclasses import replace

from ..catalog import get_focus
from ..config import (
    AESTHETIC_DEFAULT_FOCUS,
    AESTHETIC_READINESS_CUTOFF,
    AESTHETIC_VOLUME_MULTIPLIER,
    AESTHETIC_VOLUME_SHARE,
    SIMPLE_MODE_ACCESSORIES,
)
from ..models import Abstained, Block, Context, Exercise, Proposal, Readiness
from .base import Expert, fit_all


def reduce_for_readiness(exercise: Exercise) -> Exercise:
    """Scale accessory sets by the shared low-readiness multiplier (at least 1 set)."""
    sets = max(1, math.floor(exercise.sets * AESTHETIC_VOLUME_MULTIPLIER))
    return replace(exercise, sets=sets)


def fit_minutes(exercises: list[Exercise], budget: float) -> list[Exercise]:
    """Take exercises in order until *budget* minutes run out, trimming sets to fit."""
    out: list[Exercise] = []
    used = 0.0
    for e in exercises:
        remaining = budget - used
        if e.estimated_minutes <= remaining:
            out.append(e)
            used += e.estimated_minutes
            continue
        sets = int(remaining // e.minutes_per_set)
        if sets >= 1:
            out.append(replace(e, sets=sets))
            used += sets * e.minutes_per_set
    return out


class AestheticExpert(Expert):
    """Accessory work for the athlete's chosen look."""

    name = "aesthetic"

    def propose(self, context: Context, readiness: Readiness) -> Proposal | Abstained:
        requested = context.preferences.aesthetic_focus
        if not requested:
            return self.abstain("No aesthetic focus selected")

        notes: list[str] = []
        focus = get_focus(requested)
        if focus is None:
            focus = get_focus(AESTHETIC_DEFAULT_FOCUS)
            notes.append(f"Unknown focus {requested!r}; using {AESTHETIC_DEFAULT_FOCUS} accessories")
        notes.append(focus.tooltip)

        reduced = readiness.score <= AESTHETIC_READINESS_CUTOFF
        picks = list(focus.primary)
        if context.preferences.training_mode == "simple":
            picks = picks[:SIMPLE_MODE_ACCESSORIES]
        elif not reduced:
            picks += list(focus.secondary)

        selected = list(fit_all(picks, context.constraints))
        if reduced:
            selected = [reduce_for_readiness(e) for e in selected]
            notes.append(
                f"Readiness {readiness.score}/10: accessory volume x{AESTHETIC_VOLUME_MULTIPLIER:g}, "
                "secondary accessories dropped"
            )

        budget = context.preferences.session_length * AESTHETIC_VOLUME_SHARE
        selected = fit_minutes(selected, budget)
        if not selected:
            return self.abstain("No accessory fits the equipment and time share")

        return Proposal(
            expert=self.name,
            blocks=(Block("accessory", tuple(selected)),),
            volume_multiplier=AESTHETIC_VOLUME_MULTIPLIER if reduced else 1.0,
            notes=tuple(notes),
        )
