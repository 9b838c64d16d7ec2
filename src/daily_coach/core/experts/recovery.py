"""Recovery expert: readiness-driven recovery sessions and scale-downs."""

from dataclasses import replace

from ..catalog import CATALOG
from ..config import MODERATE_READINESS_MAX, MODERATE_SCALE, RECOVERY_INTENSITY, RECOVERY_READINESS_MAX
from ..models import Abstained, Block, Context, Exercise, Proposal, Readiness
from .base import Expert, fit_all

RECOVERY_SESSION_NOTE = f"Low readiness (≤{RECOVERY_READINESS_MAX}) triggers recovery session."


def moderate_note(score: int) -> str:
    return f"Moderate readiness ({score}/10): volume and intensity x{MODERATE_SCALE:g}"


def _recovery_block(category: str, exercises: tuple[Exercise, ...]) -> Block:
    eased = tuple(replace(e, intensity=RECOVERY_INTENSITY) for e in exercises)
    return Block(category, eased, RECOVERY_INTENSITY)


class RecoveryExpert(Expert):
    """
    Readiness at or below 4 gets a dominant recovery-only session at half
    intensity; 5..7 gets an advisory 0.9x scale-down; 8+ abstains.
    """

    name = "recovery"

    def propose(self, context: Context, readiness: Readiness) -> Proposal | Abstained:
        score = readiness.score
        constraints = context.constraints

        if score <= RECOVERY_READINESS_MAX:
            blocks = (
                _recovery_block("warm-up", fit_all(CATALOG.recovery_warm_up, constraints)),
                _recovery_block("main", fit_all(CATALOG.recovery_main, constraints)),
                _recovery_block("recovery", fit_all(CATALOG.recovery_cool_down, constraints)),
            )
            return Proposal(
                expert=self.name,
                blocks=tuple(b for b in blocks if not b.is_empty),
                intensity_multiplier=RECOVERY_INTENSITY,
                dominant=True,
                notes=(RECOVERY_SESSION_NOTE,),
            )

        if score <= MODERATE_READINESS_MAX:
            return Proposal(
                expert=self.name,
                volume_multiplier=MODERATE_SCALE,
                intensity_multiplier=MODERATE_SCALE,
                notes=(moderate_note(score),),
            )

        return self.abstain(f"Readiness {score}/10: no recovery adjustment needed")
