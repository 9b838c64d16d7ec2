"""
The five domain experts.

Each expert is a small stateless object with a ``propose(context, readiness)``
method; default_experts() builds a fresh set for one Coordinator.
"""

from .aesthetic import AestheticExpert
from .base import Expert, run_expert
from .recovery import RecoveryExpert
from .schedule import ScheduleExpert
from .strength import StrengthExpert
from .time_budget import TimeBudgetExpert


def default_experts() -> list[Expert]:
    """One instance of every expert, in priority order."""
    return [
        ScheduleExpert(),
        RecoveryExpert(),
        StrengthExpert(),
        AestheticExpert(),
        TimeBudgetExpert(),
    ]


__all__ = [
    "AestheticExpert",
    "Expert",
    "RecoveryExpert",
    "ScheduleExpert",
    "StrengthExpert",
    "TimeBudgetExpert",
    "default_experts",
    "run_expert",
]
