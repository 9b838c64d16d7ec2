"""
Error taxonomy for the planning pipeline.

Only FallbackFailure (a defect in code that must never fail) and
PlanningCancelled (the caller walked away) ever reach the caller of
plan_today().  Everything else is recovered inside the pipeline.
"""


class PlanningError(Exception):
    """Base class for planning errors."""


class ExpertFailure(PlanningError):
    """An expert raised or returned malformed data; recovered as an abstention."""

    def __init__(self, expert: str, reason: str):
        super().__init__(f"{expert}: {reason}")
        self.expert = expert
        self.reason = reason


class ResolutionAmbiguity(PlanningError):
    """Two directives of equal precedence addressed the same target."""


class AssemblyFailure(PlanningError):
    """The merged plan failed validation; recovered by the fallback library."""


class FallbackFailure(PlanningError):
    """The fallback library itself failed.  Critical: propagate to the caller."""


class PlanningCancelled(PlanningError):
    """The caller cancelled an in-flight planning call."""
