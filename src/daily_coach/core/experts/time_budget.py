"""
Time-constraint expert.

The expert itself only publishes today's budget.  plan_trims() does the
real work for the resolver: it walks a fixed removal order against the
projected session until the merged duration fits.

Removal order:
    1. conditioning blocks
    2. secondary accessories
    3. accessory sets trimmed to the accessory floor
    4. remaining accessories
    5. recovery / cool-down blocks
    6. secondary main lifts
    7. main-lift sets trimmed toward the main-set floor
    8. main lifts other than the primary one

Warm-up is never touched and the primary main lift always survives.
"""

from typing import Iterator, Sequence

from ..config import round_half_up
from ..directives import DEFAULT_FLOORS, DoseFloors, apply_directives, by_priority, merged_minutes
from ..models import Abstained, Context, Proposal, Readiness, ResolutionDirective
from .base import Expert


class TimeBudgetExpert(Expert):
    """Publishes the hard time limit as an advisory budget."""

    name = "time"

    def propose(self, context: Context, readiness: Readiness) -> Proposal | Abstained:
        limit = context.constraints.time_limit
        if limit is None:
            return self.abstain("No time limit")
        return Proposal(
            expert=self.name,
            budget_minutes=limit,
            notes=(f"Time limit: {limit:g} min",),
        )


def _directive(
    expert: str,
    category: str,
    action: str,
    reason: str,
    exercise: str | None = None,
    factor: float = 1.0,
) -> ResolutionDirective:
    return ResolutionDirective(
        target_expert=expert,
        target_category=category,
        action=action,
        reason=reason,
        factor=factor,
        target_exercise=exercise,
        dimension="volume",
        detector="time_overflow",
    )


def _primary_main(proposals: Sequence[Proposal]) -> tuple[str, str] | None:
    """(expert, exercise name) of the first main lift in priority order."""
    for p in by_priority(proposals):
        block = p.block("main")
        if block is not None and block.exercises:
            return p.expert, block.exercises[0].name.lower()
    return None


def _candidates(
    proposals: list[Proposal], budget: float, floors: DoseFloors
) -> Iterator[ResolutionDirective]:
    """Yield trim directives in removal order, lowest-priority expert first."""
    ordered = list(reversed(by_priority(proposals)))
    cap = f"Time limit {budget:g} min"

    for p in ordered:
        if p.block("conditioning") is not None:
            yield _directive(p.expert, "conditioning", "suppress", f"{cap}: dropped conditioning")

    for p in ordered:
        block = p.block("accessory")
        for e in reversed(block.exercises if block else ()):
            if e.secondary:
                yield _directive(p.expert, "accessory", "suppress", f"{cap}: dropped {e.name}", e.name)

    for p in ordered:
        block = p.block("accessory")
        for e in reversed(block.exercises if block else ()):
            if e.sets > floors.min_accessory_sets:
                yield _directive(
                    p.expert, "accessory", "scale",
                    f"{cap}: {e.name} trimmed to {floors.min_accessory_sets} set(s)",
                    e.name, floors.min_accessory_sets / e.sets,
                )

    for p in ordered:
        if p.block("accessory") is not None:
            yield _directive(p.expert, "accessory", "suppress", f"{cap}: dropped accessories")

    for p in ordered:
        if p.block("recovery") is not None:
            yield _directive(p.expert, "recovery", "suppress", f"{cap}: dropped cool-down")

    primary = _primary_main(proposals)
    for p in ordered:
        block = p.block("main")
        for e in reversed(block.exercises if block else ()):
            if e.secondary and (p.expert, e.name.lower()) != primary:
                yield _directive(p.expert, "main", "suppress", f"{cap}: dropped {e.name}", e.name)


def _trim_main_sets(
    proposals: list[Proposal],
    accepted: list[ResolutionDirective],
    budget: float,
    floors: DoseFloors,
) -> None:
    """Take main-lift sets one at a time, largest prescription first."""
    originals = {
        (p.expert, e.name.lower()): e
        for p in proposals
        for e in (p.block("main").exercises if p.block("main") else ())
    }
    exhausted: set[tuple[str, str]] = set()
    while True:
        projected = apply_directives(proposals, accepted, floors)
        if merged_minutes(projected) <= budget:
            return
        best = None
        for p in by_priority(projected):
            block = p.block("main")
            for e in block.exercises if block else ():
                key = (p.expert, e.name.lower())
                original = originals.get(key)
                if original is None or key in exhausted:
                    continue
                floor = max(
                    min(original.sets, floors.min_main_sets),
                    round_half_up(original.sets * floors.min_volume_fraction),
                )
                if e.sets > floor and (best is None or e.sets >= best[1].sets):
                    best = (p.expert, e, original)
        if best is None:
            return

        expert, exercise, original = best
        target = exercise.sets - 1
        directive = _directive(
            expert, "main", "scale",
            f"Time limit {budget:g} min: {exercise.name} reduced to {target} sets",
            exercise.name, target / original.sets,
        )
        before = list(accepted)
        accepted[:] = [d for d in accepted if d.key != directive.key] + [directive]
        if apply_directives(proposals, accepted, floors) == projected:
            accepted[:] = before
            exhausted.add((expert, exercise.name.lower()))


def plan_trims(
    proposals: Sequence[Proposal],
    budget: float,
    floors: DoseFloors = DEFAULT_FLOORS,
) -> list[ResolutionDirective]:
    """
    Directives that bring the merged session within *budget* minutes.

    Args:
        proposals: Proposals as projected so far by the resolver
        budget: Minutes available
        floors: Dose floors used when projecting trims

    Returns:
        Directives in removal order; empty when the session already fits.
        The result may still overflow when warm-up plus the primary lift
        alone exceed the budget.
    """
    proposals = list(proposals)
    accepted: list[ResolutionDirective] = []

    def minutes() -> float:
        return merged_minutes(apply_directives(proposals, accepted, floors))

    if minutes() <= budget:
        return []

    for directive in _candidates(proposals, budget, floors):
        if minutes() <= budget:
            return accepted
        if directive.action == "suppress" and directive.target_exercise is None:
            accepted = [d for d in accepted if d.block_key != directive.block_key]
        accepted.append(directive)

    if minutes() > budget:
        _trim_main_sets(proposals, accepted, budget, floors)

    primary = _primary_main(proposals)
    if minutes() > budget and primary is not None:
        for p in reversed(by_priority(proposals)):
            block = p.block("main")
            for e in reversed(block.exercises if block else ()):
                if minutes() <= budget:
                    return accepted
                if (p.expert, e.name.lower()) == primary:
                    continue
                accepted = [
                    d for d in accepted
                    if not (d.key == (p.expert, "main", e.name.lower()))
                ]
                accepted.append(
                    _directive(p.expert, "main", "suppress",
                               f"Time limit {budget:g} min: dropped {e.name}", e.name)
                )
    return accepted
