"""
Conflict resolver.

Detectors run in a fixed priority order:

    1. injury exclusion       (block: replace with a vetted alternative or suppress)
    2. game proximity         (block: suppress heavy legs / scale: lighten legs)
    3. readiness override     (block: recovery day / scale: moderate readiness)
    4. time overflow          (suppress and scale in the time expert's removal order)
    5. aesthetic split        (suppress accessories beyond the 30% share)
    6. volume spike           (warn only)

After each detector the directives accepted so far are projected onto the
proposals, so a later detector never sees (and cannot re-introduce)
content an earlier one removed.
"""

from dataclasses import dataclass, field
from typing import Callable, Sequence

from loguru import logger

from .config import (
    AESTHETIC_VOLUME_SHARE,
    GAME_LIGHTEN_FACTOR,
    RECOVERY_READINESS_MAX,
    VOLUME_RAMP_LIMIT,
    VOLUME_RAMP_WINDOW,
)
from .directives import (
    DEFAULT_FLOORS,
    DoseFloors,
    apply_directives,
    by_priority,
    merged_minutes,
    resolve_precedence,
)
from .errors import ResolutionAmbiguity
from .experts.recovery import RECOVERY_SESSION_NOTE
from .experts.schedule import (
    first_exclusion,
    game_proximity,
    injury_exclusions,
    is_heavy_leg_work,
    safe_alternative,
)
from .experts.time_budget import plan_trims
from .models import Conflict, Context, Proposal, Readiness, Resolution, ResolutionDirective

SAFETY_EXPERTS = ("schedule", "recovery")


@dataclass
class Detection:
    """What one detector found."""

    directives: list[ResolutionDirective] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    def add(self, directive: ResolutionDirective, conflict: Conflict) -> None:
        self.directives.append(directive)
        self.conflicts.append(conflict)


Detector = Callable[[list[Proposal], Context, Readiness, DoseFloors], Detection]


# =============================================================================
# Detectors
# =============================================================================


def detect_injury_exclusions(
    proposals: list[Proposal], context: Context, readiness: Readiness, floors: DoseFloors
) -> Detection:
    found = Detection()
    exclusions = injury_exclusions(context)
    if not exclusions:
        return found

    for p in proposals:
        for block in p.blocks:
            taken = {e.name.lower() for e in block.exercises}
            for e in block.exercises:
                exclusion = first_exclusion(e, exclusions)
                if exclusion is None:
                    continue
                alternative = safe_alternative(e, exclusions, context.constraints, taken)
                if alternative is not None:
                    taken.add(alternative.name.lower())
                    reason = f"Replaced {e.name} with {alternative.name}: {exclusion.label}"
                    directive = ResolutionDirective(
                        p.expert, block.category, "replace", reason,
                        replacement=alternative, target_exercise=e.name,
                        detector="injury_exclusion",
                    )
                else:
                    reason = f"Removed {e.name}: {exclusion.label}"
                    directive = ResolutionDirective(
                        p.expert, block.category, "suppress", reason,
                        target_exercise=e.name, detector="injury_exclusion",
                    )
                found.add(
                    directive,
                    Conflict("injury_exclusion", "block", reason, p.expert, block.category, e.name),
                )
    return found


def detect_game_proximity(
    proposals: list[Proposal], context: Context, readiness: Readiness, floors: DoseFloors
) -> Detection:
    found = Detection()
    window = game_proximity(context)
    if window is None:
        return found

    for p in proposals:
        if p.expert == "schedule":
            continue
        for category in ("main", "conditioning"):
            block = p.block(category)
            for e in block.exercises if block else ():
                if not is_heavy_leg_work(e):
                    continue
                if window.suppresses_heavy_legs:
                    reason = f"Removed heavy leg work ({e.name}): game {window.when}"
                    found.add(
                        ResolutionDirective(
                            p.expert, category, "suppress", reason,
                            target_exercise=e.name, detector="game_proximity",
                        ),
                        Conflict("game_proximity", "block", reason, p.expert, category, e.name),
                    )
                else:
                    reason = f"Reduced leg load ({e.name}): game {window.when}"
                    found.add(
                        ResolutionDirective(
                            p.expert, category, "scale", reason,
                            factor=GAME_LIGHTEN_FACTOR, target_exercise=e.name,
                            dimension="intensity", detector="game_proximity",
                        ),
                        Conflict("game_proximity", "scale", reason, p.expert, category, e.name),
                    )
    return found


def detect_readiness_override(
    proposals: list[Proposal], context: Context, readiness: Readiness, floors: DoseFloors
) -> Detection:
    found = Detection()

    if readiness.score <= RECOVERY_READINESS_MAX:
        for p in proposals:
            if p.expert in SAFETY_EXPERTS:
                continue
            for category in ("main", "conditioning"):
                block = p.block(category)
                if block is None or not block.is_high_intensity:
                    continue
                found.add(
                    ResolutionDirective(
                        p.expert, category, "suppress", RECOVERY_SESSION_NOTE,
                        detector="readiness_override",
                    ),
                    Conflict(
                        "readiness_override", "block", RECOVERY_SESSION_NOTE, p.expert, category
                    ),
                )
        return found

    advice = next(
        (p for p in proposals if p.expert == "recovery" and p.is_advisory and p.volume_multiplier < 1.0),
        None,
    )
    if advice is None:
        return found
    factor = advice.volume_multiplier
    reason = advice.notes[0] if advice.notes else f"Moderate readiness: x{factor:g}"
    for p in proposals:
        if p.expert in SAFETY_EXPERTS:
            continue
        for category in ("main", "accessory"):
            if p.block(category) is None:
                continue
            found.add(
                ResolutionDirective(
                    p.expert, category, "scale", reason, factor=factor,
                    detector="readiness_override",
                ),
                Conflict("readiness_override", "scale", reason, p.expert, category),
            )
    return found


def detect_time_overflow(
    proposals: list[Proposal], context: Context, readiness: Readiness, floors: DoseFloors
) -> Detection:
    found = Detection()
    budget = next((p.budget_minutes for p in proposals if p.budget_minutes), None)
    if budget is None:
        budget = context.constraints.time_limit
    if budget is None:
        return found

    before = merged_minutes(proposals)
    if before <= budget:
        return found

    for directive in plan_trims(proposals, budget, floors):
        found.add(
            directive,
            Conflict(
                "time_overflow", "block" if directive.action == "suppress" else "scale",
                directive.reason, directive.target_expert, directive.target_category,
                directive.target_exercise,
            ),
        )
    return found


def detect_aesthetic_split(
    proposals: list[Proposal], context: Context, readiness: Readiness, floors: DoseFloors
) -> Detection:
    found = Detection()
    aesthetic = next((p for p in proposals if p.expert == "aesthetic"), None)
    block = aesthetic.block("accessory") if aesthetic else None
    if block is None:
        return found

    total = sum(p.total_sets for p in proposals)
    share = block.total_sets
    for e in reversed(block.exercises):
        if total == 0 or share / total <= AESTHETIC_VOLUME_SHARE:
            break
        reason = (
            f"Dropped {e.name}: aesthetic work held to {AESTHETIC_VOLUME_SHARE:.0%} of session volume"
        )
        found.add(
            ResolutionDirective(
                "aesthetic", "accessory", "suppress", reason,
                target_exercise=e.name, detector="aesthetic_performance_split",
            ),
            Conflict("aesthetic_performance_split", "block", reason, "aesthetic", "accessory", e.name),
        )
        share -= e.sets
        total -= e.sets
    return found


def detect_volume_spike(
    proposals: list[Proposal], context: Context, readiness: Readiness, floors: DoseFloors
) -> Detection:
    found = Detection()
    recent = [s.total_sets for s in context.history[-VOLUME_RAMP_WINDOW:] if s.total_sets > 0]
    if not recent:
        return found

    average = sum(recent) / len(recent)
    proposed = sum(
        b.total_sets for p in proposals for b in p.blocks if b.category in ("main", "accessory")
    )
    if proposed > average * (1.0 + VOLUME_RAMP_LIMIT):
        message = (
            f"Volume spike: {proposed} working sets vs recent average {average:.1f} "
            f"(+{proposed / average - 1.0:.0%})"
        )
        found.conflicts.append(Conflict("volume_spike", "warn", message))
    return found


DETECTORS: tuple[tuple[str, Detector], ...] = (
    ("injury_exclusion", detect_injury_exclusions),
    ("game_proximity", detect_game_proximity),
    ("readiness_override", detect_readiness_override),
    ("time_overflow", detect_time_overflow),
    ("aesthetic_performance_split", detect_aesthetic_split),
    ("volume_spike", detect_volume_spike),
)


# =============================================================================
# Resolver
# =============================================================================


class ConflictResolver:
    """
    Runs the detectors in order and reconciles their directives.

    Equal-precedence clashes keep the first directive and are logged; with
    ``strict=True`` they raise ResolutionAmbiguity instead.
    """

    def __init__(self, floors: DoseFloors = DEFAULT_FLOORS, detectors=DETECTORS, strict: bool = False):
        self.floors = floors
        self.detectors = detectors
        self.strict = strict

    def resolve(
        self,
        proposals: Sequence[Proposal],
        context: Context,
        readiness: Readiness,
    ) -> Resolution:
        """
        Detect conflicts among *proposals* and emit resolution directives.

        Args:
            proposals: Populated proposals (abstentions and failures excluded)
            context: Planning context
            readiness: Normalized readiness for today

        Returns:
            Resolution with accepted directives in detector order, the
            superseded ones, every conflict found and any ambiguities
        """
        originals = by_priority(proposals)
        registered: list[ResolutionDirective] = []
        conflicts: list[Conflict] = []
        projected = list(originals)

        for name, detector in self.detectors:
            found = detector(projected, context, readiness, self.floors)
            if found.directives or found.conflicts:
                logger.debug(
                    f"detector {name}: {len(found.directives)} directive(s), "
                    f"{len(found.conflicts)} conflict(s)"
                )
            registered.extend(found.directives)
            conflicts.extend(found.conflicts)
            accepted = resolve_precedence(registered).accepted
            projected = apply_directives(originals, accepted, self.floors)

        result = resolve_precedence(registered)
        if result.ambiguities and self.strict:
            raise ResolutionAmbiguity("; ".join(result.ambiguities))
        for message in result.ambiguities:
            logger.warning(f"resolution ambiguity: {message}")
        return Resolution(
            directives=result.accepted,
            superseded=result.superseded,
            conflicts=tuple(conflicts),
            ambiguities=result.ambiguities,
        )


def resolve(proposals: Sequence[Proposal], context: Context, readiness: Readiness) -> Resolution:
    """Module-level convenience wrapper with default floors."""
    return ConflictResolver().resolve(proposals, context, readiness)
