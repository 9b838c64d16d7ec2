"""
Directive precedence, application and block merging.

These helpers are shared by the resolver (to project accepted directives
onto the proposals between detectors), the time expert (to simulate trims)
and the assembler (to build the final plan), so all three agree on exactly
what a directive does.
"""

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from .config import (
    CATEGORY_ORDER,
    EXPERT_PRIORITY,
    LOAD_FLOOR_FRACTION,
    MIN_ACCESSORY_SETS,
    MIN_MAIN_SETS,
    MIN_VOLUME_FRACTION,
    PLATE_ROUNDING_KG,
    round_half_up,
)
from .models import Block, Exercise, Proposal, ResolutionDirective


@dataclass(frozen=True)
class DoseFloors:
    """Minimum effective dose guards applied whenever work is scaled down."""

    min_main_sets: int = MIN_MAIN_SETS
    min_accessory_sets: int = MIN_ACCESSORY_SETS
    min_volume_fraction: float = MIN_VOLUME_FRACTION
    load_floor_fraction: float = LOAD_FLOOR_FRACTION

    @classmethod
    def from_settings(cls, settings) -> "DoseFloors":
        return cls(
            min_main_sets=settings.min_main_sets,
            min_accessory_sets=settings.min_accessory_sets,
            min_volume_fraction=settings.min_volume_fraction,
            load_floor_fraction=settings.load_floor_fraction,
        )


DEFAULT_FLOORS = DoseFloors()


# =============================================================================
# Precedence
# =============================================================================


@dataclass(frozen=True)
class PrecedenceResult:
    accepted: tuple[ResolutionDirective, ...]
    superseded: tuple[ResolutionDirective, ...]
    ambiguities: tuple[str, ...]


_DIMENSIONS = {"volume": {"volume"}, "intensity": {"intensity"}, "both": {"volume", "intensity"}}


def _composes(a: ResolutionDirective, b: ResolutionDirective) -> bool:
    """Two scales compose when they touch different dimensions (sets vs load)."""
    return (
        a.action == b.action == "scale"
        and not _DIMENSIONS[a.dimension] & _DIMENSIONS[b.dimension]
    )


def resolve_precedence(directives: Iterable[ResolutionDirective]) -> PrecedenceResult:
    """
    Keep the winning directives per target.

    suppress beats replace beats scale on the same (expert, category,
    exercise) target.  Identical directives collapse silently.  Scales on
    disjoint dimensions (a volume trim and a load reduction) both apply.
    Any other pair of different directives of equal precedence keeps the
    first registered and records an ambiguity.  A block-level suppress also
    overrides every exercise-level directive inside that block.

    Args:
        directives: Directives in registration (detector) order

    Returns:
        PrecedenceResult with accepted directives in registration order
    """
    by_key: dict[tuple, list[ResolutionDirective]] = {}
    superseded: list[ResolutionDirective] = []
    ambiguities: list[str] = []

    for d in directives:
        current = by_key.get(d.key)
        if current is None:
            by_key[d.key] = [d]
        elif any(c.same_effect(d) for c in current):
            continue
        elif d.precedence > current[0].precedence:
            superseded.extend(current)
            by_key[d.key] = [d]
        elif d.precedence < current[0].precedence:
            superseded.append(d)
        elif all(_composes(c, d) for c in current):
            current.append(d)
        else:
            kept = next(c for c in current if not _composes(c, d))
            target = "/".join(str(part) for part in d.key if part is not None)
            message = (
                f"Equal-precedence {d.action} directives on {target}: "
                f"kept '{kept.reason}', dropped '{d.reason}'"
            )
            ambiguities.append(message)
            superseded.append(d)

    suppressed_blocks = {
        d.block_key
        for group in by_key.values()
        for d in group
        if d.action == "suppress" and d.target_exercise is None
    }
    accepted: list[ResolutionDirective] = []
    for group in by_key.values():
        for d in group:
            if d.target_exercise is not None and d.block_key in suppressed_blocks:
                superseded.append(d)
            else:
                accepted.append(d)

    return PrecedenceResult(tuple(accepted), tuple(superseded), tuple(ambiguities))


# =============================================================================
# Application
# =============================================================================


@dataclass
class _Slot:
    """One exercise being rewritten, with the scaling accumulated so far."""

    base: Exercise
    volume: float = 1.0
    intensity: float = 1.0

    def scale(self, d: ResolutionDirective) -> None:
        if d.dimension in ("volume", "both"):
            self.volume *= d.factor
        if d.dimension in ("intensity", "both"):
            self.intensity *= d.factor


def _round_plate(kg: float) -> float:
    return round(kg / PLATE_ROUNDING_KG) * PLATE_ROUNDING_KG


def _materialize(slot: _Slot, category: str, floors: DoseFloors) -> Exercise:
    ex = slot.base
    sets = ex.sets
    if slot.volume < 1.0:
        volume = slot.volume
        if category == "main":
            volume = max(volume, floors.min_volume_fraction)
            floor_sets = min(ex.sets, floors.min_main_sets)
        else:
            floor_sets = min(ex.sets, floors.min_accessory_sets)
        sets = max(floor_sets, round_half_up(ex.sets * volume))

    if slot.intensity >= 1.0:
        return ex if sets == ex.sets else replace(ex, sets=sets)

    factor = max(slot.intensity, floors.load_floor_fraction)
    load_kg = _round_plate(ex.load_kg * factor) if ex.load_kg else ex.load_kg
    return replace(
        ex,
        sets=sets,
        intensity=round(ex.intensity * factor, 4),
        load_pct=round(ex.load_pct * factor, 4) if ex.load_pct else ex.load_pct,
        load_kg=load_kg,
    )


def _find(slots: list[_Slot], name: str) -> int | None:
    needle = name.lower()
    for i, slot in enumerate(slots):
        if slot.base.name.lower() == needle:
            return i
    return None


def block_intensity(exercises: Sequence[Exercise]) -> float:
    return min((e.intensity for e in exercises), default=1.0)


def apply_directives(
    proposals: Sequence[Proposal],
    directives: Sequence[ResolutionDirective],
    floors: DoseFloors = DEFAULT_FLOORS,
) -> list[Proposal]:
    """
    Return new proposals with *directives* applied in order.

    Directives naming a target that no longer exists are no-ops.  Blocks
    left without exercises are dropped; the proposals themselves are kept so
    their notes and multipliers survive.
    """
    working: dict[str, dict[str, list[_Slot]]] = {
        p.expert: {b.category: [_Slot(e) for e in b.exercises] for b in p.blocks}
        for p in proposals
    }

    for d in directives:
        blocks = working.get(d.target_expert)
        if blocks is None or d.target_category not in blocks:
            continue
        slots = blocks[d.target_category]

        if d.target_exercise is None:
            if d.action == "suppress":
                del blocks[d.target_category]
            elif d.action == "scale":
                for slot in slots:
                    slot.scale(d)
            continue

        idx = _find(slots, d.target_exercise)
        if idx is None:
            continue
        if d.action == "suppress":
            slots.pop(idx)
        elif d.action == "replace":
            old = slots[idx]
            slots[idx] = _Slot(d.replacement, volume=old.volume, intensity=old.intensity)
        else:
            slots[idx].scale(d)

    out: list[Proposal] = []
    for p in proposals:
        blocks_out: list[Block] = []
        for b in p.blocks:
            slots = working[p.expert].get(b.category)
            if not slots:
                continue
            exercises = tuple(_materialize(s, b.category, floors) for s in slots)
            blocks_out.append(
                Block(b.category, exercises, min(b.intensity_multiplier, block_intensity(exercises)))
            )
        out.append(replace(p, blocks=tuple(blocks_out)))
    return out


# =============================================================================
# Merging
# =============================================================================


def expert_rank(expert: str) -> int:
    if expert in EXPERT_PRIORITY:
        return EXPERT_PRIORITY.index(expert)
    return len(EXPERT_PRIORITY)


def by_priority(proposals: Iterable[Proposal]) -> list[Proposal]:
    """Proposals ordered safety first (stable for unknown experts)."""
    return sorted(proposals, key=lambda p: expert_rank(p.expert))


def merge_blocks(proposals: Sequence[Proposal]) -> tuple[Block, ...]:
    """
    Merge proposal blocks by category in canonical order.

    Within a category exercises are taken in expert priority order; a name
    already present (case-insensitive) is skipped.
    """
    ordered = by_priority(proposals)
    merged: list[Block] = []
    for category in CATEGORY_ORDER:
        seen: set[str] = set()
        exercises: list[Exercise] = []
        multiplier = 1.0
        for p in ordered:
            block = p.block(category)
            if block is None:
                continue
            multiplier = min(multiplier, block.intensity_multiplier)
            for e in block.exercises:
                key = e.name.lower()
                if key in seen:
                    continue
                seen.add(key)
                exercises.append(e)
        if exercises:
            merged.append(Block(category, tuple(exercises), min(multiplier, block_intensity(exercises))))
    return tuple(merged)


def merged_minutes(proposals: Sequence[Proposal]) -> float:
    return sum(b.estimated_minutes for b in merge_blocks(proposals))


def contributing_experts(proposals: Sequence[Proposal]) -> tuple[str, ...]:
    """Experts with at least one exercise in the merged result, in priority order."""
    ordered = by_priority(proposals)
    contributors: set[str] = set()
    for category in CATEGORY_ORDER:
        seen: set[str] = set()
        for p in ordered:
            block = p.block(category)
            if block is None:
                continue
            for e in block.exercises:
                if e.name.lower() not in seen:
                    seen.add(e.name.lower())
                    contributors.add(p.expert)
    return tuple(p.expert for p in ordered if p.expert in contributors)
