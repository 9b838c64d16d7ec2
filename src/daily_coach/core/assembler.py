"""
Plan assembler.

A PlanAssembler is created per planning call and walks

    GATHERING → RESOLVING → VALIDATING → DONE
                                       ↘ FALLBACK

GATHERING checks the expert outcomes, RESOLVING applies the resolver's
directives and merges the surviving blocks, VALIDATING enforces the
non-empty main block and the time limit.  Any failure along the way ends in
FALLBACK with the constant plan from fallback.py; only a broken fallback
library raises out of assemble().
"""

from dataclasses import replace
from typing import Literal, Sequence

from loguru import logger

from .config import TIME_TOLERANCE
from .directives import (
    DEFAULT_FLOORS,
    DoseFloors,
    apply_directives,
    by_priority,
    contributing_experts,
    merge_blocks,
)
from .errors import AssemblyFailure
from .experts.schedule import first_exclusion, injury_exclusions
from .fallback import get_fallback_plan
from .models import (
    Abstained,
    Block,
    Context,
    ExpertOutcome,
    Failed,
    Plan,
    Proposal,
    Readiness,
    Resolution,
)

AssemblyState = Literal["GATHERING", "RESOLVING", "VALIDATING", "DONE", "FALLBACK"]


def readiness_framing(readiness: Readiness) -> str:
    source = "inferred" if readiness.inferred else "daily check-in"
    return f"Readiness {readiness.score}/10 ({source})"


def _dedupe(lines: Sequence[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    out = []
    for line in lines:
        if line and line not in seen:
            seen.add(line)
            out.append(line)
    return tuple(out)


def _failure_warnings(outcomes: Sequence[ExpertOutcome]) -> list[str]:
    return [
        f"{o.expert} expert unavailable: {o.reason}"
        for o in outcomes
        if isinstance(o, Failed)
    ]


class PlanAssembler:
    """Per-call state machine turning outcomes plus directives into a Plan."""

    def __init__(self, floors: DoseFloors = DEFAULT_FLOORS, time_tolerance: float = TIME_TOLERANCE):
        self.floors = floors
        self.time_tolerance = time_tolerance
        self.state: AssemblyState = "GATHERING"
        self.transitions: list[AssemblyState] = ["GATHERING"]

    def _enter(self, state: AssemblyState) -> None:
        logger.debug(f"assembler {self.state} -> {state}")
        self.state = state
        self.transitions.append(state)

    # ── GATHERING ──────────────────────────────────────────────────────────

    def _gather(self, outcomes: Sequence[object]) -> list[Proposal]:
        for o in outcomes:
            if not isinstance(o, (Proposal, Abstained, Failed)):
                raise AssemblyFailure(f"untyped expert outcome: {type(o).__name__}")
        proposals = [o for o in outcomes if isinstance(o, Proposal)]
        if not any(not p.is_advisory for p in proposals):
            raise AssemblyFailure("All experts abstained, failed or proposed nothing")
        return by_priority(proposals)

    # ── RESOLVING ──────────────────────────────────────────────────────────

    def _sweep(self, proposals: list[Proposal], context: Context) -> list[Proposal]:
        """Drop anything an injury exclusion still matches after resolution."""
        exclusions = injury_exclusions(context)
        if not exclusions:
            return proposals
        out = []
        for p in proposals:
            blocks = []
            for b in p.blocks:
                kept = []
                for e in b.exercises:
                    if first_exclusion(e, exclusions) is not None:
                        logger.warning(f"excluded movement {e.name} survived resolution; removed")
                        continue
                    kept.append(e)
                if kept:
                    blocks.append(Block(b.category, tuple(kept), b.intensity_multiplier))
            out.append(replace(p, blocks=tuple(blocks)))
        return out

    # ── VALIDATING ─────────────────────────────────────────────────────────

    def _validate(self, blocks: tuple[Block, ...], context: Context) -> float:
        main = next((b for b in blocks if b.category == "main"), None)
        if main is None or main.is_empty:
            raise AssemblyFailure("Merged plan has no main-block exercises")
        duration = sum(b.estimated_minutes for b in blocks)
        limit = context.constraints.time_limit
        if limit is not None and duration > limit * (1.0 + self.time_tolerance):
            raise AssemblyFailure(
                f"Merged plan runs {duration:g} min against a {limit:g} min limit"
            )
        return duration

    # ── entry point ────────────────────────────────────────────────────────

    def assemble(
        self,
        outcomes: Sequence[ExpertOutcome],
        resolution: Resolution | None,
        context: Context,
        readiness: Readiness,
    ) -> Plan:
        """
        Merge resolved proposals into one Plan.

        Args:
            outcomes: One outcome per expert, in any order
            resolution: Resolver output, or None when the resolver failed
            context: Planning context
            readiness: Normalized readiness

        Returns:
            A Plan with a non-empty main block; is_fallback=True when the
            pipeline result could not be used.

        Raises:
            FallbackFailure: Only if the fallback library itself is broken
        """
        try:
            proposals = self._gather(outcomes)

            self._enter("RESOLVING")
            if resolution is None:
                raise AssemblyFailure("Conflict resolution unavailable")
            resolved = apply_directives(proposals, resolution.directives, self.floors)
            resolved = self._sweep(resolved, context)
            blocks = merge_blocks(resolved)

            self._enter("VALIDATING")
            duration = self._validate(blocks, context)
        except AssemblyFailure as exc:
            return self._fallback(str(exc), outcomes, resolution, context, readiness)
        except Exception as exc:
            logger.opt(exception=exc).error(f"assembly crashed: {exc!r}")
            return self._fallback("Planning error", outcomes, resolution, context, readiness)

        rationale = [readiness_framing(readiness)]
        if readiness.inferred:
            rationale.append(readiness.rationale)
        rationale += [d.reason for d in resolution.directives]
        rationale += [f"Superseded by safety: {d.reason}" for d in resolution.superseded]
        rationale += [note for p in proposals for note in p.notes]

        plan = Plan(
            blocks=blocks,
            total_estimated_duration=round(duration, 2),
            rationale=_dedupe(rationale),
            is_fallback=False,
            source_experts=contributing_experts(resolved),
            warnings=_dedupe(
                list(resolution.warnings) + list(resolution.ambiguities) + _failure_warnings(outcomes)
            ),
            readiness=readiness,
        )
        self._enter("DONE")
        logger.info(
            f"plan assembled: {len(plan.exercise_names)} exercises, "
            f"{plan.total_estimated_duration:g} min, experts={','.join(plan.source_experts)}"
        )
        return plan

    def _fallback(
        self,
        reason: str,
        outcomes: Sequence[object],
        resolution: Resolution | None,
        context: Context,
        readiness: Readiness,
    ) -> Plan:
        self._enter("FALLBACK")
        logger.warning(f"falling back to the safe plan: {reason}")
        plan = get_fallback_plan(context, reason=reason)
        typed = [o for o in outcomes if isinstance(o, (Proposal, Abstained, Failed))]
        warnings: list[str] = []
        if resolution is not None:
            warnings += list(resolution.warnings) + list(resolution.ambiguities)
        warnings += _failure_warnings(typed)
        return replace(
            plan,
            rationale=(readiness_framing(readiness),) + plan.rationale,
            warnings=_dedupe(warnings),
            readiness=readiness,
        )
