"""
Planning pipeline.

One Coordinator call runs

    readiness → experts (concurrent, each under a timeout)
              → conflict resolver (under a timeout)
              → plan assembler → persistence

Every call builds its own executor, resolver and assembler; nothing is
shared between concurrent calls.  Callers only ever see a Plan, a
FallbackFailure (the fallback library is broken) or PlanningCancelled
(they set the cancel event themselves).
"""

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import date, timedelta
from typing import Any, Callable, Mapping, Sequence

from loguru import logger

from ..io.interfaces import Auth, RemotePersistence, Storage
from ..io.persistence import PlanPersister
from ..io.serializers import (
    ValidationError,
    context_to_dict,
    dict_to_context,
    dict_to_session_record,
)
from .assembler import PlanAssembler
from .config import (
    LESS_TIME_FACTOR,
    MIN_TIME_LIMIT,
    POLL_INTERVAL_SECONDS,
    READINESS_BASELINE,
    READINESS_MIN,
    TOO_HARD_READINESS_DROP,
)
from .directives import DoseFloors
from .engine.config_loader import CoordinatorSettings, _deep_merge, load_coordinator_settings
from .errors import FallbackFailure, PlanningCancelled
from .experts import Expert, default_experts, run_expert
from .fallback import get_fallback_plan
from .models import (
    Abstained,
    Context,
    ExpertOutcome,
    Plan,
    Proposal,
    Readiness,
    Resolution,
    SessionRecord,
)
from .readiness import NO_SIGNAL_RATIONALE, ReadinessProvider
from .resolver import ConflictResolver


def _check_cancel(cancel: threading.Event) -> None:
    if cancel.is_set():
        logger.info("planning call cancelled; discarding partial results")
        raise PlanningCancelled("planning call cancelled")


def _wait_for(
    futures: Sequence[Future],
    timeout: float,
    cancel: threading.Event,
) -> set[Future]:
    """Wait until all *futures* finish or *timeout* passes; return the unfinished ones."""
    pending = set(futures)
    deadline = time.monotonic() + timeout
    while pending:
        _check_cancel(cancel)
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        _, pending = wait(
            pending,
            timeout=min(remaining, POLL_INTERVAL_SECONDS),
            return_when=FIRST_COMPLETED,
        )
    _check_cancel(cancel)
    return pending


# =============================================================================
# Coach-chat modifications
# =============================================================================


def apply_modifications(
    context: Context,
    modifications: Mapping[str, Any] | None,
    readiness_provider: ReadinessProvider | None = None,
) -> Context:
    """
    Merge a sparse override into *context*.

    Plain keys mirror the serialized context (for example
    ``{"constraints": {"time_limit": 30}}``) and are deep-merged.  Two
    adjustments from the coach chat are understood as well:

    * ``too_hard``: today's readiness drops by 2 (never below 1)
    * ``less_time``: minutes now available; ``True`` keeps two thirds of
      the current limit (or of the preferred session length)

    Raises:
        ValidationError: If the merged document is not a valid context
    """
    mods = dict(modifications or {})
    too_hard = bool(mods.pop("too_hard", False))
    less_time = mods.pop("less_time", None)

    merged = context
    if mods:
        merged = dict_to_context(_deep_merge(context_to_dict(context), mods))

    if too_hard:
        provider = readiness_provider or ReadinessProvider()
        score = provider.get_readiness(merged).score
        merged = replace(merged, readiness=max(READINESS_MIN, score - TOO_HARD_READINESS_DROP))

    if less_time is not None and less_time is not False:
        current = merged.constraints.time_limit or merged.preferences.session_length
        if less_time is True:
            wanted = current * LESS_TIME_FACTOR
        else:
            try:
                wanted = float(less_time)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"less_time must be minutes, got {less_time!r}") from e
        limit = max(MIN_TIME_LIMIT, min(current, wanted))
        merged = replace(merged, constraints=replace(merged.constraints, time_limit=round(limit, 1)))

    return merged


# =============================================================================
# Coordinator
# =============================================================================


class Coordinator:
    """
    Wires the readiness provider, experts, resolver and assembler together.

    Storage, auth and remote are optional collaborators: without storage
    and auth no history is fetched; without storage or remote nothing is
    persisted.
    """

    def __init__(
        self,
        storage: Storage | None = None,
        auth: Auth | None = None,
        remote: RemotePersistence | None = None,
        settings: CoordinatorSettings | None = None,
        experts: Sequence[Expert] | None = None,
        readiness_provider: ReadinessProvider | None = None,
        resolver_factory: Callable[[DoseFloors], ConflictResolver] = ConflictResolver,
    ):
        self.storage = storage
        self.auth = auth
        self.settings = settings or load_coordinator_settings()
        self.floors = DoseFloors.from_settings(self.settings)
        self.experts = list(experts) if experts is not None else default_experts()
        self.readiness_provider = readiness_provider or ReadinessProvider()
        self.resolver_factory = resolver_factory
        self.persister = PlanPersister(storage, remote)

    # ── stages ────────────────────────────────────────────────────────────

    def _with_history(self, context: Context) -> Context:
        if context.history or self.storage is None or self.auth is None:
            return context
        try:
            user_id = self.auth.get_current_user_id()
            if not user_id:
                return context
            since = (
                date.fromisoformat(context.today)
                - timedelta(days=self.settings.history_lookback_days)
            ).isoformat()
            raw = self.storage.get_history(user_id, since) or []
            history = tuple(
                s if isinstance(s, SessionRecord) else dict_to_session_record(s) for s in raw
            )
        except Exception as exc:
            logger.warning(f"history lookup failed, planning without history: {exc!r}")
            return context
        logger.debug(f"fetched {len(history)} session(s) since {since} for {user_id}")
        return replace(context, history=history)

    def _readiness(self, context: Context) -> Readiness:
        try:
            return self.readiness_provider.get_readiness(context)
        except Exception as exc:
            logger.opt(exception=exc).warning(f"readiness provider failed: {exc!r}")
            return Readiness(score=int(READINESS_BASELINE), inferred=True, rationale=NO_SIGNAL_RATIONALE)

    def _run_experts(
        self, context: Context, readiness: Readiness, cancel: threading.Event
    ) -> list[ExpertOutcome]:
        if not self.experts:
            return []
        timeout = self.settings.expert_timeout_seconds
        executor = ThreadPoolExecutor(max_workers=len(self.experts), thread_name_prefix="expert")
        try:
            futures = [
                executor.submit(run_expert, expert, context, readiness) for expert in self.experts
            ]
            pending = _wait_for(futures, timeout, cancel)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        outcomes: list[ExpertOutcome] = []
        for expert, future in zip(self.experts, futures):
            name = getattr(expert, "name", type(expert).__name__)
            if future in pending:
                logger.warning(f"expert {name} timed out after {timeout:g}s; treated as abstention")
                outcomes.append(Abstained(name, f"timed out after {timeout:g}s"))
            else:
                outcomes.append(future.result())
        return outcomes

    def _resolve(
        self,
        outcomes: list[ExpertOutcome],
        context: Context,
        readiness: Readiness,
        cancel: threading.Event,
    ) -> Resolution | None:
        proposals = [o for o in outcomes if isinstance(o, Proposal)]
        resolver = self.resolver_factory(self.floors)
        timeout = self.settings.resolver_timeout_seconds
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="resolver")
        try:
            future = executor.submit(resolver.resolve, proposals, context, readiness)
            pending = _wait_for([future], timeout, cancel)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if pending:
            logger.warning(f"conflict resolver timed out after {timeout:g}s")
            return None
        try:
            return future.result()
        except Exception as exc:
            logger.opt(exception=exc).error(f"conflict resolver crashed: {exc!r}")
            return None

    # ── entry points ──────────────────────────────────────────────────────

    def plan_today(self, context: Context, cancel: threading.Event | None = None) -> Plan:
        """
        Build today's plan.

        Args:
            context: Planning context
            cancel: Set from another thread to abandon the call

        Returns:
            A Plan with a non-empty main block (is_fallback=True when degraded)

        Raises:
            PlanningCancelled: If *cancel* was set before the plan was returned
            FallbackFailure: If even the fallback library failed
        """
        cancel = cancel or threading.Event()
        try:
            plan = self._plan(context, cancel)
        except (FallbackFailure, PlanningCancelled):
            raise
        except Exception as exc:
            logger.opt(exception=exc).error(f"planning failed: {exc!r}")
            plan = get_fallback_plan(context, reason="Planning error")

        _check_cancel(cancel)
        self._persist(plan, context)
        return plan

    def _plan(self, context: Context, cancel: threading.Event) -> Plan:
        _check_cancel(cancel)
        context = self._with_history(context)
        readiness = self._readiness(context)
        logger.debug(f"readiness {readiness.score}/10 ({readiness.rationale})")

        outcomes = self._run_experts(context, readiness, cancel)
        resolution = self._resolve(outcomes, context, readiness, cancel)
        _check_cancel(cancel)

        assembler = PlanAssembler(self.floors, self.settings.time_tolerance)
        plan = assembler.assemble(outcomes, resolution, context, readiness)
        if plan.is_fallback:
            logger.warning(f"degraded plan for {context.today}: {', '.join(plan.rationale)}")
        return plan

    def replan(
        self,
        context: Context,
        modifications: Mapping[str, Any] | None = None,
        cancel: threading.Event | None = None,
    ) -> Plan:
        """
        Merge *modifications* into *context* and run the pipeline again.

        Invalid modifications are ignored with a plan warning rather than
        raised, so the caller still gets a plan.
        """
        try:
            merged = apply_modifications(context, modifications, self.readiness_provider)
        except ValidationError as exc:
            logger.warning(f"ignoring invalid modifications {dict(modifications or {})!r}: {exc}")
            plan = self.plan_today(context, cancel)
            return replace(plan, warnings=plan.warnings + (f"Ignored invalid modifications: {exc}",))
        return self.plan_today(merged, cancel)

    def _persist(self, plan: Plan, context: Context) -> None:
        if not self.settings.persist_plans:
            return
        user_id = context.profile.user_id
        if not user_id and self.auth is not None:
            try:
                user_id = self.auth.get_current_user_id() or ""
            except Exception as exc:
                logger.warning(f"auth lookup failed while persisting: {exc!r}")
        self.persister.persist(plan, user_id or "anonymous", context.today)

    def close(self, wait: bool = True) -> None:
        """Let queued remote pushes finish and release the background thread."""
        self.persister.close(wait=wait)


def plan_today(context: Context, **kwargs: Any) -> Plan:
    """Plan with a one-off Coordinator; keyword arguments go to Coordinator()."""
    coordinator = Coordinator(**kwargs)
    try:
        return coordinator.plan_today(context)
    finally:
        coordinator.close()


def replan(context: Context, modifications: Mapping[str, Any] | None = None, **kwargs: Any) -> Plan:
    """Replan with a one-off Coordinator; keyword arguments go to Coordinator()."""
    coordinator = Coordinator(**kwargs)
    try:
        return coordinator.replan(context, modifications)
    finally:
        coordinator.close()
