"""
Integration tests for the daily-coach planning pipeline.

Each test runs the full Coordinator: readiness → experts → resolver →
assembler → persistence.  Hand-computed durations are noted in comments;
per-set minutes come from the bundled movements.yaml.
"""

import threading
import time

import pytest

from daily_coach.core.engine.config_loader import CoordinatorSettings
from daily_coach.core.errors import PlanningCancelled
from daily_coach.core.experts import Expert, default_experts
from daily_coach.core.experts.schedule import is_heavy_leg_work
from daily_coach.core.models import (
    Constraints,
    Context,
    Game,
    LoggedExercise,
    Preferences,
    Schedule,
    SessionRecord,
    UserProfile,
)
from daily_coach.core.pipeline import Coordinator, apply_modifications, plan_today, replan
from daily_coach.io.plan_store import InMemoryStore
from daily_coach.io.serializers import ValidationError

TODAY = "2026-03-10"


# ===========================================================================
# Helpers
# ===========================================================================

def _make_context(**kwargs) -> Context:
    kwargs.setdefault("today", TODAY)
    return Context(**kwargs)


def _settings(**kwargs) -> CoordinatorSettings:
    kwargs.setdefault("persist_plans", False)
    return CoordinatorSettings(**kwargs)


def _coordinator(**kwargs) -> Coordinator:
    kwargs.setdefault("settings", _settings())
    return Coordinator(**kwargs)


def _hard_days(*dates: str) -> tuple[SessionRecord, ...]:
    return tuple(
        SessionRecord(d, (LoggedExercise("Back Squat", sets=5, reps=5, rpe=10),), rpe=10)
        for d in dates
    )


def _main(plan) -> list[tuple[str, int]]:
    return [(e.name, e.sets) for e in plan.main_block.exercises]


class _Boom(Expert):
    def __init__(self, name: str):
        self.name = name

    def propose(self, context, readiness):
        raise RuntimeError("boom")


class _Blocking(Expert):
    """Waits on *release* before abstaining."""

    name = "aesthetic"

    def __init__(self, release: threading.Event):
        self.release = release

    def propose(self, context, readiness):
        self.release.wait(5)
        return self.abstain("late")


class _Cancelling(Expert):
    """Sets the caller's cancel event while the experts are running."""

    name = "aesthetic"

    def __init__(self, cancel: threading.Event):
        self.cancel = cancel

    def propose(self, context, readiness):
        self.cancel.set()
        return self.abstain("cancelled the call")


class _BlockingResolver:
    def __init__(self, release: threading.Event):
        self.release = release

    def resolve(self, proposals, context, readiness):
        self.release.wait(5)
        raise RuntimeError("too late")


class _CrashingResolver:
    def resolve(self, proposals, context, readiness):
        raise RuntimeError("resolver bug")


class _Remote:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.plans = []

    def persist_plan(self, plan):
        self.plans.append(plan)
        if self.fail:
            raise ConnectionError("sync service down")
        return {"ok": True}


class _BrokenStore(InMemoryStore):
    def set(self, key, value):
        raise OSError("disk full")


# ===========================================================================
# Always a plan
# ===========================================================================

class TestAlwaysAPlan:
    """Whatever the experts do, the caller gets a plan with main work."""

    def test_all_experts_raise(self):
        experts = [_Boom(n) for n in ("schedule", "recovery", "strength", "aesthetic", "time")]
        plan = _coordinator(experts=experts).plan_today(_make_context(readiness=8))
        assert plan.is_fallback is True
        assert plan.has_main_work
        assert len(plan.warnings) == 5
        assert "strength expert unavailable: RuntimeError: boom" in plan.warnings

    def test_no_experts(self):
        plan = _coordinator(experts=[]).plan_today(_make_context())
        assert plan.is_fallback is True
        assert plan.has_main_work

    def test_one_failing_expert_is_a_warning(self):
        experts = [e for e in default_experts() if e.name != "aesthetic"] + [_Boom("aesthetic")]
        ctx = _make_context(readiness=8, preferences=Preferences(aesthetic_focus="glutes"))
        plan = _coordinator(experts=experts).plan_today(ctx)
        assert plan.is_fallback is False
        assert plan.warnings == ("aesthetic expert unavailable: RuntimeError: boom",)
        assert plan.block("accessory") is None

    def test_safety_survives_strength_failure(self):
        experts = [e for e in default_experts() if e.name != "strength"] + [_Boom("strength")]
        ctx = _make_context(readiness=8, schedule=Schedule((Game("2026-03-11", "high"),)))
        plan = _coordinator(experts=experts).plan_today(ctx)
        assert plan.is_fallback is False
        assert [name for name, _ in _main(plan)] == ["Med Ball Chest Pass", "Push-Up", "Band Face Pull"]

    def test_failing_readiness_provider_uses_baseline(self):
        class _Broken:
            def get_readiness(self, context):
                raise ValueError("sensor offline")

        plan = _coordinator(readiness_provider=_Broken()).plan_today(_make_context())
        assert plan.readiness.score == 7
        assert plan.readiness.inferred is True
        assert plan.is_fallback is False

    @pytest.mark.parametrize("phase", ["off", "pre", "in", "post"])
    @pytest.mark.parametrize("readiness", [None, 2, 5, 9])
    @pytest.mark.parametrize("mode", ["simple", "advanced"])
    def test_every_phase_readiness_and_mode(self, phase, readiness, mode):
        ctx = _make_context(
            season_phase=phase, readiness=readiness, preferences=Preferences(training_mode=mode)
        )
        plan = _coordinator().plan_today(ctx)
        assert plan.has_main_work
        assert plan.is_fallback is False


# ===========================================================================
# Scenarios
# ===========================================================================

class TestScenarios:

    def test_default_off_season_day(self):
        plan = _coordinator().plan_today(_make_context(readiness=8))
        assert [b.category for b in plan.blocks] == ["warm-up", "main", "conditioning", "recovery"]
        assert _main(plan) == [("Back Squat", 5), ("Bench Press", 5), ("Romanian Deadlift", 5)]
        # warm-up 6 + main 37.5 + conditioning 9 + cool-down 5
        assert plan.total_estimated_duration == pytest.approx(57.5)
        assert plan.rationale[0] == "Readiness 8/10 (daily check-in)"
        assert "Off-season focus: strength and power development" in plan.rationale
        assert plan.source_experts == ("strength",)

    def test_low_readiness_recovery_session(self):
        plan = _coordinator().plan_today(_make_context(readiness=3))
        assert plan.is_fallback is False
        assert _main(plan) == [("Mobility Circuit", 2), ("Easy Aerobic Flush", 1)]
        assert plan.main_block.intensity_multiplier == 0.5
        assert "Low readiness (≤4) triggers recovery session." in plan.rationale
        assert plan.block("conditioning") is None
        # warm-up 5 + 6, main 12 + 12, cool-down 5 + 3 + 2
        assert plan.total_estimated_duration == pytest.approx(45.0)

    def test_three_max_effort_days_clamp_readiness(self):
        ctx = _make_context(history=_hard_days("2026-03-07", "2026-03-08", "2026-03-09"))
        plan = _coordinator().plan_today(ctx)
        assert plan.readiness.score == 1
        assert plan.readiness.inferred is True
        assert _main(plan)[0][0] == "Mobility Circuit"

    def test_twenty_minute_session(self):
        ctx = _make_context(readiness=8, constraints=Constraints(time_limit=20))
        plan = _coordinator().plan_today(ctx)
        assert plan.is_fallback is False
        assert [b.category for b in plan.blocks] == ["warm-up", "main"]
        assert _main(plan) == [("Back Squat", 3), ("Bench Press", 2)]
        assert plan.total_estimated_duration == pytest.approx(18.5)
        assert "Time limit 20 min: dropped conditioning" in plan.rationale

    def test_game_in_two_days_with_twenty_minutes(self):
        ctx = _make_context(
            readiness=8,
            schedule=Schedule((Game("2026-03-12"),)),
            constraints=Constraints(time_limit=20),
        )
        plan = _coordinator().plan_today(ctx)
        assert plan.is_fallback is False
        # time trim sets the squat volume, the game lightens its load
        assert _main(plan) == [("Back Squat", 3), ("Bench Press", 2)]
        assert plan.main_block.exercises[0].intensity == pytest.approx(0.8)
        assert plan.total_estimated_duration == pytest.approx(18.5)
        assert not any(w.startswith("Equal-precedence") for w in plan.warnings)

    def test_high_importance_game_tomorrow(self):
        ctx = _make_context(readiness=8, schedule=Schedule((Game("2026-03-11", "high"),)))
        plan = _coordinator().plan_today(ctx)
        exercises = [e for b in plan.blocks for e in b.exercises]
        assert not any(is_heavy_leg_work(e) for e in exercises)
        names = [name for name, _ in _main(plan)]
        assert names == ["Med Ball Chest Pass", "Push-Up", "Band Face Pull", "Bench Press"]
        assert plan.source_experts == ("schedule", "strength")

    def test_injury_and_game_together(self):
        ctx = _make_context(
            readiness=8,
            schedule=Schedule((Game("2026-03-11", "high"),)),
            constraints=Constraints(flags=("knee_pain",)),
        )
        plan = _coordinator().plan_today(ctx)
        names = plan.exercise_names
        assert "Back Squat" not in names
        assert "Romanian Deadlift" not in names
        assert "Hip Thrust" in names
        assert "Replaced Back Squat with Hip Thrust: knee pain" in plan.rationale

    def test_deload_week(self):
        plan = _coordinator().plan_today(_make_context(readiness=8, week_number=4))
        assert _main(plan) == [("Back Squat", 4), ("Bench Press", 4), ("Romanian Deadlift", 4)]
        assert "Deload week: -20% volume" in plan.rationale

    def test_aesthetic_focus_adds_accessories(self):
        ctx = _make_context(readiness=8, preferences=Preferences(aesthetic_focus="glutes"))
        plan = _coordinator().plan_today(ctx)
        accessory = plan.block("accessory")
        assert [e.name for e in accessory.exercises] == [
            "Hip Thrusts", "Bulgarian Split Squats", "Cable Kickbacks",
        ]
        assert plan.source_experts == ("strength", "aesthetic")

    def test_time_limit_below_primary_lift_falls_back(self):
        ctx = _make_context(readiness=8, constraints=Constraints(time_limit=5))
        plan = _coordinator().plan_today(ctx)
        # warm-up 6 + squat 2 x 2.5 = 11 min > 5.5
        assert plan.is_fallback is True
        assert any(line.startswith("Merged plan runs 11 min") for line in plan.rationale)

    def test_plans_are_deterministic(self):
        ctx = _make_context(
            readiness=6,
            preferences=Preferences(aesthetic_focus="v_taper"),
            constraints=Constraints(time_limit=45, flags=("shoulder_pain",)),
        )
        coordinator = _coordinator()
        assert coordinator.plan_today(ctx) == coordinator.plan_today(ctx)


# ===========================================================================
# Timeouts and cancellation
# ===========================================================================

class TestTimeoutsAndCancellation:

    def test_slow_expert_is_treated_as_abstention(self):
        release = threading.Event()
        experts = [e for e in default_experts() if e.name != "aesthetic"] + [_Blocking(release)]
        coordinator = _coordinator(experts=experts, settings=_settings(expert_timeout_seconds=0.2))
        ctx = _make_context(readiness=8, preferences=Preferences(aesthetic_focus="glutes"))
        try:
            started = time.monotonic()
            plan = coordinator.plan_today(ctx)
            elapsed = time.monotonic() - started
        finally:
            release.set()
        assert elapsed < 2.0
        assert plan.is_fallback is False
        assert "aesthetic" not in plan.source_experts

    def test_slow_resolver_falls_back(self):
        release = threading.Event()
        coordinator = _coordinator(
            settings=_settings(resolver_timeout_seconds=0.2),
            resolver_factory=lambda floors: _BlockingResolver(release),
        )
        try:
            plan = coordinator.plan_today(_make_context(readiness=8))
        finally:
            release.set()
        assert plan.is_fallback is True
        assert "Conflict resolution unavailable" in plan.rationale

    def test_crashing_resolver_falls_back(self):
        coordinator = _coordinator(resolver_factory=lambda floors: _CrashingResolver())
        plan = coordinator.plan_today(_make_context(readiness=8))
        assert plan.is_fallback is True

    def test_cancel_before_start(self):
        store = InMemoryStore(user_id="u1")
        cancel = threading.Event()
        cancel.set()
        coordinator = _coordinator(storage=store, auth=store, settings=_settings(persist_plans=True))
        with pytest.raises(PlanningCancelled):
            coordinator.plan_today(_make_context(), cancel=cancel)
        assert store.documents == {}

    def test_cancel_while_experts_run(self):
        store = InMemoryStore(user_id="u1")
        cancel = threading.Event()
        experts = [e for e in default_experts() if e.name != "aesthetic"] + [_Cancelling(cancel)]
        coordinator = _coordinator(
            storage=store, auth=store, experts=experts, settings=_settings(persist_plans=True)
        )
        with pytest.raises(PlanningCancelled):
            coordinator.plan_today(_make_context(), cancel=cancel)
        assert store.documents == {}

    def test_concurrent_calls_are_independent(self):
        coordinator = _coordinator()
        contexts = [_make_context(readiness=3), _make_context(readiness=9)]
        results = [None, None]

        def run(i):
            results[i] = coordinator.plan_today(contexts[i])

        threads = [threading.Thread(target=run, args=(i,)) for i in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)
        assert _main(results[0])[0][0] == "Mobility Circuit"
        assert _main(results[1])[0][0] == "Back Squat"


# ===========================================================================
# History and persistence
# ===========================================================================

class TestHistoryAndPersistence:

    def test_history_fetched_when_context_has_none(self):
        store = InMemoryStore(
            user_id="u1",
            history={"u1": list(_hard_days("2026-02-20", "2026-03-07", "2026-03-08", "2026-03-09"))},
        )
        plan = _coordinator(storage=store, auth=store).plan_today(_make_context())
        assert store.history_calls == [("u1", "2026-02-24")]
        assert plan.readiness.score == 1

    def test_context_history_is_not_refetched(self):
        store = InMemoryStore(user_id="u1")
        ctx = _make_context(history=_hard_days("2026-03-09"))
        _coordinator(storage=store, auth=store).plan_today(ctx)
        assert store.history_calls == []

    def test_plan_stored_under_user_and_date(self):
        store = InMemoryStore(user_id="u1")
        coordinator = _coordinator(storage=store, auth=store, settings=_settings(persist_plans=True))
        plan = coordinator.plan_today(_make_context(readiness=8))
        stored = store.get("plan:u1:2026-03-10")
        assert stored["is_fallback"] is False
        assert stored["total_estimated_duration"] == plan.total_estimated_duration

    def test_profile_user_id_wins(self):
        store = InMemoryStore(user_id="u1")
        coordinator = _coordinator(storage=store, auth=store, settings=_settings(persist_plans=True))
        coordinator.plan_today(_make_context(readiness=8, profile=UserProfile(user_id="athlete-7")))
        assert list(store.documents) == ["plan:athlete-7:2026-03-10"]

    def test_remote_push(self):
        store = InMemoryStore(user_id="u1")
        remote = _Remote()
        coordinator = _coordinator(
            storage=store, auth=store, remote=remote, settings=_settings(persist_plans=True)
        )
        plan = coordinator.plan_today(_make_context(readiness=8))
        coordinator.close()
        assert remote.plans == [plan]

    def test_remote_failure_does_not_retract_plan(self):
        store = InMemoryStore(user_id="u1")
        remote = _Remote(fail=True)
        coordinator = _coordinator(
            storage=store, auth=store, remote=remote, settings=_settings(persist_plans=True)
        )
        plan = coordinator.plan_today(_make_context(readiness=8))
        coordinator.close()
        assert plan.is_fallback is False
        assert "plan:u1:2026-03-10" in store.documents
        assert len(remote.plans) == 1

    def test_storage_failure_does_not_retract_plan(self):
        store = _BrokenStore(user_id="u1")
        coordinator = _coordinator(storage=store, auth=store, settings=_settings(persist_plans=True))
        plan = coordinator.plan_today(_make_context(readiness=8))
        assert plan.has_main_work
        assert plan.is_fallback is False

    def test_module_level_plan_today(self):
        plan = plan_today(_make_context(readiness=8), settings=_settings())
        assert _main(plan)[0] == ("Back Squat", 5)


# ===========================================================================
# Replan
# ===========================================================================

class TestApplyModifications:

    def test_deep_merge(self):
        ctx = _make_context(constraints=Constraints(flags=("knee_pain",)))
        merged = apply_modifications(ctx, {"constraints": {"time_limit": 30}})
        assert merged.constraints.time_limit == 30.0
        assert merged.constraints.flags == ("knee_pain",)
        assert ctx.constraints.time_limit is None

    def test_too_hard_lowers_checkin(self):
        assert apply_modifications(_make_context(readiness=6), {"too_hard": True}).readiness == 4

    def test_too_hard_never_below_one(self):
        assert apply_modifications(_make_context(readiness=2), {"too_hard": True}).readiness == 1

    def test_too_hard_without_checkin_uses_inferred_score(self):
        assert apply_modifications(_make_context(), {"too_hard": True}).readiness == 5

    def test_less_time_true_keeps_two_thirds(self):
        merged = apply_modifications(_make_context(), {"less_time": True})
        assert merged.constraints.time_limit == pytest.approx(40.2)

    def test_less_time_minutes(self):
        merged = apply_modifications(_make_context(), {"less_time": 25})
        assert merged.constraints.time_limit == 25.0

    def test_less_time_never_increases_limit(self):
        ctx = _make_context(constraints=Constraints(time_limit=30))
        assert apply_modifications(ctx, {"less_time": 90}).constraints.time_limit == 30.0

    def test_less_time_has_a_floor(self):
        assert apply_modifications(_make_context(), {"less_time": 5}).constraints.time_limit == 10.0

    def test_invalid_values_raise(self):
        with pytest.raises(ValidationError):
            apply_modifications(_make_context(), {"less_time": "soon"})
        with pytest.raises(ValidationError):
            apply_modifications(_make_context(), {"season_phase": "winter"})

    def test_no_modifications_is_identity(self):
        ctx = _make_context(readiness=8)
        assert apply_modifications(ctx, None) is ctx


class TestReplan:

    def test_empty_modifications_match_plan_today(self):
        coordinator = _coordinator()
        ctx = _make_context(readiness=8, constraints=Constraints(time_limit=30))
        assert coordinator.replan(ctx, {}) == coordinator.plan_today(ctx)

    def test_too_hard_switches_to_recovery(self):
        plan = _coordinator().replan(_make_context(readiness=6), {"too_hard": True})
        assert plan.readiness.score == 4
        assert _main(plan)[0][0] == "Mobility Circuit"

    def test_less_time_fits_new_limit(self):
        plan = _coordinator().replan(_make_context(readiness=8), {"less_time": 25})
        assert plan.is_fallback is False
        assert plan.total_estimated_duration <= 25 * 1.1

    def test_invalid_modifications_are_ignored_with_warning(self):
        ctx = _make_context(readiness=8)
        coordinator = _coordinator()
        plan = coordinator.replan(ctx, {"season_phase": "winter"})
        assert plan.blocks == coordinator.plan_today(ctx).blocks
        assert plan.warnings[-1].startswith("Ignored invalid modifications:")

    def test_module_level_replan(self):
        plan = replan(_make_context(readiness=8), {"less_time": 20}, settings=_settings())
        assert _main(plan) == [("Back Squat", 3), ("Bench Press", 2)]

    def test_abstentions_are_not_warnings(self):
        plan = _coordinator().plan_today(_make_context(readiness=9))
        assert plan.warnings == ()
