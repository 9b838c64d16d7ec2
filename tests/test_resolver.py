"""
Conflict resolver tests: directive precedence, application and every detector.
"""

import pytest

from daily_coach.core.directives import (
    DoseFloors,
    apply_directives,
    merge_blocks,
    merged_minutes,
    resolve_precedence,
)
from daily_coach.core.errors import ResolutionAmbiguity
from daily_coach.core.experts import default_experts, run_expert
from daily_coach.core.models import (
    Block,
    Constraints,
    Context,
    Exercise,
    Game,
    LoggedExercise,
    Preferences,
    Proposal,
    Readiness,
    ResolutionDirective,
    Schedule,
    SessionRecord,
)
from daily_coach.core.resolver import ConflictResolver, Detection, resolve

TODAY = "2026-03-10"


# ===========================================================================
# Helpers
# ===========================================================================

def _make_context(**kwargs) -> Context:
    kwargs.setdefault("today", TODAY)
    return Context(**kwargs)


def _readiness(score: int = 8) -> Readiness:
    return Readiness(score=score, inferred=False, rationale=f"Daily check-in: {score}/10")


def _proposals(context: Context, readiness: Readiness) -> list[Proposal]:
    """Run the real experts and keep the populated proposals."""
    outcomes = [run_expert(e, context, readiness) for e in default_experts()]
    return [o for o in outcomes if isinstance(o, Proposal)]


def _directive(action: str, exercise: str | None = "Back Squat", **kwargs) -> ResolutionDirective:
    kwargs.setdefault("reason", f"{action} {exercise}")
    if action == "scale":
        kwargs.setdefault("factor", 0.8)
    if action == "replace":
        kwargs.setdefault("replacement", Exercise("Hip Thrust", 4))
    return ResolutionDirective("strength", "main", action, target_exercise=exercise, **kwargs)


def _lift(name: str, sets: int = 5, **kwargs) -> Exercise:
    kwargs.setdefault("minutes_per_set", 2.5)
    return Exercise(name, sets, **kwargs)


def _strength(*exercises: Exercise, category: str = "main") -> Proposal:
    return Proposal(expert="strength", blocks=(Block(category, exercises),))


# ===========================================================================
# Precedence
# ===========================================================================

class TestPrecedence:
    """suppress > replace > scale on the same target."""

    @pytest.mark.parametrize(
        "first, second, winner",
        [
            ("scale", "suppress", "suppress"),
            ("suppress", "scale", "suppress"),
            ("replace", "suppress", "suppress"),
            ("scale", "replace", "replace"),
            ("replace", "scale", "replace"),
        ],
    )
    def test_higher_precedence_wins_regardless_of_order(self, first, second, winner):
        result = resolve_precedence([_directive(first), _directive(second)])
        assert [d.action for d in result.accepted] == [winner]
        assert len(result.superseded) == 1
        assert result.ambiguities == ()

    def test_identical_directives_collapse(self):
        result = resolve_precedence([_directive("scale"), _directive("scale", reason="other words")])
        assert len(result.accepted) == 1
        assert result.superseded == ()
        assert result.ambiguities == ()

    def test_equal_precedence_keeps_first_and_records_ambiguity(self):
        first = _directive("scale", factor=0.8, reason="game")
        second = _directive("scale", factor=0.5, reason="readiness")
        result = resolve_precedence([first, second])
        assert result.accepted == (first,)
        assert result.superseded == (second,)
        assert result.ambiguities == (
            "Equal-precedence scale directives on strength/main/back squat: "
            "kept 'game', dropped 'readiness'",
        )

    def test_volume_and_intensity_scales_compose(self):
        lighten = _directive("scale", factor=0.8, dimension="intensity", reason="game")
        trim = _directive("scale", factor=0.6, dimension="volume", reason="time")
        result = resolve_precedence([lighten, trim])
        assert result.accepted == (lighten, trim)
        assert result.superseded == ()
        assert result.ambiguities == ()

    def test_overlapping_scale_dimensions_stay_ambiguous(self):
        lighten = _directive("scale", factor=0.8, dimension="intensity", reason="game")
        trim = _directive("scale", factor=0.6, dimension="volume", reason="time")
        both = _directive("scale", factor=0.9, dimension="both", reason="readiness")
        result = resolve_precedence([lighten, trim, both])
        assert result.accepted == (lighten, trim)
        assert result.superseded == (both,)
        assert result.ambiguities == (
            "Equal-precedence scale directives on strength/main/back squat: "
            "kept 'game', dropped 'readiness'",
        )

    def test_target_match_is_case_insensitive(self):
        result = resolve_precedence([_directive("scale", "BACK SQUAT"), _directive("suppress")])
        assert [d.action for d in result.accepted] == ["suppress"]

    def test_block_suppress_supersedes_exercise_directives(self):
        replace_it = _directive("replace")
        block = _directive("suppress", None, reason="recovery day")
        other_block = ResolutionDirective(
            "strength", "accessory", "scale", "keep", factor=0.5, target_exercise="Curl",
        )
        result = resolve_precedence([replace_it, block, other_block])
        assert result.accepted == (block, other_block)
        assert result.superseded == (replace_it,)

    def test_directive_validation(self):
        with pytest.raises(ValueError):
            ResolutionDirective("strength", "main", "scale", "x", factor=1.5)
        with pytest.raises(ValueError):
            ResolutionDirective("strength", "main", "replace", "x", target_exercise="Squat")
        with pytest.raises(ValueError):
            ResolutionDirective("strength", "main", "delete", "x")


# ===========================================================================
# Application and dose floors
# ===========================================================================

class TestApplyDirectives:
    """Directives rewrite proposals without touching the originals."""

    def test_missing_target_is_noop(self):
        p = _strength(_lift("Bench Press"))
        out = apply_directives([p], [_directive("suppress", "Deadlift")])
        assert out == [p]

    def test_suppress_exercise_and_empty_block_dropped(self):
        p = _strength(_lift("Back Squat"))
        out = apply_directives([p], [_directive("suppress")])
        assert out[0].blocks == ()
        assert out[0].expert == "strength"

    def test_main_volume_never_below_floor(self):
        p = _strength(_lift("Back Squat", 5))
        d1 = _directive("scale", factor=0.5, dimension="volume", reason="a")
        d2 = ResolutionDirective(
            "strength", "main", "scale", "b", factor=0.5, dimension="volume",
        )
        out = apply_directives([p], [d1, d2])
        # 0.25 cumulative is clamped to 0.4: round_half_up(5 * 0.4) = 2
        assert out[0].block("main").exercises[0].sets == 2

    def test_main_sets_floor_is_two(self):
        p = _strength(_lift("Back Squat", 3))
        out = apply_directives([p], [_directive("scale", factor=0.1, dimension="volume")])
        assert out[0].block("main").exercises[0].sets == 2

    def test_accessory_floor_is_one_set(self):
        p = _strength(_lift("Curl", 3), category="accessory")
        d = ResolutionDirective(
            "strength", "accessory", "scale", "trim", factor=0.1, target_exercise="Curl",
            dimension="volume",
        )
        assert apply_directives([p], [d])[0].block("accessory").exercises[0].sets == 1

    def test_intensity_scale_rounds_load_to_plate(self):
        p = _strength(_lift("Back Squat", load_kg=100.0, load_pct=0.8))
        d = _directive("scale", factor=0.8, dimension="intensity")
        squat = apply_directives([p], [d])[0].block("main").exercises[0]
        assert squat.sets == 5
        assert squat.load_kg == pytest.approx(80.0)
        assert squat.load_pct == pytest.approx(0.64)
        assert squat.intensity == pytest.approx(0.8)

    def test_intensity_never_below_load_floor(self):
        p = _strength(_lift("Back Squat", load_kg=100.0))
        out = apply_directives([p], [_directive("scale", factor=0.3, dimension="intensity")])
        assert out[0].block("main").exercises[0].load_kg == pytest.approx(60.0)

    def test_replacement_inherits_scaling(self):
        p = _strength(_lift("Back Squat", 5))
        directives = [
            _directive("scale", factor=0.6, dimension="volume"),
            _directive("replace", replacement=Exercise("Hip Thrust", 5)),
        ]
        out = apply_directives([p], directives)
        assert [(e.name, e.sets) for e in out[0].block("main").exercises] == [("Hip Thrust", 3)]

    def test_custom_floors(self):
        p = _strength(_lift("Back Squat", 6))
        floors = DoseFloors(min_main_sets=3, min_volume_fraction=0.5)
        out = apply_directives([p], [_directive("scale", factor=0.1, dimension="volume")], floors)
        assert out[0].block("main").exercises[0].sets == 3


class TestMergeBlocks:

    def test_canonical_order_and_priority_dedupe(self):
        strength = Proposal(
            expert="strength",
            blocks=(
                Block("recovery", (Exercise("Foam Rolling", 1),)),
                Block("main", (Exercise("Push-Up", 5), Exercise("Bench Press", 5))),
            ),
        )
        schedule = Proposal(expert="schedule", blocks=(Block("main", (Exercise("Push-Up", 3),)),))
        blocks = merge_blocks([strength, schedule])
        assert [b.category for b in blocks] == ["main", "recovery"]
        main = blocks[0]
        assert [(e.name, e.sets) for e in main.exercises] == [("Push-Up", 3), ("Bench Press", 5)]

    def test_merged_minutes(self):
        p = _strength(_lift("Back Squat", 4), _lift("Bench Press", 2))
        assert merged_minutes([p]) == pytest.approx(15.0)


# ===========================================================================
# Detectors
# ===========================================================================

class TestInjuryExclusion:

    def test_back_squat_replaced_for_knee_pain(self):
        ctx = _make_context(constraints=Constraints(flags=("knee_pain",)))
        r = _readiness()
        res = resolve(_proposals(ctx, r), ctx, r)
        assert len(res.directives) == 1
        d = res.directives[0]
        assert (d.action, d.target_exercise, d.replacement.name) == ("replace", "Back Squat", "Hip Thrust")
        assert d.reason == "Replaced Back Squat with Hip Thrust: knee pain"
        assert res.conflicts[0].kind == "injury_exclusion"
        assert res.conflicts[0].severity == "block"

    def test_rdl_replaced_for_low_back_pain(self):
        ctx = _make_context(constraints=Constraints(flags=("low_back_pain",)))
        r = _readiness()
        res = resolve(_proposals(ctx, r), ctx, r)
        replaced = {d.target_exercise: d.replacement.name for d in res.directives}
        assert replaced == {
            "Leg Swings": "Cat-Cow",  # "swing" pattern
            "Back Squat": "Goblet Box Sit",
            "Romanian Deadlift": "Glute Bridge",
        }

    def test_shuttle_runs_replaced_for_hamstring_injury(self):
        ctx = _make_context(season_phase="pre", constraints=Constraints(flags=("hamstring_injury",)))
        r = _readiness()
        res = resolve(_proposals(ctx, r), ctx, r)
        d = next(d for d in res.directives if d.target_exercise == "Shuttle Runs")
        assert d.replacement.name == "Easy Bike"
        assert d.target_category == "conditioning"

    def test_no_alternative_suppresses(self):
        ctx = _make_context(constraints=Constraints(flags=("knee_pain",)))
        p = _strength(_lift("Step-Up", 3), _lift("Bench Press"))
        res = resolve([p], ctx, _readiness())
        assert [(d.action, d.target_exercise) for d in res.directives] == [("suppress", "Step-Up")]
        assert res.directives[0].reason == "Removed Step-Up: knee pain"

    def test_alternative_already_in_block_is_not_reused(self):
        ctx = _make_context(constraints=Constraints(flags=("knee_pain",)))
        p = _strength(_lift("Back Squat"), _lift("Hip Thrust", pattern="bridge"))
        res = resolve([p], ctx, _readiness())
        assert res.directives[0].action == "suppress"

    def test_coach_exclusion(self):
        ctx = _make_context(constraints=Constraints(overrides={"exclude": ["bench press"]}))
        r = _readiness()
        res = resolve(_proposals(ctx, r), ctx, r)
        assert [(d.action, d.target_exercise) for d in res.directives] == [("suppress", "Bench Press")]
        assert res.directives[0].reason == "Removed Bench Press: excluded on request"


class TestGameProximity:

    def test_high_importance_game_suppresses_heavy_legs(self):
        ctx = _make_context(schedule=Schedule((Game("2026-03-11", "high"),)))
        r = _readiness()
        res = resolve(_proposals(ctx, r), ctx, r)
        suppressed = [(d.action, d.target_exercise) for d in res.directives]
        assert suppressed == [("suppress", "Back Squat"), ("suppress", "Romanian Deadlift")]
        assert res.directives[0].reason == "Removed heavy leg work (Back Squat): game tomorrow"

    def test_normal_game_lightens_leg_load(self):
        ctx = _make_context(schedule=Schedule((Game("2026-03-11"),)))
        r = _readiness()
        res = resolve(_proposals(ctx, r), ctx, r)
        assert {(d.action, d.dimension, d.factor) for d in res.directives} == {("scale", "intensity", 0.8)}
        assert [d.target_exercise for d in res.directives] == ["Back Squat", "Romanian Deadlift"]

    def test_light_leg_work_is_left_alone(self):
        ctx = _make_context(schedule=Schedule((Game("2026-03-11", "high"),)))
        p = _strength(_lift("Goblet Squat", leg_dominant=True, target_rpe=6))
        assert resolve([p], ctx, _readiness()).directives == ()

    def test_injury_replacement_seen_by_later_detectors(self):
        ctx = _make_context(
            schedule=Schedule((Game("2026-03-11", "high"),)),
            constraints=Constraints(flags=("knee_pain",)),
        )
        r = _readiness()
        res = resolve(_proposals(ctx, r), ctx, r)
        # Hip Thrust (RPE 6) is not heavy, so only the RDL is removed for the game
        assert [(d.action, d.target_exercise) for d in res.directives] == [
            ("replace", "Back Squat"),
            ("suppress", "Romanian Deadlift"),
        ]


class TestReadinessOverride:

    def test_recovery_day_suppresses_high_intensity_blocks(self):
        ctx = _make_context()
        r = _readiness(3)
        res = resolve(_proposals(ctx, r), ctx, r)
        targets = [(d.action, d.target_expert, d.target_category, d.target_exercise) for d in res.directives]
        assert targets == [
            ("suppress", "strength", "main", None),
            ("suppress", "strength", "conditioning", None),
        ]
        assert res.directives[0].reason == "Low readiness (≤4) triggers recovery session."

    def test_block_suppress_supersedes_injury_replacement(self):
        ctx = _make_context(constraints=Constraints(flags=("knee_pain",)))
        r = _readiness(3)
        res = resolve(_proposals(ctx, r), ctx, r)
        assert [d.action for d in res.superseded] == ["replace"]
        assert res.superseded[0].target_exercise == "Back Squat"

    def test_moderate_readiness_scales_main(self):
        ctx = _make_context()
        r = _readiness(6)
        res = resolve(_proposals(ctx, r), ctx, r)
        assert len(res.directives) == 1
        d = res.directives[0]
        assert (d.action, d.target_category, d.factor, d.dimension) == ("scale", "main", 0.9, "both")
        assert d.reason == "Moderate readiness (6/10): volume and intensity x0.9"

    def test_high_readiness_no_override(self):
        ctx = _make_context()
        r = _readiness(9)
        assert resolve(_proposals(ctx, r), ctx, r).directives == ()


class TestTimeOverflow:

    def test_twenty_minute_budget(self):
        ctx = _make_context(constraints=Constraints(time_limit=20))
        r = _readiness()
        proposals = _proposals(ctx, r)
        res = resolve(proposals, ctx, r)
        actions = [(d.action, d.target_category, d.target_exercise) for d in res.directives]
        assert actions[:3] == [
            ("suppress", "conditioning", None),
            ("suppress", "recovery", None),
            ("suppress", "main", "Romanian Deadlift"),
        ]
        resolved = apply_directives(proposals, res.directives)
        main = next(b for b in merge_blocks(resolved) if b.category == "main")
        # 57.5 min trimmed to warm-up 6 + squat 3 x 2.5 + bench 2 x 2.5
        assert [(e.name, e.sets) for e in main.exercises] == [("Back Squat", 3), ("Bench Press", 2)]
        assert merged_minutes(resolved) == pytest.approx(18.5)

    def test_within_budget_untouched(self):
        ctx = _make_context(constraints=Constraints(time_limit=90))
        r = _readiness()
        assert resolve(_proposals(ctx, r), ctx, r).directives == ()

    def test_primary_lift_survives_tiny_budget(self):
        ctx = _make_context(constraints=Constraints(time_limit=5))
        r = _readiness()
        proposals = _proposals(ctx, r)
        res = resolve(proposals, ctx, r)
        main = next(b for b in merge_blocks(apply_directives(proposals, res.directives)) if b.category == "main")
        assert [(e.name, e.sets) for e in main.exercises] == [("Back Squat", 2)]
        assert {c.kind for c in res.conflicts} == {"time_overflow"}

    def test_time_trim_composes_with_game_lightening(self):
        ctx = _make_context(
            schedule=Schedule((Game("2026-03-12"),)),
            constraints=Constraints(time_limit=20),
        )
        r = _readiness()
        proposals = _proposals(ctx, r)
        res = resolve(proposals, ctx, r)
        assert res.ambiguities == ()
        squat = {(d.dimension, d.detector) for d in res.directives if d.target_exercise == "Back Squat"}
        assert squat == {("intensity", "game_proximity"), ("volume", "time_overflow")}
        # the RDL is removed for time, so its game lightening never applies
        assert [(d.action, d.target_exercise) for d in res.superseded] == [("scale", "Romanian Deadlift")]
        resolved = apply_directives(proposals, res.directives)
        main = next(b for b in merge_blocks(resolved) if b.category == "main")
        assert [(e.name, e.sets) for e in main.exercises] == [("Back Squat", 3), ("Bench Press", 2)]
        assert merged_minutes(resolved) == pytest.approx(18.5)


class TestAestheticSplit:

    def test_accessories_trimmed_to_share(self):
        strength = _strength(*[_lift(f"Lift {i}") for i in range(4)])
        aesthetic = Proposal(
            expert="aesthetic",
            blocks=(Block("accessory", (Exercise("A", 4), Exercise("B", 3), Exercise("C", 3))),),
        )
        res = resolve([strength, aesthetic], _make_context(), _readiness())
        assert [(d.action, d.target_exercise) for d in res.directives] == [("suppress", "C")]
        assert res.directives[0].reason == "Dropped C: aesthetic work held to 30% of session volume"

    def test_default_glutes_within_share(self):
        ctx = _make_context(preferences=Preferences(aesthetic_focus="glutes"))
        r = _readiness()
        assert resolve(_proposals(ctx, r), ctx, r).directives == ()


class TestVolumeSpike:

    def test_spike_is_a_warning_only(self):
        history = tuple(
            SessionRecord(d, (LoggedExercise("Back Squat", sets=10, reps=5, rpe=7),))
            for d in ("2026-03-05", "2026-03-07", "2026-03-09")
        )
        ctx = _make_context(history=history)
        r = _readiness()
        res = resolve(_proposals(ctx, r), ctx, r)
        assert res.directives == ()
        assert res.warnings == ("Volume spike: 15 working sets vs recent average 10.0 (+50%)",)

    def test_no_history_no_warning(self):
        ctx = _make_context()
        r = _readiness()
        assert resolve(_proposals(ctx, r), ctx, r).warnings == ()


# ===========================================================================
# Resolver options
# ===========================================================================

def _clashing_detector(proposals, context, readiness, floors):
    found = Detection()
    for factor, reason in ((0.8, "first"), (0.5, "second")):
        found.directives.append(
            ResolutionDirective("strength", "main", "scale", reason, factor=factor)
        )
    return found


class TestResolverOptions:

    def test_ambiguity_is_recorded(self):
        p = _strength(_lift("Back Squat"))
        res = ConflictResolver(detectors=(("clash", _clashing_detector),)).resolve(
            [p], _make_context(), _readiness()
        )
        assert [d.reason for d in res.directives] == ["first"]
        assert len(res.ambiguities) == 1

    def test_strict_resolver_raises(self):
        p = _strength(_lift("Back Squat"))
        resolver = ConflictResolver(detectors=(("clash", _clashing_detector),), strict=True)
        with pytest.raises(ResolutionAmbiguity):
            resolver.resolve([p], _make_context(), _readiness())

    def test_no_proposals(self):
        res = resolve([], _make_context(), _readiness())
        assert res.directives == () and res.conflicts == ()
