"""
JSON serialization for planning data models.

Handles conversion between dataclasses and JSON-compatible dicts.  Context
documents come from callers (CLI files, replan modifications); plans go to
storage and the remote persistence collaborator.
"""

import json
import re
from datetime import datetime
from typing import Any

from ..core.models import (
    Block,
    Constraints,
    Context,
    Exercise,
    ExternalActivity,
    Game,
    LoggedExercise,
    Plan,
    Preferences,
    Readiness,
    Schedule,
    SessionRecord,
    UserProfile,
)


class ValidationError(Exception):
    """Raised when data validation fails."""

    pass


def validate_date(date_str: str) -> str:
    """
    Validate and normalize date string to ISO format.

    Args:
        date_str: Date string to validate

    Returns:
        Normalized YYYY-MM-DD string

    Raises:
        ValidationError: If date format is invalid
    """
    if not isinstance(date_str, str) or not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        raise ValidationError(f"Invalid date format: {date_str}. Expected YYYY-MM-DD")

    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError as e:
        raise ValidationError(f"Invalid date: {date_str}") from e

    return date_str


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValidationError(f"{key} must be an object, got {type(value).__name__}")
    return value


def _items(data: dict[str, Any], key: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list, got {type(value).__name__}")
    return value


def _optional_float(value: Any) -> float | None:
    return float(value) if value is not None else None


# =============================================================================
# Context
# =============================================================================


def session_record_to_dict(session: SessionRecord) -> dict[str, Any]:
    """
    Convert SessionRecord to JSON-compatible dict.

    Args:
        session: SessionRecord to convert

    Returns:
        Dict representation
    """
    d: dict[str, Any] = {
        "date": session.date,
        "exercises": [
            {
                "name": e.name,
                "sets": e.sets,
                "reps": e.reps,
                "rpe": e.rpe,
                "load_kg": e.load_kg,
            }
            for e in session.exercises
        ],
    }
    if session.rpe is not None:
        d["rpe"] = session.rpe
    return d


def dict_to_session_record(data: dict[str, Any]) -> SessionRecord:
    """
    Convert dict to SessionRecord.

    Args:
        data: Dict representation

    Returns:
        SessionRecord instance

    Raises:
        ValidationError: If data is invalid
    """
    if not isinstance(data, dict):
        raise ValidationError(f"session must be an object, got {type(data).__name__}")
    validate_date(data.get("date"))
    try:
        exercises = tuple(
            LoggedExercise(
                name=str(e["name"]),
                sets=int(e.get("sets", 0)),
                reps=int(e.get("reps", 0)),
                rpe=_optional_float(e.get("rpe")),
                load_kg=_optional_float(e.get("load_kg")),
            )
            for e in _items(data, "exercises")
        )
        return SessionRecord(
            date=data["date"],
            exercises=exercises,
            rpe=_optional_float(data.get("rpe")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid session {data.get('date')}: {e}") from e


def context_to_dict(context: Context) -> dict[str, Any]:
    """
    Convert Context to JSON-compatible dict.

    The raw ``readiness`` value is kept as-is (it may be absent or out of
    range; the readiness provider decides what it means).

    Args:
        context: Context to convert

    Returns:
        Dict representation
    """
    p = context.profile
    prefs = context.preferences
    c = context.constraints
    return {
        "today": context.today,
        "profile": {
            "user_id": p.user_id,
            "sport": p.sport,
            "position": p.position,
            "height_cm": p.height_cm,
            "weight_kg": p.weight_kg,
        },
        "season_phase": context.season_phase,
        "week_number": context.week_number,
        "schedule": {
            "upcoming_games": [
                {"date": g.date, "importance": g.importance, "opponent": g.opponent}
                for g in context.schedule.upcoming_games
            ],
        },
        "history": [session_record_to_dict(s) for s in context.history],
        "readiness": context.readiness,
        "preferences": {
            "aesthetic_focus": prefs.aesthetic_focus,
            "training_mode": prefs.training_mode,
            "available_days": prefs.available_days,
            "session_length": prefs.session_length,
        },
        "constraints": {
            "time_limit": c.time_limit,
            "equipment": list(c.equipment),
            "flags": list(c.flags),
            "overrides": json.loads(json.dumps(c.overrides)),
        },
        "external_activities": [
            {"date": a.date, "kind": a.kind, "minutes": a.minutes}
            for a in context.external_activities
        ],
    }


def dict_to_context(data: dict[str, Any]) -> Context:
    """
    Convert dict to Context.

    Missing sections take their defaults; ``today`` defaults to the
    current date.

    Args:
        data: Dict representation

    Returns:
        Context instance

    Raises:
        ValidationError: If data is invalid
    """
    if not isinstance(data, dict):
        raise ValidationError(f"context must be an object, got {type(data).__name__}")

    try:
        profile_data = _section(data, "profile")
        profile = UserProfile(
            user_id=str(profile_data.get("user_id") or ""),
            sport=str(profile_data.get("sport") or ""),
            position=str(profile_data.get("position") or ""),
            height_cm=_optional_float(profile_data.get("height_cm")),
            weight_kg=_optional_float(profile_data.get("weight_kg")),
        )

        games = []
        for g in _items(_section(data, "schedule"), "upcoming_games"):
            validate_date(g.get("date"))
            games.append(
                Game(
                    date=g["date"],
                    importance=g.get("importance", "normal"),
                    opponent=str(g.get("opponent") or ""),
                )
            )

        prefs_data = _section(data, "preferences")
        preferences = Preferences(
            aesthetic_focus=prefs_data.get("aesthetic_focus"),
            training_mode=prefs_data.get("training_mode", "advanced"),
            available_days=int(prefs_data.get("available_days", 3)),
            session_length=float(prefs_data.get("session_length", 60.0)),
        )

        c = _section(data, "constraints")
        overrides = c.get("overrides") or {}
        if not isinstance(overrides, dict):
            raise ValidationError("constraints.overrides must be an object")
        constraints = Constraints(
            time_limit=_optional_float(c.get("time_limit")),
            equipment=tuple(str(e) for e in _items(c, "equipment")),
            flags=tuple(str(f) for f in _items(c, "flags")),
            overrides=dict(overrides),
        )

        activities = []
        for a in _items(data, "external_activities"):
            validate_date(a.get("date"))
            activities.append(
                ExternalActivity(
                    date=a["date"],
                    kind=str(a.get("kind") or ""),
                    minutes=float(a.get("minutes", 0.0)),
                )
            )

        kwargs: dict[str, Any] = {}
        if data.get("today") is not None:
            kwargs["today"] = validate_date(data["today"])

        return Context(
            profile=profile,
            season_phase=data.get("season_phase", "off"),
            schedule=Schedule(tuple(games)),
            history=tuple(dict_to_session_record(s) for s in _items(data, "history")),
            readiness=data.get("readiness"),
            preferences=preferences,
            constraints=constraints,
            external_activities=tuple(activities),
            week_number=int(data.get("week_number", 1)),
            **kwargs,
        )
    except ValidationError:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid context: {e}") from e


# =============================================================================
# Plan
# =============================================================================


def exercise_to_dict(exercise: Exercise) -> dict[str, Any]:
    """Convert Exercise to JSON-compatible dict."""
    return {
        "name": exercise.name,
        "sets": exercise.sets,
        "reps": exercise.reps,
        "target_rpe": exercise.target_rpe,
        "load_pct": exercise.load_pct,
        "load_kg": exercise.load_kg,
        "equipment": exercise.equipment,
        "pattern": exercise.pattern,
        "leg_dominant": exercise.leg_dominant,
        "minutes_per_set": exercise.minutes_per_set,
        "intensity": exercise.intensity,
        "secondary": exercise.secondary,
    }


def dict_to_exercise(data: dict[str, Any]) -> Exercise:
    """
    Convert dict to Exercise.

    Raises:
        ValidationError: If data is invalid
    """
    try:
        return Exercise(
            name=str(data["name"]),
            sets=int(data["sets"]),
            reps=str(data.get("reps", "8-10")),
            target_rpe=_optional_float(data.get("target_rpe")),
            load_pct=_optional_float(data.get("load_pct")),
            load_kg=_optional_float(data.get("load_kg")),
            equipment=str(data.get("equipment", "bodyweight")),
            pattern=str(data.get("pattern", "")),
            leg_dominant=bool(data.get("leg_dominant", False)),
            minutes_per_set=float(data.get("minutes_per_set", 2.0)),
            intensity=float(data.get("intensity", 1.0)),
            secondary=bool(data.get("secondary", False)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid exercise {data!r}: {e}") from e


def plan_to_dict(plan: Plan) -> dict[str, Any]:
    """
    Convert Plan to JSON-compatible dict.

    Args:
        plan: Plan to convert

    Returns:
        Dict representation
    """
    readiness = None
    if plan.readiness is not None:
        readiness = {
            "score": plan.readiness.score,
            "inferred": plan.readiness.inferred,
            "rationale": plan.readiness.rationale,
        }
    return {
        "blocks": [
            {
                "category": b.category,
                "intensity_multiplier": b.intensity_multiplier,
                "exercises": [exercise_to_dict(e) for e in b.exercises],
            }
            for b in plan.blocks
        ],
        "total_estimated_duration": plan.total_estimated_duration,
        "rationale": list(plan.rationale),
        "is_fallback": plan.is_fallback,
        "source_experts": list(plan.source_experts),
        "warnings": list(plan.warnings),
        "readiness": readiness,
    }


def dict_to_plan(data: dict[str, Any]) -> Plan:
    """
    Convert dict to Plan.

    Args:
        data: Dict representation

    Returns:
        Plan instance

    Raises:
        ValidationError: If data is invalid
    """
    try:
        blocks = tuple(
            Block(
                category=b["category"],
                exercises=tuple(dict_to_exercise(e) for e in b.get("exercises", [])),
                intensity_multiplier=float(b.get("intensity_multiplier", 1.0)),
            )
            for b in data["blocks"]
        )
        r = data.get("readiness")
        readiness = (
            Readiness(int(r["score"]), bool(r["inferred"]), str(r.get("rationale", "")))
            if r
            else None
        )
        return Plan(
            blocks=blocks,
            total_estimated_duration=float(data["total_estimated_duration"]),
            rationale=tuple(data.get("rationale", [])),
            is_fallback=bool(data.get("is_fallback", False)),
            source_experts=tuple(data.get("source_experts", [])),
            warnings=tuple(data.get("warnings", [])),
            readiness=readiness,
        )
    except ValidationError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid plan: {e}") from e


# =============================================================================
# CLI helpers
# =============================================================================


def parse_assignment(text: str) -> dict[str, Any]:
    """
    Parse a ``dotted.key=value`` override into a nested dict.

    The value is read as JSON when it parses (numbers, lists, null, true)
    and as a plain string otherwise.

    Examples:
        "constraints.time_limit=30"      → {"constraints": {"time_limit": 30}}
        "preferences.aesthetic_focus=glutes"
                                         → {"preferences": {"aesthetic_focus": "glutes"}}

    Raises:
        ValidationError: If there is no '=' or the key is empty
    """
    key, sep, raw = text.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ValidationError(f"Invalid override {text!r}. Expected key=value")
    try:
        value: Any = json.loads(raw)
    except json.JSONDecodeError:
        value = raw.strip()

    parts = [p for p in key.split(".") if p]
    if not parts:
        raise ValidationError(f"Invalid override key: {key!r}")
    result: dict[str, Any] = {parts[-1]: value}
    for part in reversed(parts[:-1]):
        result = {part: result}
    return result


def parse_logged_exercise(text: str) -> LoggedExercise:
    """
    Parse a compact logged-exercise string.

    Format: ``Name:sets:reps[:rpe[:load_kg]]``

    Examples:
        "Back Squat:5:5:8:100"  → 5x5 at RPE 8 with 100 kg
        "Pull-Up:3:8"           → 3x8, no RPE or load

    Raises:
        ValidationError: If the string is malformed
    """
    parts = [p.strip() for p in text.split(":")]
    if len(parts) < 3 or len(parts) > 5 or not parts[0]:
        raise ValidationError(
            f"Invalid exercise {text!r}. Expected Name:sets:reps[:rpe[:load_kg]]"
        )
    try:
        return LoggedExercise(
            name=parts[0],
            sets=int(parts[1]),
            reps=int(parts[2]),
            rpe=float(parts[3]) if len(parts) > 3 and parts[3] else None,
            load_kg=float(parts[4]) if len(parts) > 4 and parts[4] else None,
        )
    except ValueError as e:
        raise ValidationError(f"Invalid exercise {text!r}: {e}") from e
