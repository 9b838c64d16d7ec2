"""
YAML → MovementCatalog loader.

Loads the three bundled catalog files from ``src/daily_coach/catalog/``:

    movements.yaml    warm-ups, cool-downs, phase programs, game-day and
                      recovery sessions
    accessories.yaml  aesthetic accessory matrix
    injuries.yaml     injury exclusions and vetted alternatives

User overrides: place a file with the same name in
``~/.daily-coach/catalog/``.  It is deep-merged over the bundled file, so
only changed keys need to be listed.

Usage (internal, called by registry.py):
    from .loader import load_catalog_from_yaml
    catalog = load_catalog_from_yaml()   # MovementCatalog or None on failure
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from ..config import SEASON_PHASES
from ..engine.config_loader import _deep_merge, _load_yaml_file, get_user_config_dir
from ..models import Exercise
from .base import AccessoryFocus, InjuryProfile, MovementCatalog, PhaseProgram

_CATALOG_FILES = ("movements", "accessories", "injuries")

_REQUIRED_EXERCISE_FIELDS: frozenset[str] = frozenset({"name", "sets"})


def exercise_from_dict(d: dict) -> tuple[Exercise, Exercise | None]:
    """Convert a raw catalog entry to an Exercise plus its optional alternative.

    Raises ValueError if any required field is absent or malformed.
    """
    if not isinstance(d, dict):
        raise ValueError(f"exercise entry must be a mapping, got {type(d).__name__}")
    missing = _REQUIRED_EXERCISE_FIELDS - set(d)
    if missing:
        raise ValueError(f"exercise entry missing fields: {sorted(missing)}")

    d = dict(d)
    raw_alt = d.pop("alternative", None)
    alternative = exercise_from_dict(raw_alt)[0] if raw_alt else None

    def _opt_float(key: str) -> float | None:
        value = d.get(key)
        return float(value) if value is not None else None

    exercise = Exercise(
        name=str(d["name"]),
        sets=int(d["sets"]),
        reps=str(d.get("reps", "8-10")),
        target_rpe=_opt_float("target_rpe"),
        load_pct=_opt_float("load_pct"),
        equipment=str(d.get("equipment", "bodyweight")),
        pattern=str(d.get("pattern", "")),
        leg_dominant=bool(d.get("leg_dominant", False)),
        minutes_per_set=float(d.get("minutes_per_set", 2.0)),
        secondary=bool(d.get("secondary", False)),
    )
    return exercise, alternative


def _exercise_list(
    raw: Any, alternatives: dict[str, Exercise], where: str
) -> tuple[Exercise, ...]:
    """Parse a list of entries, registering equipment alternatives as a side effect."""
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValueError(f"{where}: expected a list of exercises")
    out = []
    for entry in raw:
        exercise, alternative = exercise_from_dict(entry)
        if alternative is not None:
            alternatives[exercise.name.lower()] = alternative
        out.append(exercise)
    return tuple(out)


def _parse_movements(raw: dict, alternatives: dict[str, Exercise]) -> dict[str, Any]:
    programs: dict[str, PhaseProgram] = {}
    for phase, body in (raw.get("programs") or {}).items():
        # an unquoted `off:` key reaches us as the boolean False
        if not isinstance(phase, str) or phase not in SEASON_PHASES:
            raise ValueError(
                f"programs: unknown season phase {phase!r}. Valid phases: {', '.join(SEASON_PHASES)}"
            )
        if not isinstance(body, dict):
            raise ValueError(f"programs.{phase}: expected a mapping")
        main = _exercise_list(body.get("main"), alternatives, f"programs.{phase}.main")
        if not main:
            raise ValueError(f"programs.{phase}: main lifts are required")
        programs[phase] = PhaseProgram(
            phase=phase,
            emphasis=str(body.get("emphasis", "")),
            main=main,
            conditioning=_exercise_list(
                body.get("conditioning"), alternatives, f"programs.{phase}.conditioning"
            ),
        )
    missing = [phase for phase in SEASON_PHASES if phase not in programs]
    if missing:
        raise ValueError(f"programs: no template for season phase(s) {', '.join(missing)}")

    recovery = raw.get("recovery_session") or {}
    return {
        "warm_up": _exercise_list(raw.get("warm_up"), alternatives, "warm_up"),
        "cool_down": _exercise_list(raw.get("cool_down"), alternatives, "cool_down"),
        "programs": programs,
        "game_day": _exercise_list(raw.get("game_day"), alternatives, "game_day"),
        "recovery_warm_up": _exercise_list(
            recovery.get("warm_up"), alternatives, "recovery_session.warm_up"
        ),
        "recovery_main": _exercise_list(
            recovery.get("main"), alternatives, "recovery_session.main"
        ),
        "recovery_cool_down": _exercise_list(
            recovery.get("recovery"), alternatives, "recovery_session.recovery"
        ),
    }


def _parse_accessories(raw: dict, alternatives: dict[str, Exercise]) -> dict[str, AccessoryFocus]:
    out: dict[str, AccessoryFocus] = {}
    for focus, body in raw.items():
        if not isinstance(body, dict):
            raise ValueError(f"accessories.{focus}: expected a mapping")
        primary = _exercise_list(body.get("primary"), alternatives, f"{focus}.primary")
        if not primary:
            raise ValueError(f"accessories.{focus}: primary accessories are required")
        out[str(focus)] = AccessoryFocus(
            focus=str(focus),
            tooltip=str(body.get("tooltip", "")),
            primary=primary,
            secondary=_exercise_list(body.get("secondary"), alternatives, f"{focus}.secondary"),
        )
    return out


def _parse_injuries(raw: dict) -> dict[str, InjuryProfile]:
    out: dict[str, InjuryProfile] = {}
    for flag, body in raw.items():
        if not isinstance(body, dict) or not body.get("excluded"):
            raise ValueError(f"injuries.{flag}: 'excluded' patterns are required")
        alternatives = {
            str(pattern).lower(): exercise_from_dict(entry)[0]
            for pattern, entry in (body.get("alternatives") or {}).items()
        }
        out[str(flag)] = InjuryProfile(
            flag=str(flag),
            label=str(body.get("label", flag.replace("_", " "))),
            excluded=tuple(str(p).lower() for p in body["excluded"]),
            alternatives=alternatives,
        )
    return out


def _get_bundled_catalog_dir() -> Path | None:
    """Return path to the bundled catalog/ data directory, or None if not found."""
    # loader.py lives at src/daily_coach/core/catalog/loader.py
    # three levels up → src/daily_coach/
    candidate = Path(__file__).parent.parent.parent / "catalog"
    return candidate if candidate.is_dir() else None


def _get_user_catalog_dir() -> Path | None:
    """Return ~/.daily-coach/catalog/ if it exists, else None."""
    p = get_user_config_dir() / "catalog"
    return p if p.is_dir() else None


def _load_raw(stem: str, bundled_dir: Path | None, user_dir: Path | None) -> dict:
    raw: dict = {}
    if bundled_dir is not None:
        raw = _load_yaml_file(bundled_dir / f"{stem}.yaml")
    if user_dir is not None:
        user_path = user_dir / f"{stem}.yaml"
        if user_path.exists():
            user_raw = _load_yaml_file(user_path)
            if user_raw:
                raw = _deep_merge(raw, user_raw)
    return raw


def load_catalog_from_yaml() -> MovementCatalog | None:
    """Return the MovementCatalog built from bundled (+ user) YAML files.

    Returns None (rather than raising) so the registry can decide how to
    fail; the reason is logged.
    """
    bundled_dir = _get_bundled_catalog_dir()
    user_dir = _get_user_catalog_dir()
    if bundled_dir is None and user_dir is None:
        logger.error("daily-coach: no catalog directory found")
        return None

    raw = {stem: _load_raw(stem, bundled_dir, user_dir) for stem in _CATALOG_FILES}
    empty = [stem for stem, data in raw.items() if not data]
    if empty:
        logger.error(f"daily-coach: catalog files missing or empty: {', '.join(empty)}")
        return None

    alternatives: dict[str, Exercise] = {}
    try:
        movements = _parse_movements(raw["movements"], alternatives)
        accessories = _parse_accessories(raw["accessories"], alternatives)
        injuries = _parse_injuries(raw["injuries"])
    except (TypeError, ValueError) as exc:
        logger.error(f"daily-coach: invalid catalog ({exc})")
        return None

    return MovementCatalog(
        accessories=accessories,
        injuries=injuries,
        equipment_alternatives=alternatives,
        **movements,
    )
