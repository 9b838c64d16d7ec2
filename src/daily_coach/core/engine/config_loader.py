"""
YAML → typed config loader.

Loads coordinator tuning from coordinator.yaml (bundled with the package) and
optionally merges user overrides from ~/.daily-coach/coordinator.yaml.

Usage:
    from daily_coach.core.engine.config_loader import load_coordinator_settings
    settings = load_coordinator_settings()
    settings.expert_timeout_seconds

If the bundled YAML cannot be parsed, all lookups return the Python defaults
from config.py (no crash).  If the user override file exists but has parse
errors, a warning is logged and the file is ignored.
"""

from __future__ import annotations

import importlib.resources
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from .. import config as defaults

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; return {} on any error."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning(f"daily-coach: ignoring unreadable config {path} ({exc})")
        return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (non-destructive to base)."""
    result = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(result.get(k), dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def get_user_config_dir() -> Path:
    """Return ~/.daily-coach (may not exist)."""
    home = Path(os.environ.get("HOME", "~")).expanduser()
    return home / ".daily-coach"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_bundled_yaml_path() -> Path | None:
    """Return the path to the bundled coordinator.yaml, or None if not found."""
    try:
        ref = importlib.resources.files("daily_coach").joinpath("coordinator.yaml")
        with importlib.resources.as_file(ref) as p:
            return p if p.exists() else None
    except (ModuleNotFoundError, FileNotFoundError):
        candidate = Path(__file__).parent.parent.parent / "coordinator.yaml"
        return candidate if candidate.exists() else None


def get_user_yaml_path() -> Path | None:
    """Return ~/.daily-coach/coordinator.yaml if it exists, else None."""
    p = get_user_config_dir() / "coordinator.yaml"
    return p if p.exists() else None


def load_model_config() -> dict[str, Any]:
    """
    Load and merge coordinator configuration from YAML sources.

    Load order (later overrides earlier):
    1. Bundled src/daily_coach/coordinator.yaml
    2. User override at ~/.daily-coach/coordinator.yaml

    Returns:
        Merged dict of config sections.  Empty dict if no YAML available.
    """
    config: dict[str, Any] = {}

    bundled = get_bundled_yaml_path()
    if bundled is not None:
        config = _deep_merge(config, _load_yaml_file(bundled))

    user = get_user_yaml_path()
    if user is not None:
        user_cfg = _load_yaml_file(user)
        if user_cfg:
            config = _deep_merge(config, user_cfg)

    return config


@dataclass(frozen=True)
class CoordinatorSettings:
    """Runtime knobs for one Coordinator instance."""

    expert_timeout_seconds: float = defaults.EXPERT_TIMEOUT_SECONDS
    resolver_timeout_seconds: float = defaults.RESOLVER_TIMEOUT_SECONDS
    history_lookback_days: int = defaults.HISTORY_LOOKBACK_DAYS
    time_tolerance: float = defaults.TIME_TOLERANCE
    min_main_sets: int = defaults.MIN_MAIN_SETS
    min_accessory_sets: int = defaults.MIN_ACCESSORY_SETS
    min_volume_fraction: float = defaults.MIN_VOLUME_FRACTION
    load_floor_fraction: float = defaults.LOAD_FLOOR_FRACTION
    persist_plans: bool = True

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "CoordinatorSettings":
        """
        Build settings from the merged YAML dict.

        Recognised sections are ``pipeline`` and ``floors``; unknown keys and
        values of the wrong type are ignored with a warning.
        """
        flat: dict[str, Any] = {}
        for section in ("pipeline", "floors"):
            raw = config.get(section) or {}
            if isinstance(raw, dict):
                flat.update(raw)

        known = {f.name: f for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in flat.items():
            f = known.get(key)
            if f is None:
                logger.warning(f"daily-coach: unknown config key {key!r} ignored")
                continue
            default = f.default
            try:
                if isinstance(default, bool):
                    kwargs[key] = bool(value)
                elif isinstance(default, int):
                    kwargs[key] = int(value)
                else:
                    kwargs[key] = float(value)
            except (TypeError, ValueError):
                logger.warning(f"daily-coach: bad value for {key!r}: {value!r}")
        return cls(**kwargs)


def load_coordinator_settings() -> CoordinatorSettings:
    """Settings from bundled + user YAML, falling back to config.py defaults."""
    return CoordinatorSettings.from_config(load_model_config())
