"""
Configuration constants for the daily session coordinator.

All adjustable parameters are centralized here for easy tuning.  Timeouts and
dose floors can be overridden through coordinator.yaml (see engine/config_loader.py).
"""

import math
from typing import Final

# =============================================================================
# READINESS INFERENCE
# =============================================================================

READINESS_MIN: Final[int] = 1
READINESS_MAX: Final[int] = 10
READINESS_BASELINE: Final[float] = 7.0  # Neutral score when nothing is known

LAST_RPE_HIGH: Final[float] = 9.0  # Last session at or above this: -2
LAST_RPE_HIGH_PENALTY: Final[float] = 2.0
LAST_RPE_LOW: Final[float] = 5.0  # Last session below this: +1
LAST_RPE_LOW_BONUS: Final[float] = 1.0

GAME_IMMINENT_DAYS: Final[int] = 1  # Game within a day: -1
GAME_IMMINENT_PENALTY: Final[float] = 1.0
GAME_NEAR_DAYS: Final[int] = 3  # Game within three days: -0.5
GAME_NEAR_PENALTY: Final[float] = 0.5

HARD_SESSION_RPE: Final[float] = 8.0  # Session counts as a hard day at or above this
HARD_STREAK_MIN: Final[int] = 2
HARD_STREAK_PENALTY_PER_DAY: Final[float] = 2.0  # Applied per day beyond the first
HARD_STREAK_RECENCY_DAYS: Final[int] = 2  # Streak must end this close to today

EXTERNAL_ACTIVITY_PENALTY: Final[float] = 1.0
INJURY_FLAG_PENALTY: Final[float] = 1.5

# =============================================================================
# STRENGTH / PROGRESSION
# =============================================================================

DELOAD_EVERY_WEEKS: Final[int] = 4
DELOAD_VOLUME_FACTOR: Final[float] = 0.80

PROGRESSION_RPE_HIGH: Final[float] = 8.0  # Above this: reduce load
PROGRESSION_RPE_LOW: Final[float] = 6.0  # Below this: add load
PROGRESSION_RPE_VERY_LOW: Final[float] = 5.0  # Below this: full increment
LOAD_DECREMENT: Final[float] = 0.05
LOAD_INCREMENT_SMALL: Final[float] = 0.025
LOAD_INCREMENT_LARGE: Final[float] = 0.05
MAX_CUMULATIVE_LOAD_REDUCTION: Final[float] = 0.15
LOAD_FLOOR_FRACTION: Final[float] = 0.60  # Never prescribe below this share of the template
PLATE_ROUNDING_KG: Final[float] = 2.5

# =============================================================================
# RECOVERY / READINESS GATING
# =============================================================================

RECOVERY_READINESS_MAX: Final[int] = 4  # At or below: recovery-only session
MODERATE_READINESS_MAX: Final[int] = 7  # 5..7: moderate scale-down
RECOVERY_INTENSITY: Final[float] = 0.5
MODERATE_SCALE: Final[float] = 0.9
HIGH_INTENSITY_RPE: Final[float] = 7.0  # Main work at or above this counts as high intensity
HIGH_INTENSITY_LOAD_PCT: Final[float] = 0.70

# =============================================================================
# AESTHETIC PROGRAMMING
# =============================================================================

AESTHETIC_VOLUME_SHARE: Final[float] = 0.30  # 70/30 performance/aesthetic split
AESTHETIC_READINESS_CUTOFF: Final[int] = 6  # At or below: reduce accessories
AESTHETIC_VOLUME_MULTIPLIER: Final[float] = 0.70
AESTHETIC_DEFAULT_FOCUS: Final[str] = "functional"
SIMPLE_MODE_ACCESSORIES: Final[int] = 2

# =============================================================================
# SPORT SCHEDULE
# =============================================================================

GAME_SUPPRESS_DAYS: Final[int] = 1  # High-importance game this close: no heavy legs
GAME_LIGHTEN_DAYS: Final[int] = 2  # Lighten leg work inside this window
GAME_LIGHTEN_FACTOR: Final[float] = 0.80

# =============================================================================
# TIME BUDGET AND DOSE FLOORS
# =============================================================================

TIME_TOLERANCE: Final[float] = 0.10  # Plans may run 10% over the hard limit
MIN_MAIN_SETS: Final[int] = 2
MIN_ACCESSORY_SETS: Final[int] = 1
MIN_VOLUME_FRACTION: Final[float] = 0.40  # Cumulative scaling never goes below this
DEFAULT_MINUTES_PER_SET: Final[float] = 2.0

# =============================================================================
# VOLUME SPIKE GUARDRAIL
# =============================================================================

VOLUME_RAMP_LIMIT: Final[float] = 0.10  # Warn when proposed sets exceed recent mean by 10%
VOLUME_RAMP_WINDOW: Final[int] = 3  # Sessions averaged for the comparison

# =============================================================================
# PIPELINE
# =============================================================================

EXPERT_TIMEOUT_SECONDS: Final[float] = 2.0
RESOLVER_TIMEOUT_SECONDS: Final[float] = 2.0
HISTORY_LOOKBACK_DAYS: Final[int] = 14
POLL_INTERVAL_SECONDS: Final[float] = 0.05  # Cancellation check while waiting on workers

# Coach-chat adjustments applied by replan()
TOO_HARD_READINESS_DROP: Final[int] = 2
LESS_TIME_FACTOR: Final[float] = 0.67  # "less time" without a number keeps two thirds
MIN_TIME_LIMIT: Final[float] = 10.0

# =============================================================================
# ORDERING
# =============================================================================

CATEGORY_ORDER: Final[tuple[str, ...]] = (
    "warm-up",
    "main",
    "accessory",
    "conditioning",
    "recovery",
)

# Merge order within a block: safety first, aesthetics last
EXPERT_PRIORITY: Final[tuple[str, ...]] = (
    "schedule",
    "recovery",
    "strength",
    "aesthetic",
    "time",
)

SEASON_PHASES: Final[tuple[str, ...]] = ("off", "pre", "in", "post")
TRAINING_MODES: Final[tuple[str, ...]] = ("simple", "advanced")
GAME_IMPORTANCE: Final[tuple[str, ...]] = ("low", "normal", "high")


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (2.5 -> 3, -0.5 -> 0)."""
    return int(math.floor(value + 0.5))


def clamp_readiness(value: float) -> int:
    """
    Round and clamp a raw readiness value into the valid score range.

    Args:
        value: Unbounded readiness estimate

    Returns:
        Integer in [READINESS_MIN, READINESS_MAX]
    """
    return max(READINESS_MIN, min(READINESS_MAX, round_half_up(value)))
