"""
Readiness provider.

Normalizes today's readiness to an integer score in 1..10.  An explicit
daily check-in wins; otherwise the score is inferred from recent training
load, the sport schedule, external activity and open injury flags,
starting from a neutral baseline of 7.
"""

from .config import (
    EXTERNAL_ACTIVITY_PENALTY,
    GAME_IMMINENT_DAYS,
    GAME_IMMINENT_PENALTY,
    GAME_NEAR_DAYS,
    GAME_NEAR_PENALTY,
    HARD_SESSION_RPE,
    HARD_STREAK_MIN,
    HARD_STREAK_PENALTY_PER_DAY,
    HARD_STREAK_RECENCY_DAYS,
    INJURY_FLAG_PENALTY,
    LAST_RPE_HIGH,
    LAST_RPE_HIGH_PENALTY,
    LAST_RPE_LOW,
    LAST_RPE_LOW_BONUS,
    READINESS_BASELINE,
    READINESS_MAX,
    READINESS_MIN,
    clamp_readiness,
)
from .models import Context, Readiness, days_between

NO_SIGNAL_RATIONALE = "No readiness signal; neutral baseline"


def is_valid_checkin(value: object) -> bool:
    """True when *value* is an integer check-in within 1..10 (bools excluded)."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and READINESS_MIN <= value <= READINESS_MAX
    )


def hard_day_streak(context: Context) -> int:
    """
    Length of the trailing run of hard sessions on consecutive calendar days.

    Only counts when the most recent hard session is at most
    HARD_STREAK_RECENCY_DAYS before today; older streaks have been slept off.
    """
    streak = 0
    previous_date: str | None = None
    for session in reversed(context.history):
        rpe = session.session_rpe
        if rpe is None or rpe < HARD_SESSION_RPE:
            break
        if previous_date is None:
            if days_between(session.date, context.today) > HARD_STREAK_RECENCY_DAYS:
                break
        elif days_between(session.date, previous_date) != 1:
            break
        streak += 1
        previous_date = session.date
    return streak


def _fmt(delta: float) -> str:
    return f"{delta:+g}"


def infer_readiness(context: Context) -> Readiness:
    """
    Estimate readiness when no valid check-in exists.

    Rules are evaluated in a fixed order and every triggered rule adds one
    reason to the rationale.  Missing history simply triggers nothing.

    Args:
        context: Planning context

    Returns:
        Readiness with inferred=True
    """
    score = READINESS_BASELINE
    reasons: list[str] = []

    last = context.last_session
    last_rpe = last.session_rpe if last is not None else None
    if last_rpe is not None:
        if last_rpe >= LAST_RPE_HIGH:
            score -= LAST_RPE_HIGH_PENALTY
            reasons.append(f"Last session RPE {last_rpe:g} ({_fmt(-LAST_RPE_HIGH_PENALTY)})")
        elif last_rpe < LAST_RPE_LOW:
            score += LAST_RPE_LOW_BONUS
            reasons.append(f"Last session RPE {last_rpe:g} felt easy ({_fmt(LAST_RPE_LOW_BONUS)})")

    games = context.future_games()
    if games:
        days, _ = games[0]
        when = "today" if days == 0 else "tomorrow" if days == 1 else f"in {days} days"
        if days <= GAME_IMMINENT_DAYS:
            score -= GAME_IMMINENT_PENALTY
            reasons.append(f"Game {when} ({_fmt(-GAME_IMMINENT_PENALTY)})")
        elif days <= GAME_NEAR_DAYS:
            score -= GAME_NEAR_PENALTY
            reasons.append(f"Game {when} ({_fmt(-GAME_NEAR_PENALTY)})")

    streak = hard_day_streak(context)
    if streak >= HARD_STREAK_MIN:
        penalty = HARD_STREAK_PENALTY_PER_DAY * (streak - 1)
        score -= penalty
        reasons.append(f"{streak} consecutive hard days ({_fmt(-penalty)})")

    if any(a.date == context.today for a in context.external_activities):
        score -= EXTERNAL_ACTIVITY_PENALTY
        reasons.append(f"External activity today ({_fmt(-EXTERNAL_ACTIVITY_PENALTY)})")

    flags = context.constraints.injury_flags
    if flags:
        score -= INJURY_FLAG_PENALTY
        reasons.append(f"Open injury flag: {', '.join(flags)} ({_fmt(-INJURY_FLAG_PENALTY)})")

    rationale = "; ".join(reasons) if reasons else NO_SIGNAL_RATIONALE
    return Readiness(score=clamp_readiness(score), inferred=True, rationale=rationale)


class ReadinessProvider:
    """Supplies today's readiness to the coordinator."""

    def get_readiness(self, context: Context) -> Readiness:
        if is_valid_checkin(context.readiness):
            return Readiness(
                score=context.readiness,
                inferred=False,
                rationale=f"Daily check-in: {context.readiness}/10",
            )
        return infer_readiness(context)


def get_readiness(context: Context) -> Readiness:
    """Module-level convenience wrapper around ReadinessProvider."""
    return ReadinessProvider().get_readiness(context)
