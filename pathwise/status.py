"""Goal Status Resolver"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .models import Goal, GoalStatus
from .money import months_later, months_to_cover


def rate_is_set(goal: Goal) -> bool:
    """False when there is no usable monthly rate, so ON_TRACK is only a default"""
    return goal.monthly_savings_target is not None and goal.monthly_savings_target > 0


def resolve_status(goal: Goal, today: Optional[date] = None) -> GoalStatus:
    """
    Derive the goal status from saved amount, target, rate and deadline

    Arrival in the deadline month on or before the deadline day is ON_TRACK.
    """
    if goal.saved_amount >= goal.target_amount:
        return GoalStatus.COMPLETED

    if not rate_is_set(goal):
        return GoalStatus.ON_TRACK

    today = today or date.today()
    months = months_to_cover(goal.target_amount - goal.saved_amount, goal.monthly_savings_target)
    arrival = months_later(today, months)
    if arrival is None or arrival > goal.deadline:
        return GoalStatus.AT_RISK
    return GoalStatus.ON_TRACK


def progress_percentage(goal: Goal) -> Decimal:
    """Saved share of the target, one decimal, clamped to [0, 100]"""
    if goal.target_amount <= 0:
        return Decimal("0.0")
    pct = (goal.saved_amount * 100 / goal.target_amount).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return max(Decimal("0.0"), min(Decimal("100.0"), pct))
