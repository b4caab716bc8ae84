"""
Goal Projection Module
Projects when a goal reaches its target at a given monthly savings rate
"""

import dataclasses
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from .errors import ValidationError
from .models import ChartPoint, FinancialSnapshot, Goal, ProjectionResult
from .money import add_months, format_money, months_later, months_to_cover, to_money, whole_months_between
from .status import resolve_status

DEFAULT_CHART_CAP = 37


class GoalProjector:
    """Computes month-by-month projections toward a savings goal"""

    def __init__(self, chart_cap: int = DEFAULT_CHART_CAP):
        """
        Initialize projector

        Args:
            chart_cap: Maximum number of chart points returned (default 37)
        """
        if chart_cap < 1:
            raise ValidationError("chart cap must be at least 1")
        self.chart_cap = chart_cap

    def build_chart(self, goal: Goal, monthly_rate: Decimal, months_needed: int,
                    today: date) -> List[ChartPoint]:
        """
        Cumulative savings series, one point per month starting today

        Args:
            goal: Goal being projected
            monthly_rate: Amount saved per month
            months_needed: Months until the target is reached
            today: First chart month

        Returns:
            min(months_needed + 1, chart_cap) points, each capped at the target
        """
        points = min(months_needed + 1, self.chart_cap)
        return [
            ChartPoint(
                month=add_months(today, i),
                amount=min(goal.saved_amount + monthly_rate * i, goal.target_amount),
            )
            for i in range(points)
        ]

    def project(self, goal: Goal, monthly_rate, today: Optional[date] = None) -> ProjectionResult:
        """
        Project goal completion at the given rate. Never mutates the goal.

        Args:
            goal: Goal to project
            monthly_rate: Monthly savings rate, must be positive
            today: Projection start date (default: today)

        Returns:
            ProjectionResult
        """
        rate = to_money(monthly_rate, "monthly savings rate")
        if rate <= 0:
            raise ValidationError("monthly savings rate must be positive")
        today = today or date.today()

        months = months_to_cover(goal.remaining, rate)
        projected = months_later(today, months)
        if projected is None:
            # Past the calendar; count the gap from today instead.
            ahead_or_behind = whole_months_between(today, goal.deadline) - months
        else:
            ahead_or_behind = whole_months_between(projected, goal.deadline)

        return ProjectionResult(
            goal_id=goal.id,
            monthly_rate=rate,
            months_needed=months,
            projected_completion_date=projected,
            deadline=goal.deadline,
            is_on_track=projected is not None and projected <= goal.deadline,
            months_ahead_or_behind=ahead_or_behind,
            chart=self.build_chart(goal, rate, months, today),
        )


def apply_projection(goal: Goal, result: ProjectionResult, today: Optional[date] = None) -> Goal:
    """
    Explicit write half of a projection: a copy of the goal carrying the
    projected rate and its recomputed status. Callers decide whether to persist.
    """
    if result.goal_id != goal.id:
        raise ValidationError("projection belongs to a different goal")
    updated = dataclasses.replace(
        goal,
        monthly_savings_target=result.monthly_rate,
        updated_at=datetime.now(),
    )
    updated.status = resolve_status(updated, today)
    return updated


def affordability_note(rate: Decimal, snapshot: FinancialSnapshot, currency_symbol: str = "BD") -> str:
    """How the rate sits against disposable income before other commitments"""
    sym = currency_symbol
    left = snapshot.disposable_income - rate
    if left < 0:
        return (
            f"{sym} {format_money(rate)}/month for this goal alone exceeds your disposable income of "
            f"{sym} {format_money(snapshot.disposable_income)}. Consider a lower monthly target or a later deadline."
        )
    return (
        f"After saving {sym} {format_money(rate)}/month for this goal, you would have {sym} {format_money(left)} "
        f"left from your disposable income (before other goal commitments)."
    )
