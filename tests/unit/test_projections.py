"""
Goal projection: months needed, completion date, on-track flag and chart
"""

import pytest
from datetime import date
from decimal import Decimal

from pathwise.errors import ValidationError
from pathwise.models import FinancialSnapshot, GoalStatus, WarningLevel
from pathwise.projector import GoalProjector, affordability_note, apply_projection


class TestProjections:
    """Projection of a goal at a monthly savings rate"""

    @pytest.fixture
    def projector(self):
        return GoalProjector()

    def test_reference_projection(self, projector, make_goal, today):
        goal = make_goal()
        result = projector.project(goal, "600", today)

        assert result.months_needed == 10
        assert result.projected_completion_date == date(2026, 11, 15)
        assert result.is_on_track is True
        assert result.months_ahead_or_behind == 2
        assert len(result.chart) == 11
        assert result.chart[0].month == today
        assert result.chart[0].amount == Decimal("0.000")
        assert result.chart[-1].amount == Decimal("6000.000")

    def test_partial_month_rounds_up_and_chart_caps_at_target(self, projector, make_goal, today):
        goal = make_goal(target_amount=Decimal("1000"))
        result = projector.project(goal, "300", today)

        assert result.months_needed == 4
        assert [p.amount for p in result.chart] == [
            Decimal("0"), Decimal("300"), Decimal("600"), Decimal("900"), Decimal("1000"),
        ]

    def test_saved_amount_starts_the_chart(self, projector, make_goal, today):
        goal = make_goal(saved_amount=Decimal("1200"))
        result = projector.project(goal, "1200", today)

        assert result.months_needed == 4
        assert result.chart[0].amount == Decimal("1200")
        assert result.chart[1].month == date(2026, 2, 15)

    def test_behind_schedule(self, projector, make_goal, today):
        goal = make_goal(deadline=date(2026, 9, 15))
        result = projector.project(goal, "600", today)

        assert result.is_on_track is False
        assert result.months_ahead_or_behind == -2

    def test_months_ahead_truncates_partial_months(self, projector, make_goal, today):
        goal = make_goal(deadline=date(2027, 1, 14))
        result = projector.project(goal, "600", today)
        assert result.months_ahead_or_behind == 1

    def test_already_reached_target(self, projector, make_goal, today):
        goal = make_goal(target_amount=Decimal("6000"), saved_amount=Decimal("7000"))
        result = projector.project(goal, "100", today)

        assert result.months_needed == 0
        assert result.projected_completion_date == today
        assert len(result.chart) == 1
        assert result.chart[0].amount == Decimal("6000")

    def test_large_rate_needs_at_most_one_month(self, projector, make_goal, today):
        result = projector.project(make_goal(), "1000000000", today)
        assert result.months_needed == 1

    def test_slow_rate_caps_chart_but_not_months(self, projector, make_goal, today):
        goal = make_goal(target_amount=Decimal("10000"))
        result = projector.project(goal, "1", today)

        assert result.months_needed == 10000
        assert len(result.chart) == 37
        assert result.projected_completion_date == date(2859, 5, 15)
        assert result.months_ahead_or_behind < 0

    def test_configurable_chart_cap(self, make_goal, today):
        result = GoalProjector(chart_cap=5).project(make_goal(), "600", today)
        assert len(result.chart) == 5

    def test_invalid_chart_cap(self):
        with pytest.raises(ValidationError):
            GoalProjector(chart_cap=0)

    def test_end_of_month_start_clamps(self, projector, make_goal):
        goal = make_goal(target_amount=Decimal("600"))
        result = projector.project(goal, "600", date(2026, 1, 31))
        assert result.projected_completion_date == date(2026, 2, 28)

    @pytest.mark.parametrize("rate", ["0", "-100", 600.0, None])
    def test_invalid_rate_rejected(self, projector, make_goal, today, rate):
        with pytest.raises(ValidationError):
            projector.project(make_goal(), rate, today)

    def test_completion_beyond_the_calendar(self, projector, make_goal, today):
        goal = make_goal(target_amount=Decimal("200000"))
        result = projector.project(goal, "1", today)

        assert result.months_needed == 200000
        assert result.projected_completion_date is None
        assert result.is_on_track is False
        assert result.months_ahead_or_behind == 12 - 200000
        assert len(result.chart) == 37
        assert result.to_dict()["projected_completion_date"] is None

    def test_projection_does_not_mutate_goal(self, projector, make_goal, today):
        goal = make_goal()
        projector.project(goal, "600", today)
        assert goal.monthly_savings_target is None

    def test_to_dict(self, projector, make_goal, today):
        payload = projector.project(make_goal(), "600", today).to_dict()
        assert payload["monthly_rate"] == "600.000"
        assert payload["projected_completion_date"] == "2026-11-15"
        assert payload["chart"][1] == {"month": "2026-02-15", "amount": "600.000"}


class TestApplyProjection:

    def test_returns_updated_copy(self, make_goal, today):
        goal = make_goal(deadline=date(2026, 9, 15))
        result = GoalProjector().project(goal, "600", today)

        updated = apply_projection(goal, result, today)

        assert updated.monthly_savings_target == Decimal("600.000")
        assert updated.status == GoalStatus.AT_RISK
        assert updated.id == goal.id
        assert goal.monthly_savings_target is None
        assert goal.status == GoalStatus.ON_TRACK

    def test_rejects_result_for_other_goal(self, make_goal, today):
        result = GoalProjector().project(make_goal(), "600", today)
        with pytest.raises(ValidationError):
            apply_projection(make_goal(), result, today)


class TestAffordabilityNote:

    @staticmethod
    def _snapshot(disposable):
        return FinancialSnapshot(
            salary=Decimal("1000"),
            total_expenses=Decimal("1000") - disposable,
            disposable_income=disposable,
            total_monthly_commitment=Decimal("0"),
            savings_rate_percent=Decimal("0.00"),
            warning_level=WarningLevel.NONE,
        )

    def test_rate_within_disposable(self):
        note = affordability_note(Decimal("200"), self._snapshot(Decimal("600.000")))
        assert "BD 400.000 left" in note

    def test_rate_above_disposable(self):
        note = affordability_note(Decimal("700"), self._snapshot(Decimal("600.000")))
        assert "exceeds your disposable income of BD 600.000" in note
