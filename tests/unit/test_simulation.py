"""
What-if simulation: baseline versus adjusted monthly rate
"""

import pytest
from datetime import date
from decimal import Decimal

from pathwise.errors import ValidationError
from pathwise.models import FinancialSnapshot, GoalStatus, WarningLevel
from pathwise.simulator import GoalSimulator


@pytest.fixture
def simulator():
    return GoalSimulator()


@pytest.fixture
def goal(make_goal):
    return make_goal(name="Trip to Japan", target_amount=Decimal("1200"), deadline=date(2027, 6, 1))


def _snapshot(disposable, commitment):
    return FinancialSnapshot(
        salary=Decimal("1000"),
        total_expenses=Decimal("1000") - Decimal(disposable),
        disposable_income=Decimal(disposable),
        total_monthly_commitment=Decimal(commitment),
        savings_rate_percent=None,
        warning_level=WarningLevel.NONE,
    )


class TestSimulation:

    def test_adjustment_shortens_timeline(self, simulator, goal, today):
        result = simulator.simulate(goal, "100", {"FOOD": "50"}, today=today)

        assert result.total_adjustment == Decimal("50.000")
        assert result.simulated_rate == Decimal("150.000")
        assert result.baseline_months == 12
        assert result.simulated_months == 8
        assert result.months_saved == 4
        assert result.is_actionable is True
        assert result.degenerate_reason is None
        assert result.simulated.projected_completion_date == date(2026, 9, 15)
        assert result.baseline.projected_completion_date == date(2027, 1, 15)

    def test_adjustments_are_summed(self, simulator, goal, today):
        result = simulator.simulate(goal, "100", {"FOOD": "30", "SUBSCRIPTIONS": "20"}, today=today)
        assert result.simulated_rate == Decimal("150.000")
        assert result.months_saved == 4

    @pytest.mark.parametrize("adjustments", [{}, {"FOOD": "0"}, {"FOOD": 0, "TRANSPORT": "0.000"}])
    def test_zero_adjustments_save_nothing(self, simulator, goal, today, adjustments):
        result = simulator.simulate(goal, "100", adjustments, today=today)
        assert result.months_saved == 0
        assert result.baseline_months == result.simulated_months

    def test_negative_adjustment_rejected(self, simulator, goal, today):
        with pytest.raises(ValidationError):
            simulator.simulate(goal, "100", {"FOOD": "-10"}, today=today)

    def test_negative_current_rate_rejected(self, simulator, goal, today):
        with pytest.raises(ValidationError):
            simulator.simulate(goal, "-1", {}, today=today)

    def test_float_adjustment_rejected(self, simulator, goal, today):
        with pytest.raises(ValidationError):
            simulator.simulate(goal, "100", {"FOOD": 50.0}, today=today)

    def test_zero_rates_are_not_projectable(self, simulator, goal, today):
        result = simulator.simulate(goal, "0", {}, today=today)

        assert result.baseline is None
        assert result.simulated is None
        assert result.months_saved is None
        assert result.is_actionable is False
        assert "Simulated monthly rate is zero" in result.degenerate_reason

    def test_zero_baseline_still_projects_simulated_side(self, simulator, goal, today):
        result = simulator.simulate(goal, "0", {"FOOD": "100"}, today=today)

        assert result.baseline is None
        assert result.simulated_months == 12
        assert result.months_saved is None
        assert result.is_actionable is False
        assert "no baseline" in result.degenerate_reason

    def test_goal_is_never_modified(self, simulator, make_goal, today):
        goal = make_goal(monthly_savings_target=Decimal("100"))
        simulator.simulate(goal, "100", {"FOOD": "500"}, today=today)
        assert goal.monthly_savings_target == Decimal("100")

    def test_to_dict(self, simulator, goal, today):
        payload = simulator.simulate(goal, "100", {"FOOD": "50"}, today=today).to_dict()
        assert payload["baseline_months"] == 12
        assert payload["simulated_months"] == 8
        assert payload["adjustments"] == {"FOOD": "50.000"}
        assert payload["affordability_note"] is None


class TestAffordability:

    def test_fits_after_other_goals(self, simulator, make_goal, today):
        goal = make_goal(target_amount=Decimal("1200"), monthly_savings_target=Decimal("100"))
        # 500 committed in total, 100 of it by this goal: 600 - 400 = 200 room
        result = simulator.simulate(goal, "100", {"FOOD": "50"}, snapshot=_snapshot("600", "500"),
                                    today=today)
        assert "fits within the BD 200.000" in result.affordability_note

    def test_exceeds_room_left_by_other_goals(self, simulator, make_goal, today):
        goal = make_goal(target_amount=Decimal("1200"), monthly_savings_target=Decimal("100"))
        result = simulator.simulate(goal, "100", {"FOOD": "150"}, snapshot=_snapshot("600", "500"),
                                    today=today)
        assert "more than the BD 200.000" in result.affordability_note

    def test_completed_goal_frees_no_room(self, simulator, make_goal, today):
        goal = make_goal(target_amount=Decimal("1200"), saved_amount=Decimal("1200"),
                         monthly_savings_target=Decimal("400"), status=GoalStatus.COMPLETED)
        # the 500 committed belongs entirely to other goals
        result = simulator.simulate(goal, "600", {}, snapshot=_snapshot("1000", "500"), today=today)
        assert "more than the BD 500.000" in result.affordability_note


class TestSimulationRecord:

    def test_record_captures_both_dates(self, simulator, goal, today):
        result = simulator.simulate(goal, "100", {"FOOD": "50"}, today=today)
        record = GoalSimulator.to_record(result, "user-1", "Cook at home")

        assert record.goal_id == goal.id
        assert record.user_id == "user-1"
        assert record.name == "Cook at home"
        assert record.simulated_monthly_rate == Decimal("150.000")
        assert record.projected_completion_date == date(2026, 9, 15)
        assert record.baseline_completion_date == date(2027, 1, 15)
        assert record.months_saved == 4

    def test_default_name(self, simulator, goal, today):
        result = simulator.simulate(goal, "0", {}, today=today)
        record = GoalSimulator.to_record(result, "user-1")

        assert record.name.startswith("Simulation ")
        assert record.projected_completion_date is None
        assert record.months_saved is None
