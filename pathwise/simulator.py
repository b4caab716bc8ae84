"""
Simulation Module
Compares a goal's baseline projection with one under hypothetical spending cuts
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Mapping, Optional

from .errors import ValidationError
from .models import FinancialSnapshot, Goal, ProjectionResult, Simulation, SimulationResult
from .money import ZERO, format_money, to_money
from .projector import GoalProjector
from .snapshot import counted_target

logger = logging.getLogger(__name__)


class GoalSimulator:
    """Runs read-only what-if projections against a goal"""

    def __init__(self, projector: Optional[GoalProjector] = None, currency_symbol: str = "BD"):
        self.projector = projector or GoalProjector()
        self.currency_symbol = currency_symbol

    def _validate_adjustments(self, adjustments: Mapping[str, object]) -> Dict[str, Decimal]:
        cleaned = {}
        for category, amount in (adjustments or {}).items():
            value = to_money(amount, f"adjustment for {category}")
            if value < 0:
                raise ValidationError(f"Adjustment for {category} cannot be negative")
            cleaned[str(category)] = value
        return cleaned

    def _project_or_none(self, goal: Goal, rate: Decimal, today: date) -> Optional[ProjectionResult]:
        if rate <= 0:
            return None
        return self.projector.project(goal, rate, today)

    def simulate(self, goal: Goal, current_rate, adjustments: Mapping[str, object],
                 snapshot: Optional[FinancialSnapshot] = None,
                 today: Optional[date] = None) -> SimulationResult:
        """
        Run a what-if simulation

        A rate that is zero on either side is reported as not projectable
        rather than floored to a minimal value.

        Args:
            goal: Goal to simulate against (not modified)
            current_rate: Hypothetical baseline monthly rate, >= 0
            adjustments: Category -> monthly amount freed, each >= 0
            snapshot: Optional snapshot for the affordability note
            today: Projection start date (default: today)

        Returns:
            SimulationResult
        """
        current = to_money(current_rate, "current monthly savings rate")
        if current < 0:
            raise ValidationError("current monthly savings rate cannot be negative")
        cleaned = self._validate_adjustments(adjustments)
        today = today or date.today()

        total_adjustment = sum(cleaned.values(), ZERO)
        simulated_rate = current + total_adjustment

        baseline = self._project_or_none(goal, current, today)
        simulated = self._project_or_none(goal, simulated_rate, today)

        reason = None
        if simulated is None:
            reason = "Simulated monthly rate is zero; the goal cannot be projected."
        elif baseline is None:
            reason = "Current monthly rate is zero; there is no baseline to compare against."

        months_saved = None
        if baseline is not None and simulated is not None:
            months_saved = baseline.months_needed - simulated.months_needed

        note = None
        if snapshot is not None:
            note = self.affordability(goal, simulated_rate, snapshot)

        return SimulationResult(
            goal_id=goal.id,
            current_rate=current,
            total_adjustment=total_adjustment,
            simulated_rate=simulated_rate,
            adjustments=cleaned,
            baseline=baseline,
            simulated=simulated,
            months_saved=months_saved,
            is_actionable=reason is None,
            degenerate_reason=reason,
            affordability_note=note,
        )

    def affordability(self, goal: Goal, simulated_rate: Decimal, snapshot: FinancialSnapshot) -> str:
        """Advisory check of the simulated rate against disposable income left by other goals"""
        own = counted_target(goal)
        others = max(snapshot.total_monthly_commitment - own, ZERO)
        room = snapshot.disposable_income - others
        sym = self.currency_symbol
        if simulated_rate > room:
            return (
                f"A rate of {sym} {format_money(simulated_rate)}/month is more than the {sym} {format_money(room)} "
                f"left after your other goals' commitments. Consider cutting further or extending the deadline."
            )
        return (
            f"A rate of {sym} {format_money(simulated_rate)}/month fits within the {sym} {format_money(room)} "
            f"left after your other goals' commitments."
        )

    @staticmethod
    def to_record(result: SimulationResult, user_id: str, name: Optional[str] = None) -> Simulation:
        """Build the append-only history record for a simulation run"""
        return Simulation(
            goal_id=result.goal_id,
            user_id=user_id,
            name=name or f"Simulation {date.today().isoformat()}",
            adjustments=dict(result.adjustments),
            simulated_monthly_rate=result.simulated_rate,
            projected_completion_date=(
                result.simulated.projected_completion_date if result.simulated else None
            ),
            baseline_completion_date=(
                result.baseline.projected_completion_date if result.baseline else None
            ),
            months_saved=result.months_saved,
            created_at=datetime.now(),
        )
