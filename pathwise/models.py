"""Domain model for goals, expenses, snapshots, simulations and anomalies."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .money import ZERO, format_money


class ExpenseCategory(str, Enum):
    HOUSING = "HOUSING"
    TRANSPORT = "TRANSPORT"
    UTILITIES = "UTILITIES"
    FOOD = "FOOD"
    HEALTHCARE = "HEALTHCARE"
    EDUCATION = "EDUCATION"
    SUBSCRIPTIONS = "SUBSCRIPTIONS"
    FAMILY = "FAMILY"
    INSURANCE = "INSURANCE"
    OTHER = "OTHER"


class GoalCategory(str, Enum):
    SAVINGS = "SAVINGS"
    TRAVEL = "TRAVEL"
    EDUCATION = "EDUCATION"
    VEHICLE = "VEHICLE"
    PROPERTY = "PROPERTY"
    EMERGENCY = "EMERGENCY"
    OTHER = "OTHER"


class GoalPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class GoalStatus(str, Enum):
    ON_TRACK = "ON_TRACK"
    AT_RISK = "AT_RISK"
    COMPLETED = "COMPLETED"


class WarningLevel(str, Enum):
    NONE = "NONE"
    AMBER = "AMBER"
    RED = "RED"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TransactionKind(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


def new_id() -> str:
    return str(uuid.uuid4())


def _money_or_none(value: Optional[Decimal]) -> Optional[str]:
    return format_money(value) if value is not None else None


@dataclass
class UserFinancials:
    user_id: str
    salary: Decimal
    preferred_currency: str = "BHD"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "salary": format_money(self.salary),
            "preferred_currency": self.preferred_currency,
        }


@dataclass
class MonthlyExpense:
    user_id: str
    category: ExpenseCategory
    amount: Decimal
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "amount": format_money(self.amount),
            "label": self.label,
        }


@dataclass
class Goal:
    user_id: str
    name: str
    target_amount: Decimal
    deadline: date
    category: GoalCategory = GoalCategory.OTHER
    priority: GoalPriority = GoalPriority.MEDIUM
    saved_amount: Decimal = ZERO
    monthly_savings_target: Optional[Decimal] = None
    status: GoalStatus = GoalStatus.ON_TRACK
    currency: str = "BHD"
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def remaining(self) -> Decimal:
        remaining = self.target_amount - self.saved_amount
        return remaining if remaining > 0 else ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "priority": self.priority.value,
            "target_amount": format_money(self.target_amount),
            "saved_amount": format_money(self.saved_amount),
            "monthly_savings_target": _money_or_none(self.monthly_savings_target),
            "currency": self.currency,
            "deadline": self.deadline.isoformat(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class FinancialSnapshot:
    salary: Decimal
    total_expenses: Decimal
    disposable_income: Decimal
    total_monthly_commitment: Decimal
    savings_rate_percent: Optional[Decimal]
    warning_level: WarningLevel
    warning_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "salary": format_money(self.salary),
            "total_expenses": format_money(self.total_expenses),
            "disposable_income": format_money(self.disposable_income),
            "total_monthly_commitment": format_money(self.total_monthly_commitment),
            "savings_rate_percent": (
                str(self.savings_rate_percent) if self.savings_rate_percent is not None else None
            ),
            "warning_level": self.warning_level.value,
            "warning_message": self.warning_message,
        }


@dataclass(frozen=True)
class ChartPoint:
    month: date
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"month": self.month.isoformat(), "amount": format_money(self.amount)}


@dataclass(frozen=True)
class ProjectionResult:
    goal_id: str
    monthly_rate: Decimal
    months_needed: int
    projected_completion_date: Optional[date]
    deadline: date
    is_on_track: bool
    months_ahead_or_behind: int
    chart: List[ChartPoint]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "goal_id": self.goal_id,
            "monthly_rate": format_money(self.monthly_rate),
            "months_needed": self.months_needed,
            "projected_completion_date": (
                self.projected_completion_date.isoformat() if self.projected_completion_date else None
            ),
            "deadline": self.deadline.isoformat(),
            "is_on_track": self.is_on_track,
            "months_ahead_or_behind": self.months_ahead_or_behind,
            "chart": [point.to_dict() for point in self.chart],
        }


@dataclass(frozen=True)
class SimulationResult:
    goal_id: str
    current_rate: Decimal
    total_adjustment: Decimal
    simulated_rate: Decimal
    adjustments: Dict[str, Decimal]
    baseline: Optional[ProjectionResult]
    simulated: Optional[ProjectionResult]
    months_saved: Optional[int]
    is_actionable: bool = True
    degenerate_reason: Optional[str] = None
    affordability_note: Optional[str] = None

    @property
    def baseline_months(self) -> Optional[int]:
        return self.baseline.months_needed if self.baseline else None

    @property
    def simulated_months(self) -> Optional[int]:
        return self.simulated.months_needed if self.simulated else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "goal_id": self.goal_id,
            "current_rate": format_money(self.current_rate),
            "total_adjustment": format_money(self.total_adjustment),
            "simulated_rate": format_money(self.simulated_rate),
            "adjustments": {k: format_money(v) for k, v in self.adjustments.items()},
            "baseline_months": self.baseline_months,
            "simulated_months": self.simulated_months,
            "months_saved": self.months_saved,
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "simulated": self.simulated.to_dict() if self.simulated else None,
            "is_actionable": self.is_actionable,
            "degenerate_reason": self.degenerate_reason,
            "affordability_note": self.affordability_note,
        }


@dataclass(frozen=True)
class Simulation:
    """Append-only record of a what-if run"""

    goal_id: str
    user_id: str
    name: str
    adjustments: Dict[str, Decimal]
    simulated_monthly_rate: Decimal
    projected_completion_date: Optional[date]
    baseline_completion_date: Optional[date]
    months_saved: Optional[int]
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "goal_id": self.goal_id,
            "name": self.name,
            "adjustments": {k: format_money(v) for k, v in self.adjustments.items()},
            "simulated_monthly_rate": format_money(self.simulated_monthly_rate),
            "projected_completion_date": (
                self.projected_completion_date.isoformat() if self.projected_completion_date else None
            ),
            "baseline_completion_date": (
                self.baseline_completion_date.isoformat() if self.baseline_completion_date else None
            ),
            "months_saved": self.months_saved,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Anomaly:
    user_id: str
    category: str
    severity: Severity
    actual_amount: Decimal
    baseline_amount: Decimal
    ratio: Decimal
    message: str
    is_dismissed: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "severity": self.severity.value,
            "actual_amount": format_money(self.actual_amount),
            "baseline_amount": format_money(self.baseline_amount),
            "ratio": str(self.ratio),
            "message": self.message,
            "is_dismissed": self.is_dismissed,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Transaction:
    user_id: str
    amount: Decimal
    date: date
    merchant: str = ""
    category: Optional[str] = None
    kind: TransactionKind = TransactionKind.DEBIT
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "merchant": self.merchant,
            "amount": format_money(self.amount),
            "date": self.date.isoformat(),
            "category": self.category,
            "kind": self.kind.value,
        }
