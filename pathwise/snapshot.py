"""
Snapshot Calculator

Single source of truth for disposable income, total commitment, savings rate
and the warning level shown to the user.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from .errors import ValidationError
from .models import FinancialSnapshot, Goal, GoalStatus, MonthlyExpense, WarningLevel
from .money import PERCENT_SCALE, ZERO, format_money, to_money

ExpenseLike = Union[MonthlyExpense, Decimal, int, str]

AGGRESSIVE_RATE = Decimal("50")
AMBITIOUS_RATE = Decimal("30")


def _expense_amount(expense: ExpenseLike) -> Decimal:
    amount = expense.amount if isinstance(expense, MonthlyExpense) else expense
    amount = to_money(amount, "expense amount")
    if amount < 0:
        raise ValidationError("expense amounts cannot be negative")
    return amount


def counted_target(goal: Goal) -> Decimal:
    """The goal's contribution to the user's total commitment"""
    if goal.status == GoalStatus.COMPLETED or goal.monthly_savings_target is None:
        return ZERO
    return goal.monthly_savings_target


def total_commitment(goals: Iterable[Goal]) -> Decimal:
    """Sum of monthly targets across goals that are not yet completed"""
    return sum((counted_target(g) for g in goals), ZERO)


def compute_snapshot(salary, expenses: Iterable[ExpenseLike], goals: Iterable[Goal],
                     currency_symbol: str = "BD") -> FinancialSnapshot:
    """
    Derive the financial-capacity snapshot for one user

    Warning thresholds, first match wins:
      expenses >= salary      -> RED
      commitment >= disposable -> RED
      savings rate > 50%       -> RED
      savings rate in (30, 50] -> AMBER
      otherwise                -> NONE

    Args:
        salary: Monthly salary, must be positive
        expenses: Expense amounts or MonthlyExpense rows
        goals: The user's goals
        currency_symbol: Symbol used in warning messages

    Returns:
        FinancialSnapshot
    """
    if salary is None:
        raise ValidationError("salary is required")
    salary = to_money(salary, "salary")
    if salary <= 0:
        raise ValidationError("salary must be positive")

    expenses_total = sum((_expense_amount(e) for e in expenses), ZERO)
    disposable = salary - expenses_total
    commitment = total_commitment(goals)

    rate: Optional[Decimal] = None
    if disposable > 0:
        rate = ZERO if commitment <= 0 else commitment * 100 / disposable
        rate = rate.quantize(PERCENT_SCALE, rounding=ROUND_HALF_UP)

    sym = currency_symbol
    level = WarningLevel.NONE
    message = None

    # Thresholds are compared on exact amounts, the rate above is display-only.
    if disposable <= 0:
        level = WarningLevel.RED
        message = (
            f"Your fixed expenses ({sym} {format_money(expenses_total)}) meet or exceed your salary "
            f"({sym} {format_money(salary)}). There is no room for savings until you reduce your fixed costs."
        )
    elif commitment >= disposable:
        level = WarningLevel.RED
        message = (
            f"Your total monthly savings commitment ({sym} {format_money(commitment)}) meets or exceeds "
            f"your disposable income ({sym} {format_money(disposable)}). "
            f"Reduce your monthly targets or extend goal deadlines."
        )
    elif commitment * 100 > disposable * AGGRESSIVE_RATE:
        level = WarningLevel.RED
        message = (
            f"You are planning to save {rate:.0f}% of your disposable income "
            f"({sym} {format_money(disposable)}/month). This is very aggressive. "
            f"Consider extending your goal timelines."
        )
    elif commitment * 100 > disposable * AMBITIOUS_RATE:
        level = WarningLevel.AMBER
        message = (
            f"You are planning to save {rate:.0f}% of your disposable income "
            f"({sym} {format_money(disposable)}/month). This is ambitious, "
            f"keep a buffer for unexpected costs."
        )

    return FinancialSnapshot(
        salary=salary,
        total_expenses=expenses_total,
        disposable_income=disposable,
        total_monthly_commitment=commitment,
        savings_rate_percent=rate,
        warning_level=level,
        warning_message=message,
    )
