"""Spending analytics over imported transactions"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from .models import Transaction, TransactionKind
from .money import ZERO, add_months, format_money


def summarize_spending(transactions: Iterable[Transaction], today: Optional[date] = None,
                       months: int = 6) -> Dict[str, Any]:
    """
    Income, expenses and spending breakdowns for the last ``months`` months

    Args:
        transactions: The user's transactions
        today: End of the window (default: today)
        months: Window length in months

    Returns:
        Dict with totals, spending by category, monthly breakdown and daily spending
    """
    today = today or date.today()
    start = add_months(today, -months)

    income = ZERO
    expenses = ZERO
    by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    monthly: Dict[str, Dict[str, Decimal]] = {}
    daily: Dict[str, Decimal] = defaultdict(lambda: ZERO)

    for tx in transactions:
        if not start <= tx.date <= today:
            continue
        bucket = monthly.setdefault(tx.date.strftime("%Y-%m"), {"income": ZERO, "expenses": ZERO})
        if tx.kind == TransactionKind.CREDIT:
            income += tx.amount
            bucket["income"] += tx.amount
        else:
            expenses += tx.amount
            bucket["expenses"] += tx.amount
            by_category[tx.category or "OTHER"] += tx.amount
            daily[tx.date.isoformat()] += tx.amount

    return {
        "period_start": start.isoformat(),
        "period_end": today.isoformat(),
        "total_income": format_money(income),
        "total_expenses": format_money(expenses),
        "net": format_money(income - expenses),
        "spending_by_category": {k: format_money(v) for k, v in sorted(by_category.items())},
        "monthly_breakdown": [
            {"month": month, "income": format_money(v["income"]), "expenses": format_money(v["expenses"])}
            for month, v in sorted(monthly.items())
        ],
        "daily_spending": {k: format_money(v) for k, v in sorted(daily.items())},
    }
