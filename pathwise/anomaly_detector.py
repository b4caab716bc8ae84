"""
Anomaly Detection Module
Flags categories whose spending this month runs well above the trailing average
"""

import dataclasses
import logging
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from .categorizer import Classifier, KeywordClassifier
from .errors import ValidationError
from .models import Anomaly, Severity, Transaction, TransactionKind
from .money import MONEY_SCALE, ZERO, add_months, month_start

logger = logging.getLogger(__name__)

RATIO_SCALE = Decimal("0.01")


class AnomalyDetector:
    """Compares current-month category spend against the trailing monthly average"""

    def __init__(self,
                 window_months: int = 3,
                 low: Decimal = Decimal("1.5"),
                 medium: Decimal = Decimal("2.0"),
                 high: Decimal = Decimal("3.0"),
                 classifier: Optional[Classifier] = None,
                 currency_symbol: str = "BD"):
        """
        Initialize anomaly detector

        Args:
            window_months: Calendar months considered, current month included (default 3)
            low: Ratio for LOW severity (default 1.5)
            medium: Ratio for MEDIUM severity (default 2.0)
            high: Ratio for HIGH severity (default 3.0)
            classifier: Fills in categories the importer left blank
            currency_symbol: Symbol used in messages
        """
        if window_months < 2:
            raise ValidationError("anomaly window must cover at least one historical month")
        if not low < medium < high:
            raise ValidationError("severity thresholds must satisfy low < medium < high")
        self.window_months = window_months
        self.thresholds = [(Severity.HIGH, high), (Severity.MEDIUM, medium), (Severity.LOW, low)]
        self.classifier = classifier or KeywordClassifier()
        self.currency_symbol = currency_symbol

    def _category(self, transaction: Transaction) -> str:
        if transaction.category:
            return transaction.category.upper()
        return self.classifier.categorize({'merchant': transaction.merchant})

    def split_periods(self, transactions: Iterable[Transaction],
                      today: date) -> Tuple[Dict[str, Decimal], Dict[str, Decimal], int]:
        """
        Split debits into current-month and historical totals per category

        Args:
            transactions: The user's transactions
            today: Reference date; the current period is its month up to today

        Returns:
            (current totals, historical totals, number of historical months with debits)
        """
        current_start = month_start(today)
        window_start = add_months(current_start, -(self.window_months - 1))

        current: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        historical: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        months_seen = set()

        for tx in transactions:
            if tx.kind != TransactionKind.DEBIT:
                continue
            if current_start <= tx.date <= today:
                current[self._category(tx)] += tx.amount
            elif window_start <= tx.date < current_start:
                historical[self._category(tx)] += tx.amount
                months_seen.add((tx.date.year, tx.date.month))

        return dict(current), dict(historical), len(months_seen)

    def classify(self, current: Decimal, historical_total: Decimal, months: int) -> Optional[Severity]:
        """
        Severity for a category, or None when it is not anomalous

        Compares current * months against historical_total * threshold so
        the monthly average is never rounded before the comparison.
        """
        if months <= 0 or historical_total <= 0:
            return None
        for severity, threshold in self.thresholds:
            if current * months >= historical_total * threshold:
                return severity
        return None

    def _message(self, severity: Severity, ratio: Decimal, actual: Decimal, average: Decimal) -> str:
        sym = self.currency_symbol
        if severity == Severity.HIGH:
            return f"You spent {ratio:.1f}x your usual amount this month. {sym} {actual:.0f} vs avg {sym} {average:.0f}"
        if severity == Severity.MEDIUM:
            return (f"{sym} {actual:.0f} spent, {ratio:.1f}x above your {self.window_months}-month "
                    f"average of {sym} {average:.0f}")
        return f"Spending increased {ratio:.1f}x compared to your usual {sym} {average:.0f}"

    @staticmethod
    def _already_flagged(existing: Iterable[Anomaly], user_id: str, category: str, today: date) -> bool:
        return any(
            a.user_id == user_id
            and a.category == category
            and not a.is_dismissed
            and (a.created_at.year, a.created_at.month) == (today.year, today.month)
            for a in existing
        )

    def detect(self, user_id: str, transactions: Iterable[Transaction],
               existing: Iterable[Anomaly] = (), today: Optional[date] = None) -> List[Anomaly]:
        """
        Detect new anomalies for one user

        Args:
            user_id: Resolved owner; transactions of other users are ignored
            transactions: Debits and credits over at least the trailing window
            existing: Anomalies already stored for the user, used for dedup
            today: Reference date (default: today)

        Returns:
            Newly created anomalies (not yet persisted)
        """
        today = today or date.today()
        existing = list(existing)
        own = [tx for tx in transactions if tx.user_id == user_id]
        current, historical, months = self.split_periods(own, today)
        if months == 0:
            return []

        found = []
        for category, actual in sorted(current.items()):
            total = historical.get(category, ZERO)
            severity = self.classify(actual, total, months)
            if severity is None:
                continue
            if self._already_flagged(existing, user_id, category, today):
                continue

            average = (total / months).quantize(MONEY_SCALE, rounding=ROUND_HALF_UP)
            ratio = (actual * months / total).quantize(RATIO_SCALE, rounding=ROUND_HALF_UP)
            anomaly = Anomaly(
                user_id=user_id,
                category=category,
                severity=severity,
                actual_amount=actual,
                baseline_amount=average,
                ratio=ratio,
                message=self._message(severity, ratio, actual, average),
                created_at=datetime.combine(today, datetime.now().time()),
            )
            found.append(anomaly)
            logger.info("Anomaly detected: %s - %s severity, ratio %s", category, severity.value, ratio)

        return found


def dismiss(anomaly: Anomaly) -> Anomaly:
    """One-way transition to dismissed; dismissing twice is a no-op"""
    if anomaly.is_dismissed:
        return anomaly
    return dataclasses.replace(anomaly, is_dismissed=True)


def active(anomalies: Iterable[Anomaly]) -> List[Anomaly]:
    """Undismissed anomalies, newest first"""
    return sorted((a for a in anomalies if not a.is_dismissed), key=lambda a: a.created_at, reverse=True)
