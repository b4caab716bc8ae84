"""
Commitment Ledger

Keeps the sum of per-goal monthly targets at or below disposable income.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterator, Optional

from .errors import SavingsLimitExceeded, ValidationError
from .money import ZERO, format_money, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Headroom:
    """Outcome of an accepted ledger check"""

    available: Decimal
    new_total: Decimal
    remaining: Decimal


def check_savings_limit(disposable_income, existing_total, current_target,
                        proposed_target, currency_symbol: str = "BD") -> Headroom:
    """
    Validate a proposed monthly target against disposable income

    The goal's current target is removed from ``existing_total`` first, so
    an update replaces its own contribution rather than adding to it.

    Example:
        disposable 1000, existing 600 (incl. this goal's 200), proposed 500
        -> 600 - 200 + 500 = 900, accepted
        proposed 700 -> 1100, rejected with available = 600

    Raises:
        ValidationError: if the proposed target is not positive
        SavingsLimitExceeded: if the new total exceeds disposable income
    """
    disposable = to_money(disposable_income, "disposable income")
    existing = to_money(existing_total, "existing commitment")
    proposed = to_money(proposed_target, "monthly savings target")
    current = to_money(current_target, "current target") if current_target is not None else ZERO
    if proposed <= 0:
        raise ValidationError("monthly savings target must be positive")

    baseline = existing - current
    new_total = baseline + proposed
    available = max(disposable - baseline, ZERO)

    if new_total > disposable:
        sym = currency_symbol
        raise SavingsLimitExceeded(
            f"Setting a monthly savings target of {sym} {format_money(proposed)} would bring your total "
            f"savings commitment to {sym} {format_money(new_total)}, which exceeds your disposable income "
            f"of {sym} {format_money(disposable)}. The maximum you can allocate to this goal is "
            f"{sym} {format_money(available)}.",
            available=available,
            proposed=proposed,
            new_total=new_total,
            disposable=disposable,
        )

    return Headroom(available=available, new_total=new_total, remaining=disposable - new_total)


class CommitmentLedger:
    """Per-user lock registry serialising commitment-affecting writes"""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _lock_for(self, user_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def locked(self, user_id: str) -> Iterator[None]:
        """Hold the user's lock across a read-check-write sequence"""
        lock = self._lock_for(user_id)
        with lock:
            yield

    def check(self, disposable_income, existing_total, current_target: Optional[Decimal],
              proposed_target, user_id: Optional[str] = None,
              currency_symbol: str = "BD") -> Headroom:
        try:
            return check_savings_limit(disposable_income, existing_total, current_target,
                                       proposed_target, currency_symbol)
        except SavingsLimitExceeded as exc:
            logger.warning("Savings limit exceeded for user %s: proposed=%s available=%s",
                           user_id, exc.proposed, exc.available)
            raise
