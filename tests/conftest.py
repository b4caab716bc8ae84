"""Shared pytest configuration for the project test suite."""
from __future__ import annotations

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest


# Ensure the repository root (which contains the ``pathwise`` package) is importable.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pathwise.models import Goal  # noqa: E402
from pathwise.service import PlannerService  # noqa: E402
from pathwise.store import InMemoryStore  # noqa: E402


TODAY = date(2026, 1, 15)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def make_goal():
    """Factory for goals owned by ``user-1`` unless told otherwise"""

    def _make(**overrides) -> Goal:
        values = {
            "user_id": "user-1",
            "name": "Emergency Fund",
            "target_amount": Decimal("6000.000"),
            "deadline": date(2027, 1, 15),
        }
        values.update(overrides)
        return Goal(**values)

    return _make


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def service(store) -> PlannerService:
    """Service for ``user-1`` with salary 1000 and fixed expenses of 400"""
    svc = PlannerService(store)
    svc.save_profile("user-1", "1000")
    svc.replace_expenses("user-1", [
        {"category": "HOUSING", "amount": "300", "label": "Rent"},
        {"category": "FOOD", "amount": "100"},
    ])
    return svc
