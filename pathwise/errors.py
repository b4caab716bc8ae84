"""Error taxonomy shared by the engine, the service layer and the HTTP surface."""

from decimal import Decimal
from typing import Any, Dict


class PathwiseError(Exception):
    """Base class for all domain errors"""

    code = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class ValidationError(PathwiseError):
    """Malformed or out-of-range input, rejected before any computation"""

    code = "validation_error"


class SavingsLimitExceeded(PathwiseError):
    """A proposed monthly target would push total commitments past disposable income"""

    code = "savings_limit_exceeded"

    def __init__(self, message: str, *, available: Decimal, proposed: Decimal,
                 new_total: Decimal, disposable: Decimal) -> None:
        super().__init__(message)
        self.available = available
        self.proposed = proposed
        self.new_total = new_total
        self.disposable = disposable

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update({
            "available": f"{self.available:.3f}",
            "proposed": f"{self.proposed:.3f}",
            "new_total": f"{self.new_total:.3f}",
            "disposable_income": f"{self.disposable:.3f}",
        })
        return payload


class NotFound(PathwiseError):
    code = "not_found"


class GoalNotFound(NotFound):
    code = "goal_not_found"


class AnomalyNotFound(NotFound):
    code = "anomaly_not_found"


class ProfileNotFound(NotFound):
    code = "profile_not_found"


class UnauthorizedAccess(PathwiseError):
    """The resolved owner does not own the requested entity"""

    code = "unauthorized"
