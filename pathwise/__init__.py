"""
Pathwise - Financial Capacity & Goal Projection Engine
"""

from .anomaly_detector import AnomalyDetector
from .categorizer import KeywordClassifier
from .ledger import CommitmentLedger, check_savings_limit
from .projector import GoalProjector, apply_projection
from .service import PlannerService
from .simulator import GoalSimulator
from .snapshot import compute_snapshot
from .status import resolve_status

__all__ = [
    'AnomalyDetector',
    'KeywordClassifier',
    'CommitmentLedger',
    'check_savings_limit',
    'GoalProjector',
    'apply_projection',
    'PlannerService',
    'GoalSimulator',
    'compute_snapshot',
    'resolve_status',
]

__version__ = '0.1.0'
