"""Face clustering services."""
from .assignment import ClusterAssignmentEngine
from .maintenance import ClusterMaintenanceService
from .quality import ClusterQualityEvaluator
from .similarity import similarity
from .threshold import AdaptiveThresholdEstimator

__all__ = [
    "AdaptiveThresholdEstimator",
    "ClusterAssignmentEngine",
    "ClusterMaintenanceService",
    "ClusterQualityEvaluator",
    "similarity",
]
