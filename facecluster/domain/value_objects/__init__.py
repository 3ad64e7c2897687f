"""Value objects package."""
from .clustering import (
    AssignmentOutcome,
    AssignmentResult,
    ClusterCandidate,
    ClusteringRunResult,
    ClusterPage,
    ClusterPicture,
    ClusterPicturePage,
    ClusterQualityMetrics,
    ClusterSample,
    ClusterStatistics,
    ClusterSummary,
)

__all__ = [
    "AssignmentOutcome",
    "AssignmentResult",
    "ClusterCandidate",
    "ClusteringRunResult",
    "ClusterPage",
    "ClusterPicture",
    "ClusterPicturePage",
    "ClusterQualityMetrics",
    "ClusterSample",
    "ClusterStatistics",
    "ClusterSummary",
]
