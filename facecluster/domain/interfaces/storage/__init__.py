"""Storage interfaces package."""
from .cluster_store import FaceClusterStore

__all__ = ["FaceClusterStore"]
