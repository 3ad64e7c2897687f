"""Service interfaces package."""
from .storage import FaceClusterStore

__all__ = ["FaceClusterStore"]
