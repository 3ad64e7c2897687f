"""Domain entities package."""
from .cluster import GLOBAL_SCOPE, Cluster, Scope
from .face import BoundingBox, Face

__all__ = ["BoundingBox", "Face", "Cluster", "Scope", "GLOBAL_SCOPE"]
