"""Custom exceptions for the face clustering service."""
from typing import Optional


class FaceClusteringError(Exception):
    """Base exception for face clustering operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize face clustering error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.details = details or {}


class NotFoundError(FaceClusteringError):
    """Raised when a referenced entity does not exist in the requested scope."""
    pass


class ClusterNotFoundError(NotFoundError):
    """Raised when a cluster is absent or has no member faces in scope."""
    pass


class FaceNotFoundError(NotFoundError):
    """Raised when a face is absent or not visible in scope."""
    pass


class InvalidEmbeddingError(FaceClusteringError):
    """Raised when a face has a missing or empty embedding."""
    pass


class ClusterStoreError(FaceClusteringError):
    """Raised when the cluster store fails to read or write."""
    pass


class ClusteringJobError(FaceClusteringError):
    """Raised when a clustering job cannot be found or scheduled."""
    pass


class ServiceNotInitializedError(FaceClusteringError):
    """Raised when a service is requested before the container is initialized."""
    pass


class InvalidMergeError(FaceClusteringError):
    """Raised when a merge request names the same cluster as source and target."""
    pass
