"""Persistence interface for faces and their clusters."""
from abc import ABC, abstractmethod
from typing import List, Optional

from ...entities.cluster import GLOBAL_SCOPE, Cluster, Scope
from ...entities.face import Face
from ...value_objects.clustering import ClusterPage, ClusterSample, ClusterStatistics


class FaceClusterStore(ABC):
    """Interface for reading faces and mutating cluster membership.

    Every mutating method is a single committed write; callers never need
    to flush or commit.
    """

    @abstractmethod
    async def get_face(self, face_id: int) -> Optional[Face]:
        """
        Get a face by identifier.

        Args:
            face_id: Face identifier

        Returns:
            The face, or None if it does not exist
        """
        pass

    @abstractmethod
    async def get_unclustered_faces(self, scope: Scope) -> List[Face]:
        """
        Get faces in scope that have no cluster, with or without an embedding.

        Args:
            scope: Face population to read

        Returns:
            Faces ordered by ascending identifier
        """
        pass

    @abstractmethod
    async def get_clusters_with_face_sample(
        self,
        scope: Scope,
        max_faces: Optional[int],
    ) -> List[ClusterSample]:
        """
        Get every cluster with an in-scope member carrying an embedding, with a capped member sample.

        Args:
            scope: Face population to read
            max_faces: Maximum sampled faces per cluster, None for every member

        Returns:
            One sample per cluster, faces limited to those in scope
        """
        pass

    @abstractmethod
    async def get_cluster(self, cluster_id: int) -> Optional[Cluster]:
        """Get a cluster by identifier, or None."""
        pass

    @abstractmethod
    async def get_cluster_faces(self, cluster_id: int, scope: Scope = GLOBAL_SCOPE) -> List[Face]:
        """Get all member faces of a cluster that are in scope."""
        pass

    @abstractmethod
    async def count_cluster_faces(self, cluster_id: int, scope: Scope = GLOBAL_SCOPE) -> int:
        """Count the member faces of a cluster that are in scope."""
        pass

    @abstractmethod
    async def count_clusters(self, scope: Scope) -> int:
        """Count clusters with at least one member in scope."""
        pass

    @abstractmethod
    async def create_cluster(self, name: str, founding_face_id: int) -> Cluster:
        """
        Create a cluster and assign its founding face in one transaction.

        Args:
            name: Display name of the new cluster
            founding_face_id: Face that becomes the first member

        Returns:
            The created cluster

        Raises:
            FaceNotFoundError: If the founding face does not exist
        """
        pass

    @abstractmethod
    async def set_face_cluster(self, face_id: int, cluster_id: Optional[int]) -> Optional[int]:
        """
        Set or clear a face's cluster reference.

        Assigning also bumps the target cluster's ``last_updated_at``. A
        cluster the face leaves is deleted in the same transaction when no
        member remains.

        Returns:
            Identifier of the cluster deleted for being empty, if any

        Raises:
            FaceNotFoundError: If the face does not exist
            ClusterNotFoundError: If ``cluster_id`` is given and does not exist
        """
        pass

    @abstractmethod
    async def move_faces(self, source_id: int, target_id: int, scope: Scope) -> int:
        """
        Move the in-scope members of one cluster into another.

        The source cluster is deleted in the same transaction when no
        member remains.

        Returns:
            Number of faces moved
        """
        pass

    @abstractmethod
    async def delete_cluster(self, cluster_id: int) -> int:
        """
        Detach every member face and delete the cluster.

        Returns:
            Number of faces detached

        Raises:
            ClusterNotFoundError: If the cluster does not exist
        """
        pass

    @abstractmethod
    async def update_cluster(
        self,
        cluster_id: int,
        person_name: Optional[str],
        description: Optional[str] = None,
    ) -> Cluster:
        """
        Update user supplied cluster metadata.

        A non-blank person name also becomes the display name; a None
        description leaves the current one untouched.

        Raises:
            ClusterNotFoundError: If the cluster does not exist
        """
        pass

    @abstractmethod
    async def list_clusters(self, scope: Scope, page: int, page_size: int) -> ClusterPage:
        """List clusters in scope by descending member count, then recency."""
        pass

    @abstractmethod
    async def get_statistics(self) -> ClusterStatistics:
        """Get library-wide clustering counters."""
        pass
