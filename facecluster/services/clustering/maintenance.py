"""User and operator triggered cluster maintenance."""
from typing import Dict, Optional

from facecluster.core.exceptions import (
    ClusterNotFoundError,
    FaceNotFoundError,
    InvalidMergeError,
)
from facecluster.core.logging import get_logger
from facecluster.domain.entities.cluster import GLOBAL_SCOPE, Cluster, Scope
from facecluster.domain.interfaces.storage.cluster_store import FaceClusterStore
from facecluster.domain.value_objects.clustering import (
    ClusterPage,
    ClusterPicture,
    ClusterPicturePage,
    ClusterStatistics,
)

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20


class ClusterMaintenanceService:
    """Merge, detach, delete and relabel clusters.

    Cluster identifiers are shared between users. A user scope only sees and
    moves that user's faces, so a user-scoped merge can leave the source
    cluster alive when other users' faces still point at it.

    Each call acts on one entity and raises a NotFoundError subclass when
    that entity is not visible in the scope.
    """

    def __init__(self, store: FaceClusterStore) -> None:
        """Initialize the maintenance service.

        Args:
            store: Persistence capability for faces and clusters
        """
        self._store = store

    async def merge(self, source_id: int, target_id: int, scope: Scope = GLOBAL_SCOPE) -> int:
        """Move the source cluster's in-scope faces into the target cluster.

        Args:
            source_id: Cluster whose faces are moved
            target_id: Cluster receiving the faces
            scope: Restricts which faces move

        Returns:
            Number of faces moved

        Raises:
            InvalidMergeError: If source and target are the same cluster
            ClusterNotFoundError: If either cluster has no face in scope
        """
        if source_id == target_id:
            raise InvalidMergeError(
                f"Cannot merge cluster {source_id} into itself",
                details={"cluster_id": source_id},
            )

        for cluster_id in (source_id, target_id):
            if await self._store.count_cluster_faces(cluster_id, scope) == 0:
                raise ClusterNotFoundError(
                    f"Cluster not found: {cluster_id}",
                    details={"cluster_id": cluster_id, "scope": str(scope)},
                )

        moved = await self._store.move_faces(source_id, target_id, scope)
        logger.info(
            "Merged clusters",
            source_id=source_id,
            target_id=target_id,
            scope=str(scope),
            faces_moved=moved,
        )
        return moved

    async def detach_face(self, face_id: int, scope: Scope = GLOBAL_SCOPE) -> Optional[int]:
        """Remove a face from its cluster.

        Detaching a face that has no cluster is a successful no-op.

        Args:
            face_id: Face to detach
            scope: A user scope only reaches that user's faces

        Returns:
            Identifier of the cluster deleted because it became empty, if any

        Raises:
            FaceNotFoundError: If the face does not exist or is outside the scope
        """
        face = await self._store.get_face(face_id)
        if face is None or (not scope.is_global and face.owner_user_id != scope.user_id):
            raise FaceNotFoundError(f"Face not found: {face_id}", details={"scope": str(scope)})

        if face.cluster_id is None:
            logger.debug("Face already detached", face_id=face_id)
            return None

        deleted = await self._store.set_face_cluster(face_id, None)
        logger.info(
            "Detached face from cluster",
            face_id=face_id,
            cluster_id=face.cluster_id,
            cluster_deleted=deleted is not None,
        )
        return deleted

    async def delete_cluster(self, cluster_id: int) -> int:
        """Detach every member face and delete the cluster.

        Returns:
            Number of faces detached

        Raises:
            ClusterNotFoundError: If the cluster does not exist
        """
        detached = await self._store.delete_cluster(cluster_id)
        logger.info("Deleted cluster", cluster_id=cluster_id, faces_detached=detached)
        return detached

    async def update_cluster(
        self,
        cluster_id: int,
        person_name: Optional[str],
        description: Optional[str] = None,
        scope: Scope = GLOBAL_SCOPE,
    ) -> Cluster:
        """Set the person name and description of a cluster (last write wins).

        Raises:
            ClusterNotFoundError: If the cluster does not exist or has no face in a user scope
        """
        if not scope.is_global and await self._store.count_cluster_faces(cluster_id, scope) == 0:
            raise ClusterNotFoundError(
                f"Cluster not found: {cluster_id}",
                details={"cluster_id": cluster_id, "scope": str(scope)},
            )
        return await self._store.update_cluster(cluster_id, person_name, description)

    async def list_clusters(
        self,
        scope: Scope = GLOBAL_SCOPE,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ClusterPage:
        """List the clusters visible in a scope, largest first."""
        if page < 1:
            page = 1
        if page_size < 1:
            page_size = DEFAULT_PAGE_SIZE
        return await self._store.list_clusters(scope, page, page_size)

    async def list_cluster_pictures(
        self,
        cluster_id: int,
        scope: Scope = GLOBAL_SCOPE,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ClusterPicturePage:
        """Page through the distinct pictures a cluster's faces appear in.

        Pictures are ordered by their newest member face. Page numbers are
        normalised the same way as in list_clusters().

        Args:
            cluster_id: Cluster to browse
            scope: A user scope only lists that user's faces
            page: Page number, starting at 1
            page_size: Pictures per page

        Returns:
            ClusterPicturePage with the member face ids of each picture

        Raises:
            ClusterNotFoundError: If the cluster does not exist or has no face in the scope
        """
        if page < 1:
            page = 1
        if page_size < 1:
            page_size = DEFAULT_PAGE_SIZE

        faces = await self._store.get_cluster_faces(cluster_id, scope)
        if not faces and (not scope.is_global or await self._store.get_cluster(cluster_id) is None):
            raise ClusterNotFoundError(
                f"Cluster not found: {cluster_id}",
                details={"cluster_id": cluster_id, "scope": str(scope)},
            )

        newest = sorted(faces, key=lambda f: f.face_id, reverse=True)
        newest.sort(key=lambda f: f.created_at.timestamp() if f.created_at else 0.0, reverse=True)

        pictures: Dict[int, ClusterPicture] = {}
        for face in newest:
            picture = pictures.setdefault(face.picture_id, ClusterPicture(picture_id=face.picture_id))
            picture.face_ids.append(face.face_id)

        ordered = list(pictures.values())
        start = (page - 1) * page_size
        return ClusterPicturePage(
            cluster_id=cluster_id,
            items=ordered[start:start + page_size],
            total_count=len(ordered),
            page=page,
            page_size=page_size,
        )

    async def get_statistics(self) -> ClusterStatistics:
        return await self._store.get_statistics()
