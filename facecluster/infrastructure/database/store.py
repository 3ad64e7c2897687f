"""SQLAlchemy implementation of the face cluster store."""
from contextlib import asynccontextmanager
from itertools import groupby
from typing import AsyncGenerator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from facecluster.core.exceptions import ClusterNotFoundError, ClusterStoreError, FaceNotFoundError
from facecluster.core.logging import get_logger
from facecluster.domain.entities.cluster import GLOBAL_SCOPE, Cluster, Scope
from facecluster.domain.entities.face import Face
from facecluster.domain.interfaces.storage.cluster_store import FaceClusterStore
from facecluster.domain.value_objects.clustering import (
    ClusterPage,
    ClusterSample,
    ClusterStatistics,
    ClusterSummary,
)
from facecluster.infrastructure.database.unit_of_work import UnitOfWork

logger = get_logger(__name__)


class SqlAlchemyFaceClusterStore(FaceClusterStore):
    """Face cluster store backed by a relational database.

    Every call runs in its own session and transaction, so a failure never
    leaves a half-applied change behind.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize the store.

        Args:
            session_factory: Factory producing async sessions
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncGenerator[UnitOfWork, None]:
        try:
            async with UnitOfWork(self._session_factory) as uow:
                yield uow
        except SQLAlchemyError as e:
            logger.error("Cluster store operation failed", error=str(e), exc_info=True)
            raise ClusterStoreError(f"Cluster store operation failed: {e}") from e

    async def _delete_if_empty(self, uow: UnitOfWork, cluster_id: Optional[int]) -> Optional[int]:
        """Delete a cluster that no face references any more."""
        if cluster_id is None:
            return None
        await uow.flush()
        if await uow.faces.count_by_cluster(cluster_id) > 0:
            return None
        cluster = await uow.clusters.get(cluster_id)
        if cluster is None:
            return None
        await uow.clusters.delete(cluster)
        logger.debug("Deleted empty cluster", cluster_id=cluster_id)
        return cluster_id

    async def get_face(self, face_id: int) -> Optional[Face]:
        async with self._unit_of_work() as uow:
            record = await uow.faces.get(face_id)
            return record.to_entity() if record else None

    async def get_unclustered_faces(self, scope: Scope) -> List[Face]:
        async with self._unit_of_work() as uow:
            records = await uow.faces.get_unclustered(scope)
            return [record.to_entity() for record in records]

    async def get_clusters_with_face_sample(
        self,
        scope: Scope,
        max_faces: Optional[int],
    ) -> List[ClusterSample]:
        async with self._unit_of_work() as uow:
            records = await uow.faces.sample_clustered(scope, max_faces)
            members = {
                cluster_id: [record.to_entity() for record in group]
                for cluster_id, group in groupby(records, key=lambda r: r.cluster_id)
            }
            clusters = await uow.clusters.get_many(list(members))
            return [
                ClusterSample(cluster=cluster.to_entity(), faces=members[cluster.id])
                for cluster in clusters
            ]

    async def get_cluster(self, cluster_id: int) -> Optional[Cluster]:
        async with self._unit_of_work() as uow:
            record = await uow.clusters.get(cluster_id)
            return record.to_entity() if record else None

    async def get_cluster_faces(self, cluster_id: int, scope: Scope = GLOBAL_SCOPE) -> List[Face]:
        async with self._unit_of_work() as uow:
            records = await uow.faces.get_by_cluster(cluster_id, scope)
            return [record.to_entity() for record in records]

    async def count_cluster_faces(self, cluster_id: int, scope: Scope = GLOBAL_SCOPE) -> int:
        async with self._unit_of_work() as uow:
            return await uow.faces.count_by_cluster(cluster_id, scope)

    async def count_clusters(self, scope: Scope) -> int:
        async with self._unit_of_work() as uow:
            return await uow.faces.count_clusters(scope)

    async def create_cluster(self, name: str, founding_face_id: int) -> Cluster:
        async with self._unit_of_work() as uow:
            face = await uow.faces.get(founding_face_id)
            if face is None:
                raise FaceNotFoundError(f"Face not found: {founding_face_id}")

            previous = face.cluster_id
            cluster = await uow.clusters.create(name)
            face.cluster_id = cluster.id
            await self._delete_if_empty(uow, previous)
            logger.debug("Created cluster", cluster_id=cluster.id, founding_face_id=founding_face_id)
            return cluster.to_entity()

    async def set_face_cluster(self, face_id: int, cluster_id: Optional[int]) -> Optional[int]:
        async with self._unit_of_work() as uow:
            face = await uow.faces.get(face_id)
            if face is None:
                raise FaceNotFoundError(f"Face not found: {face_id}")

            if cluster_id is not None:
                cluster = await uow.clusters.get(cluster_id)
                if cluster is None:
                    raise ClusterNotFoundError(f"Cluster not found: {cluster_id}")
                uow.clusters.touch(cluster)

            previous = face.cluster_id
            face.cluster_id = cluster_id
            if previous == cluster_id:
                return None
            return await self._delete_if_empty(uow, previous)

    async def move_faces(self, source_id: int, target_id: int, scope: Scope) -> int:
        async with self._unit_of_work() as uow:
            target = await uow.clusters.get(target_id)
            if target is None:
                raise ClusterNotFoundError(f"Cluster not found: {target_id}")

            moved = await uow.faces.reassign(source_id, target_id, scope)
            if moved:
                uow.clusters.touch(target)
            await self._delete_if_empty(uow, source_id)
            return moved

    async def delete_cluster(self, cluster_id: int) -> int:
        async with self._unit_of_work() as uow:
            cluster = await uow.clusters.get(cluster_id)
            if cluster is None:
                raise ClusterNotFoundError(f"Cluster not found: {cluster_id}")

            detached = await uow.faces.detach_all(cluster_id)
            await uow.clusters.delete(cluster)
            return detached

    async def update_cluster(
        self,
        cluster_id: int,
        person_name: Optional[str],
        description: Optional[str] = None,
    ) -> Cluster:
        async with self._unit_of_work() as uow:
            cluster = await uow.clusters.get(cluster_id)
            if cluster is None:
                raise ClusterNotFoundError(f"Cluster not found: {cluster_id}")

            cluster.person_name = person_name
            if person_name and person_name.strip():
                cluster.name = person_name.strip()
            if description is not None:
                cluster.description = description
            uow.clusters.touch(cluster)
            await uow.flush()
            return cluster.to_entity()

    async def list_clusters(self, scope: Scope, page: int, page_size: int) -> ClusterPage:
        async with self._unit_of_work() as uow:
            total = await uow.faces.count_clusters(scope)
            rows = await uow.clusters.list_with_counts(
                scope,
                offset=(page - 1) * page_size,
                limit=page_size,
            )
            return ClusterPage(
                items=[
                    ClusterSummary(cluster=cluster.to_entity(), face_count=count)
                    for cluster, count in rows
                ],
                total_count=total,
                page=page,
                page_size=page_size,
            )

    async def get_statistics(self) -> ClusterStatistics:
        async with self._unit_of_work() as uow:
            return ClusterStatistics(
                total_clusters=await uow.clusters.count_all(),
                total_faces=await uow.faces.count_all(),
                unclustered_faces=await uow.faces.count_unclustered(),
                named_clusters=await uow.clusters.count_named(),
                clusters_by_user=await uow.faces.clusters_per_owner(),
            )
