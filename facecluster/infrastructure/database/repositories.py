"""Database repositories for the face clustering service."""
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from facecluster.domain.entities.cluster import GLOBAL_SCOPE, Scope
from facecluster.infrastructure.database.models import ClusterRecord, FaceRecord, utcnow


def _in_scope(stmt: Select, scope: Scope) -> Select:
    """Restrict a statement over faces to the scope's owner."""
    if scope.is_global:
        return stmt
    return stmt.where(FaceRecord.owner_user_id == scope.user_id)


class FaceRepository:
    """Repository for face operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository.

        Args:
            session: Database session
        """
        self._session = session

    async def get(self, face_id: int) -> Optional[FaceRecord]:
        return await self._session.get(FaceRecord, face_id)

    async def get_unclustered(self, scope: Scope) -> List[FaceRecord]:
        """Get faces without a cluster, by ascending id.

        Faces without an embedding are included so callers can report them.
        """
        stmt = _in_scope(
            select(FaceRecord).where(FaceRecord.cluster_id.is_(None)),
            scope,
        ).order_by(FaceRecord.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_cluster(self, cluster_id: int, scope: Scope = GLOBAL_SCOPE) -> List[FaceRecord]:
        stmt = _in_scope(
            select(FaceRecord).where(FaceRecord.cluster_id == cluster_id),
            scope,
        ).order_by(FaceRecord.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_cluster(self, cluster_id: int, scope: Scope = GLOBAL_SCOPE) -> int:
        stmt = _in_scope(
            select(func.count(FaceRecord.id)).where(FaceRecord.cluster_id == cluster_id),
            scope,
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def sample_clustered(self, scope: Scope, max_faces: Optional[int]) -> List[FaceRecord]:
        """Get up to ``max_faces`` in-scope members with an embedding per cluster.

        Members are taken by ascending id and returned grouped by cluster id.
        """
        base = _in_scope(
            select(
                FaceRecord,
                func.row_number().over(
                    partition_by=FaceRecord.cluster_id,
                    order_by=FaceRecord.id,
                ).label("member_rank"),
            ).where(
                FaceRecord.cluster_id.is_not(None),
                FaceRecord.embedding.is_not(None),
            ),
            scope,
        ).subquery()
        sampled = aliased(FaceRecord, base)
        stmt = select(sampled).order_by(base.c.cluster_id, base.c.id)
        if max_faces is not None:
            stmt = stmt.where(base.c.member_rank <= max_faces)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_clusters(self, scope: Scope) -> int:
        stmt = _in_scope(
            select(func.count(func.distinct(FaceRecord.cluster_id))).where(
                FaceRecord.cluster_id.is_not(None)
            ),
            scope,
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def reassign(self, source_id: int, target_id: int, scope: Scope) -> int:
        """Point the in-scope members of one cluster at another.

        Returns:
            int: Number of faces moved
        """
        stmt = update(FaceRecord).where(FaceRecord.cluster_id == source_id)
        if not scope.is_global:
            stmt = stmt.where(FaceRecord.owner_user_id == scope.user_id)
        result = await self._session.execute(
            stmt.values(cluster_id=target_id).execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def detach_all(self, cluster_id: int) -> int:
        """Clear the cluster reference of every member.

        Returns:
            int: Number of faces detached
        """
        result = await self._session.execute(
            update(FaceRecord)
            .where(FaceRecord.cluster_id == cluster_id)
            .values(cluster_id=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def count_all(self) -> int:
        return (await self._session.execute(select(func.count(FaceRecord.id)))).scalar_one()

    async def count_unclustered(self) -> int:
        stmt = select(func.count(FaceRecord.id)).where(FaceRecord.cluster_id.is_(None))
        return (await self._session.execute(stmt)).scalar_one()

    async def clusters_per_owner(self) -> Dict[int, int]:
        stmt = (
            select(FaceRecord.owner_user_id, func.count(func.distinct(FaceRecord.cluster_id)))
            .where(
                FaceRecord.cluster_id.is_not(None),
                FaceRecord.owner_user_id.is_not(None),
            )
            .group_by(FaceRecord.owner_user_id)
        )
        result = await self._session.execute(stmt)
        return {owner: count for owner, count in result.all()}


class ClusterRepository:
    """Repository for cluster operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository.

        Args:
            session: Database session
        """
        self._session = session

    async def get(self, cluster_id: int) -> Optional[ClusterRecord]:
        return await self._session.get(ClusterRecord, cluster_id)

    async def get_many(self, cluster_ids: Sequence[int]) -> List[ClusterRecord]:
        if not cluster_ids:
            return []
        stmt = (
            select(ClusterRecord)
            .where(ClusterRecord.id.in_(cluster_ids))
            .order_by(ClusterRecord.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, name: str) -> ClusterRecord:
        """Create a new cluster record.

        Args:
            name: Display name

        Returns:
            ClusterRecord: Created cluster with its id assigned
        """
        now = utcnow()
        cluster = ClusterRecord(name=name, created_at=now, last_updated_at=now)
        self._session.add(cluster)
        await self._session.flush()
        return cluster

    def touch(self, cluster: ClusterRecord) -> None:
        cluster.last_updated_at = utcnow()

    async def delete(self, cluster: ClusterRecord) -> None:
        await self._session.delete(cluster)
        await self._session.flush()

    async def count_all(self) -> int:
        return (await self._session.execute(select(func.count(ClusterRecord.id)))).scalar_one()

    async def count_named(self) -> int:
        stmt = select(func.count(ClusterRecord.id)).where(
            ClusterRecord.person_name.is_not(None),
            ClusterRecord.person_name != "",
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def list_with_counts(
        self,
        scope: Scope,
        offset: int,
        limit: int,
    ) -> List[Tuple[ClusterRecord, int]]:
        """Get clusters with their in-scope member count, largest and most recent first."""
        face_count = func.count(FaceRecord.id).label("face_count")
        stmt = _in_scope(
            select(ClusterRecord, face_count)
            .join(FaceRecord, FaceRecord.cluster_id == ClusterRecord.id),
            scope,
        ).group_by(ClusterRecord.id).order_by(
            face_count.desc(),
            ClusterRecord.last_updated_at.desc(),
            ClusterRecord.id,
        ).offset(offset).limit(limit)
        result = await self._session.execute(stmt)
        return [(cluster, count) for cluster, count in result.all()]
