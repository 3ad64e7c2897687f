"""Cohesion diagnostics for a single cluster."""
import statistics
from typing import Optional

from facecluster.core.config import ClusteringSettings
from facecluster.core.exceptions import ClusterNotFoundError
from facecluster.core.logging import get_logger
from facecluster.domain.entities.cluster import GLOBAL_SCOPE, Scope
from facecluster.domain.interfaces.storage.cluster_store import FaceClusterStore
from facecluster.domain.value_objects.clustering import ClusterQualityMetrics
from facecluster.services.clustering.similarity import pairwise_similarities

logger = get_logger(__name__)


class ClusterQualityEvaluator:
    """Computes pairwise similarity statistics over a cluster's members.

    The cost is quadratic in the member count, which is fine for the
    cluster sizes a photo library produces.
    """

    def __init__(
        self,
        store: FaceClusterStore,
        config: Optional[ClusteringSettings] = None,
    ) -> None:
        self._store = store
        self._config = config or ClusteringSettings()

    async def evaluate(self, cluster_id: int, scope: Scope = GLOBAL_SCOPE) -> ClusterQualityMetrics:
        """Evaluate the cohesion of a cluster.

        Args:
            cluster_id: Cluster to evaluate
            scope: Restricts the members considered

        Returns:
            ClusterQualityMetrics; invalid when no member has an embedding

        Raises:
            ClusterNotFoundError: If the cluster does not exist, or has no member in a user scope
        """
        cluster = await self._store.get_cluster(cluster_id)
        if cluster is None:
            raise ClusterNotFoundError(f"Cluster not found: {cluster_id}")

        faces = await self._store.get_cluster_faces(cluster_id, scope)
        if not faces and not scope.is_global:
            raise ClusterNotFoundError(
                f"Cluster not found: {cluster_id}", details={"scope": str(scope)}
            )

        embeddings = [face.embedding for face in faces if face.has_embedding]
        if not embeddings:
            return ClusterQualityMetrics(is_valid=False)

        if len(embeddings) < 2:
            return ClusterQualityMetrics(
                is_valid=True,
                face_count=len(embeddings),
                internal_similarity=1.0,
                min_similarity=1.0,
                max_similarity=1.0,
                similarity_std=0.0,
            )

        values = pairwise_similarities(embeddings, self._config.similarity_weights)
        metrics = ClusterQualityMetrics(
            is_valid=True,
            face_count=len(embeddings),
            internal_similarity=statistics.fmean(values),
            min_similarity=min(values),
            max_similarity=max(values),
            similarity_std=statistics.pstdev(values),
        )
        logger.debug(
            "Evaluated cluster quality",
            cluster_id=cluster_id,
            face_count=metrics.face_count,
            internal_similarity=metrics.internal_similarity,
        )
        return metrics
