"""Data-driven estimate of a similarity threshold for a scope."""
from typing import List, Optional

from facecluster.core.config import ClusteringSettings
from facecluster.core.logging import get_logger
from facecluster.domain.entities.cluster import Scope
from facecluster.domain.interfaces.storage.cluster_store import FaceClusterStore
from facecluster.services.clustering.similarity import cross_similarities, pairwise_similarities

logger = get_logger(__name__)


class AdaptiveThresholdEstimator:
    """Suggests a threshold halfway between the weakest intra-cluster
    similarity and the strongest inter-cluster similarity.

    The estimate is advisory. It is returned to the caller and never fed
    back into the engine's settings.
    """

    def __init__(
        self,
        store: FaceClusterStore,
        config: Optional[ClusteringSettings] = None,
    ) -> None:
        self._store = store
        self._config = config or ClusteringSettings()

    async def estimate_optimal_threshold(self, scope: Scope) -> float:
        """Estimate the threshold separating identities in a scope.

        Args:
            scope: Population whose clusters are measured

        Returns:
            The clamped midpoint, or the base threshold when there is no
            intra-cluster or no inter-cluster evidence
        """
        cfg = self._config
        samples = await self._store.get_clusters_with_face_sample(scope, max_faces=None)
        members: List[list] = [
            [face.embedding for face in sample.faces if face.has_embedding]
            for sample in samples
        ]

        intra: List[float] = []
        for embeddings in members:
            if len(embeddings) > 1:
                intra.extend(pairwise_similarities(embeddings, cfg.similarity_weights))

        inter: List[float] = []
        cap = cfg.inter_cluster_sample_size
        for i in range(len(members)):
            for j in range(i + 1, len(members)):
                inter.extend(cross_similarities(
                    members[i][:cap], members[j][:cap], cfg.similarity_weights
                ))

        if not intra or not inter:
            logger.info(
                "Not enough clusters to estimate a threshold",
                scope=str(scope),
                intra_pairs=len(intra),
                inter_pairs=len(inter),
            )
            return cfg.base_threshold

        midpoint = (min(intra) + max(inter)) / 2.0
        estimate = max(cfg.threshold_floor, min(cfg.threshold_ceiling, midpoint))
        logger.info(
            "Estimated clustering threshold",
            scope=str(scope),
            min_intra=min(intra),
            max_inter=max(inter),
            threshold=estimate,
        )
        return estimate
