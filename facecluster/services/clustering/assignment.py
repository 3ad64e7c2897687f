"""Online greedy assignment of faces to identity clusters."""
from typing import Callable, List, Optional, Sequence

from facecluster.core.config import ClusteringSettings
from facecluster.core.exceptions import FaceNotFoundError, InvalidEmbeddingError
from facecluster.core.logging import get_logger
from facecluster.domain.entities.cluster import GLOBAL_SCOPE, Scope
from facecluster.domain.entities.face import Face
from facecluster.domain.interfaces.storage.cluster_store import FaceClusterStore
from facecluster.domain.value_objects.clustering import (
    AssignmentOutcome,
    AssignmentResult,
    ClusterCandidate,
    ClusteringRunResult,
    ClusterSample,
)
from facecluster.services.clustering.similarity import similarity

logger = get_logger(__name__)


class ClusterAssignmentEngine:
    """Assigns unclustered faces to the best matching cluster or founds a new one.

    Each face is compared with a bounded sample of every candidate cluster's
    members. Candidates are eligible when the average similarity reaches the
    base threshold or the best similarity reaches the high-confidence
    threshold; eligible candidates are ranked by a weighted score and the top
    one is accepted if it passes the acceptance rule. Otherwise the face
    founds a new cluster.

    Batch runs commit one decision per face and re-read the candidate clusters
    before every face, so clusters founded earlier in the run compete for the
    faces that follow. The outcome therefore depends on processing order;
    faces are processed by ascending identifier.

    Example:
        ```python
        engine = ClusterAssignmentEngine(store)
        result = await engine.cluster_scope(Scope.for_user(42))
        print(result.faces_processed, result.clusters_created)
        ```
    """

    def __init__(
        self,
        store: FaceClusterStore,
        config: Optional[ClusteringSettings] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Persistence capability for faces and clusters
            config: Clustering constants, defaults to the calibrated values
        """
        self._store = store
        self._config = config or ClusteringSettings()

    @property
    def config(self) -> ClusteringSettings:
        return self._config

    def evaluate_candidates(
        self,
        embedding,
        samples: Sequence[ClusterSample],
    ) -> List[ClusterCandidate]:
        """Summarize the similarity of an embedding to each sampled cluster.

        Clusters without a usable sampled embedding are left out.
        """
        limit = self._config.max_comparison_faces
        candidates = []
        for sample in samples:
            similarities = [
                similarity(embedding, member.embedding, self._config.similarity_weights)
                for member in sample.faces[:limit]
                if member.has_embedding
            ]
            if not similarities:
                continue
            candidates.append(ClusterCandidate(
                cluster_id=sample.cluster.cluster_id,
                avg_similarity=sum(similarities) / len(similarities),
                max_similarity=max(similarities),
                sample_count=len(similarities),
            ))
        return candidates

    def rank_candidates(self, candidates: Sequence[ClusterCandidate]) -> List[ClusterCandidate]:
        """Drop ineligible candidates and order the rest by descending score."""
        cfg = self._config
        weights = cfg.score_weights
        ranked = []
        for candidate in candidates:
            if (candidate.avg_similarity < cfg.base_threshold
                    and candidate.max_similarity < cfg.high_confidence_threshold):
                continue
            coverage = min(candidate.sample_count / cfg.max_comparison_faces, 1.0)
            score = (
                weights.average * candidate.avg_similarity
                + weights.maximum * candidate.max_similarity
                + weights.coverage * coverage
            )
            ranked.append(candidate.model_copy(update={"score": score}))
        # sorted() is stable: equal scores keep store order
        return sorted(ranked, key=lambda c: c.score, reverse=True)

    def select_cluster(self, candidates: Sequence[ClusterCandidate]) -> Optional[ClusterCandidate]:
        """Pick the accepted cluster among candidates, or None to found a new one."""
        ranked = self.rank_candidates(candidates)
        if not ranked:
            return None

        best = ranked[0]
        cfg = self._config
        if best.max_similarity >= cfg.high_confidence_threshold:
            return best
        if (best.avg_similarity >= cfg.base_threshold
                and best.sample_count >= cfg.min_samples_for_average):
            return best
        return None

    async def assign_face(self, face_id: int, scope: Scope = GLOBAL_SCOPE) -> AssignmentResult:
        """Assign a single face outside of a batch run.

        Args:
            face_id: Face to assign
            scope: Population whose clusters are candidates

        Returns:
            AssignmentResult describing the decision

        Raises:
            FaceNotFoundError: If the face does not exist or is outside the scope
        """
        face = await self._store.get_face(face_id)
        if face is None or (not scope.is_global and face.owner_user_id != scope.user_id):
            raise FaceNotFoundError(f"Face not found: {face_id}", details={"scope": str(scope)})

        if face.cluster_id is not None:
            return AssignmentResult(
                face_id=face.face_id,
                outcome=AssignmentOutcome.ALREADY_ASSIGNED,
                cluster_id=face.cluster_id,
            )

        try:
            return await self._assign(face, scope)
        except InvalidEmbeddingError as e:
            logger.warning("Skipping face without embedding", face_id=face_id, error=str(e))
            return AssignmentResult(face_id=face.face_id, outcome=AssignmentOutcome.SKIPPED)

    async def cluster_scope(
        self,
        scope: Scope = GLOBAL_SCOPE,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> ClusteringRunResult:
        """Cluster every unclustered face in a scope, one committed decision at a time.

        A face that fails is logged and counted; the run carries on with the
        next one. Stopping early leaves every processed face assigned and the
        rest unclustered, so a later run resumes where this one ended.

        Args:
            scope: Population to cluster
            should_stop: Polled before each face; returning True ends the run

        Returns:
            ClusteringRunResult with the run's counts
        """
        faces = await self._store.get_unclustered_faces(scope)
        result = ClusteringRunResult(scope=scope)
        logger.info("Starting clustering run", scope=str(scope), backlog=len(faces))

        for face in faces:
            if should_stop is not None and should_stop():
                result.completed = False
                logger.warning(
                    "Clustering run stopped before finishing",
                    scope=str(scope),
                    remaining=len(faces) - result.faces_processed
                    - result.faces_skipped - result.faces_failed,
                )
                break

            try:
                assignment = await self._assign(face, scope)
            except InvalidEmbeddingError as e:
                result.faces_skipped += 1
                logger.warning("Skipping face without embedding", face_id=face.face_id, error=str(e))
                continue
            except Exception as e:
                result.faces_failed += 1
                result.completed = False
                logger.error(
                    "Failed to cluster face",
                    face_id=face.face_id,
                    scope=str(scope),
                    error=str(e),
                    exc_info=True,
                )
                continue

            result.faces_processed += 1
            if assignment.outcome == AssignmentOutcome.ASSIGNED_NEW:
                result.created_cluster_ids.append(assignment.cluster_id)
            else:
                result.faces_assigned_existing += 1

        logger.info(
            "Clustering run finished",
            scope=str(scope),
            faces_processed=result.faces_processed,
            faces_skipped=result.faces_skipped,
            faces_failed=result.faces_failed,
            clusters_created=result.clusters_created,
            completed=result.completed,
        )
        return result

    async def _assign(self, face: Face, scope: Scope) -> AssignmentResult:
        if not face.has_embedding:
            raise InvalidEmbeddingError(
                f"Face {face.face_id} has no embedding", details={"face_id": face.face_id}
            )

        samples = await self._store.get_clusters_with_face_sample(
            scope, self._config.max_comparison_faces
        )
        accepted = self.select_cluster(self.evaluate_candidates(face.embedding, samples))

        if accepted is not None:
            await self._store.set_face_cluster(face.face_id, accepted.cluster_id)
            logger.debug(
                "Assigned face to existing cluster",
                face_id=face.face_id,
                cluster_id=accepted.cluster_id,
                score=accepted.score,
            )
            return AssignmentResult(
                face_id=face.face_id,
                outcome=AssignmentOutcome.ASSIGNED_EXISTING,
                cluster_id=accepted.cluster_id,
                candidate=accepted,
            )

        ordinal = await self._store.count_clusters(scope) + 1
        cluster = await self._store.create_cluster(
            f"{self._config.cluster_name_prefix} {ordinal}", face.face_id
        )
        logger.debug("Founded new cluster", face_id=face.face_id, cluster_id=cluster.cluster_id)
        return AssignmentResult(
            face_id=face.face_id,
            outcome=AssignmentOutcome.ASSIGNED_NEW,
            cluster_id=cluster.cluster_id,
        )
