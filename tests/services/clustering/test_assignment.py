"""Tests for the cluster assignment engine."""
from unittest.mock import MagicMock

import pytest

from conftest import rotated, unit
from facecluster.core.config import ClusteringSettings
from facecluster.core.exceptions import FaceNotFoundError
from facecluster.domain.entities.cluster import Scope
from facecluster.domain.value_objects.clustering import AssignmentOutcome, ClusterCandidate
from facecluster.infrastructure.database.store import SqlAlchemyFaceClusterStore
from facecluster.services.clustering.assignment import ClusterAssignmentEngine


@pytest.fixture
def engine(store):
    return ClusterAssignmentEngine(store)


def candidate(cluster_id, avg, best, count):
    return ClusterCandidate(
        cluster_id=cluster_id,
        avg_similarity=avg,
        max_similarity=best,
        sample_count=count,
    )


class TestCandidateSelection:
    """Eligibility, ranking and acceptance without a database."""

    @pytest.fixture
    def engine(self):
        return ClusterAssignmentEngine(MagicMock())

    def test_ineligible_candidates_are_dropped(self, engine):
        assert engine.rank_candidates([candidate(1, 0.29, 0.49, 10)]) == []
        assert engine.select_cluster([candidate(1, 0.29, 0.49, 10)]) is None

    def test_ranked_by_weighted_score(self, engine):
        ranked = engine.rank_candidates([
            candidate(1, 0.5, 0.55, 2),
            candidate(2, 0.4, 0.6, 10),
        ])
        assert [c.cluster_id for c in ranked] == [2, 1]
        assert ranked[0].score == pytest.approx(0.6 * 0.4 + 0.3 * 0.6 + 0.1 * 1.0)
        assert ranked[1].score == pytest.approx(0.6 * 0.5 + 0.3 * 0.55 + 0.1 * 0.2)

    def test_equal_scores_keep_store_order(self, engine):
        ranked = engine.rank_candidates([candidate(5, 0.4, 0.6, 3), candidate(3, 0.4, 0.6, 3)])
        assert [c.cluster_id for c in ranked] == [5, 3]

    def test_high_confidence_accepts_single_sample(self, engine):
        accepted = engine.select_cluster([candidate(1, 0.2, 0.55, 1)])
        assert accepted is not None and accepted.cluster_id == 1

    def test_average_needs_two_samples(self, engine):
        assert engine.select_cluster([candidate(1, 0.35, 0.45, 1)]) is None
        assert engine.select_cluster([candidate(1, 0.35, 0.45, 2)]).cluster_id == 1

    def test_custom_thresholds(self):
        strict = ClusterAssignmentEngine(
            MagicMock(),
            ClusteringSettings(base_threshold=0.6, high_confidence_threshold=0.8),
        )
        assert strict.select_cluster([candidate(1, 0.5, 0.7, 10)]) is None


class TestBatchClustering:
    """Batch runs against the database store."""

    async def test_single_face_founds_cluster(self, engine, store, add_face):
        face_id = await add_face(unit(0))

        result = await engine.cluster_scope()

        assert result.faces_processed == 1
        assert result.clusters_created == 1
        assert result.completed
        cluster_id = result.created_cluster_ids[0]
        members = await store.get_cluster_faces(cluster_id)
        assert [f.face_id for f in members] == [face_id]
        cluster = await store.get_cluster(cluster_id)
        assert cluster.name == "Unknown Person 1"

    async def test_similar_face_joins_existing_cluster(self, engine, store, add_face):
        first = await add_face(unit(0))
        await engine.cluster_scope()
        second = await add_face(rotated(0, 1, 0.9))

        result = await engine.cluster_scope()

        assert result.faces_assigned_existing == 1
        assert result.clusters_created == 0
        assert (await store.get_face(first)).cluster_id == (await store.get_face(second)).cluster_id

    async def test_orthogonal_faces_get_distinct_clusters(self, engine, store, add_face):
        a = await add_face(unit(0))
        b = await add_face(unit(1))

        result = await engine.cluster_scope()

        assert result.clusters_created == 2
        assert (await store.get_face(a)).cluster_id != (await store.get_face(b)).cluster_id

    async def test_end_to_end_two_identities(self, engine, store, add_face):
        f1 = await add_face(unit(0))
        f2 = await add_face(rotated(0, 1, 0.92))
        f3 = await add_face(rotated(0, 2, 0.1))

        result = await engine.cluster_scope()

        assert result.faces_processed == 3
        assert result.clusters_created == 2
        c1, c2, c3 = [(await store.get_face(f)).cluster_id for f in (f1, f2, f3)]
        assert c1 == c2
        assert c3 != c1
        assert await store.count_clusters(Scope.all_faces()) == 2

    async def test_clusters_founded_in_run_are_candidates(self, engine, add_face):
        await add_face(unit(0))
        await add_face(rotated(0, 1, 0.95))
        await add_face(rotated(0, 2, 0.95))

        result = await engine.cluster_scope()

        assert result.clusters_created == 1
        assert result.faces_assigned_existing == 2

    async def test_generated_names_follow_cluster_count(self, engine, store, add_face):
        for index in range(3):
            await add_face(unit(index))

        result = await engine.cluster_scope()

        names = [(await store.get_cluster(c)).name for c in result.created_cluster_ids]
        assert names == ["Unknown Person 1", "Unknown Person 2", "Unknown Person 3"]

    async def test_faces_without_embedding_are_skipped(self, engine, store, add_face):
        missing = await add_face(None)
        empty = await add_face([])
        await add_face(unit(0))

        result = await engine.cluster_scope()

        assert result.faces_skipped == 2
        assert result.faces_processed == 1
        assert result.completed
        assert (await store.get_face(missing)).cluster_id is None
        assert (await store.get_face(empty)).cluster_id is None

    async def test_stop_leaves_rest_resumable(self, engine, store, add_face):
        for index in range(3):
            await add_face(unit(index))
        checks = iter([False, True])

        result = await engine.cluster_scope(should_stop=lambda: next(checks))

        assert not result.completed
        assert result.faces_processed == 1
        assert len(await store.get_unclustered_faces(Scope.all_faces())) == 2

        resumed = await engine.cluster_scope()
        assert resumed.faces_processed == 2
        assert resumed.completed

    async def test_failing_face_is_isolated(self, session_factory, store, add_face):
        broken = await add_face(unit(0))
        healthy = await add_face(unit(1))

        class FlakyStore(SqlAlchemyFaceClusterStore):
            async def create_cluster(self, name, founding_face_id):
                if founding_face_id == broken:
                    raise RuntimeError("disk full")
                return await super().create_cluster(name, founding_face_id)

        engine = ClusterAssignmentEngine(FlakyStore(session_factory))
        result = await engine.cluster_scope()

        assert result.faces_failed == 1
        assert result.faces_processed == 1
        assert not result.completed
        assert (await store.get_face(broken)).cluster_id is None
        assert (await store.get_face(healthy)).cluster_id is not None

    async def test_user_scope_only_sees_own_faces(self, engine, store, add_face):
        mine = await add_face(unit(0), owner_user_id=1)
        theirs = await add_face(unit(0), owner_user_id=2)

        result = await engine.cluster_scope(Scope.for_user(1))
        assert result.faces_processed == 1
        assert (await store.get_face(theirs)).cluster_id is None

        # user 2 does not see user 1's cluster as a candidate
        other = await engine.cluster_scope(Scope.for_user(2))
        assert other.clusters_created == 1
        assert (await store.get_face(mine)).cluster_id != (await store.get_face(theirs)).cluster_id
        assert (await store.get_cluster(other.created_cluster_ids[0])).name == "Unknown Person 1"

    async def test_global_scope_spans_users(self, engine, store, add_face):
        a = await add_face(unit(0), owner_user_id=1)
        b = await add_face(rotated(0, 1, 0.95), owner_user_id=2)

        result = await engine.cluster_scope(Scope.all_faces())

        assert result.clusters_created == 1
        assert (await store.get_face(a)).cluster_id == (await store.get_face(b)).cluster_id


class TestSingleFaceAssignment:
    """Assigning one face outside a batch run."""

    async def test_unknown_face(self, engine):
        with pytest.raises(FaceNotFoundError):
            await engine.assign_face(999)

    async def test_face_outside_scope(self, engine, add_face):
        face_id = await add_face(unit(0), owner_user_id=2)
        with pytest.raises(FaceNotFoundError):
            await engine.assign_face(face_id, Scope.for_user(1))

    async def test_new_then_existing(self, engine, add_face):
        first = await engine.assign_face(await add_face(unit(0)))
        assert first.outcome == AssignmentOutcome.ASSIGNED_NEW

        second = await engine.assign_face(await add_face(rotated(0, 1, 0.9)))
        assert second.outcome == AssignmentOutcome.ASSIGNED_EXISTING
        assert second.cluster_id == first.cluster_id
        assert second.candidate.max_similarity >= 0.5

    async def test_already_assigned_face_stays(self, engine, add_face):
        face_id = await add_face(unit(0))
        first = await engine.assign_face(face_id)

        again = await engine.assign_face(face_id)

        assert again.outcome == AssignmentOutcome.ALREADY_ASSIGNED
        assert again.cluster_id == first.cluster_id

    async def test_face_without_embedding_is_skipped(self, engine, store, add_face):
        face_id = await add_face(None)

        result = await engine.assign_face(face_id)

        assert result.outcome == AssignmentOutcome.SKIPPED
        assert result.cluster_id is None
        assert await store.count_clusters(Scope.all_faces()) == 0
