"""Tests for cluster maintenance operations."""
import pytest

from conftest import rotated, unit
from facecluster.core.exceptions import ClusterNotFoundError, FaceNotFoundError, InvalidMergeError
from facecluster.domain.entities.cluster import Scope
from facecluster.services.clustering.maintenance import ClusterMaintenanceService
from facecluster.services.clustering.quality import ClusterQualityEvaluator

GLOBAL = Scope.all_faces()


@pytest.fixture
def service(store):
    return ClusterMaintenanceService(store)


async def make_cluster(store, add_face, embeddings, owner_user_id=None, name="Unknown Person 1"):
    first = await add_face(embeddings[0], owner_user_id=owner_user_id)
    cluster = await store.create_cluster(name, first)
    for embedding in embeddings[1:]:
        await add_face(embedding, owner_user_id=owner_user_id, cluster_id=cluster.cluster_id)
    return cluster.cluster_id


class TestMerge:
    """Test suite for merging clusters."""

    async def test_merge_moves_all_faces_and_deletes_source(self, service, store, add_face):
        source = await make_cluster(store, add_face, [unit(0), rotated(0, 1, 0.9)])
        target = await make_cluster(store, add_face, [unit(2)])
        evaluator = ClusterQualityEvaluator(store)

        moved = await service.merge(source, target, GLOBAL)

        assert moved == 2
        assert await store.get_cluster(source) is None
        with pytest.raises(ClusterNotFoundError):
            await evaluator.evaluate(source)
        assert (await evaluator.evaluate(target)).face_count == 3

    async def test_merge_into_itself(self, service, store, add_face):
        cluster_id = await make_cluster(store, add_face, [unit(0)])
        with pytest.raises(InvalidMergeError):
            await service.merge(cluster_id, cluster_id)

    async def test_merge_unknown_cluster(self, service, store, add_face):
        cluster_id = await make_cluster(store, add_face, [unit(0)])
        with pytest.raises(ClusterNotFoundError):
            await service.merge(cluster_id, 999)
        with pytest.raises(ClusterNotFoundError):
            await service.merge(999, cluster_id)
        assert await store.count_cluster_faces(cluster_id) == 1

    async def test_user_merge_keeps_source_with_other_users(self, service, store, add_face):
        source = await make_cluster(store, add_face, [unit(0)], owner_user_id=1)
        other_user_face = await add_face(unit(0), owner_user_id=2, cluster_id=source)
        target = await make_cluster(store, add_face, [unit(1)], owner_user_id=1)

        moved = await service.merge(source, target, Scope.for_user(1))

        assert moved == 1
        assert await store.get_cluster(source) is not None
        assert (await store.get_face(other_user_face)).cluster_id == source
        assert await store.count_cluster_faces(target) == 2

    async def test_user_merge_requires_faces_in_scope(self, service, store, add_face):
        source = await make_cluster(store, add_face, [unit(0)], owner_user_id=2)
        target = await make_cluster(store, add_face, [unit(1)], owner_user_id=1)
        with pytest.raises(ClusterNotFoundError):
            await service.merge(source, target, Scope.for_user(1))


class TestDetach:
    """Test suite for detaching faces."""

    async def test_detach_last_member_deletes_cluster(self, service, store, add_face):
        face_id = await add_face(unit(0))
        cluster = await store.create_cluster("Unknown Person 1", face_id)

        deleted = await service.detach_face(face_id)

        assert deleted == cluster.cluster_id
        assert (await store.get_face(face_id)).cluster_id is None
        assert await store.get_cluster(cluster.cluster_id) is None

    async def test_detach_keeps_cluster_with_members(self, service, store, add_face):
        cluster_id = await make_cluster(store, add_face, [unit(0), unit(0)])
        face_id = (await store.get_cluster_faces(cluster_id))[0].face_id

        assert await service.detach_face(face_id) is None
        assert await store.count_cluster_faces(cluster_id) == 1

    async def test_detach_is_idempotent(self, service, store, add_face):
        face_id = await add_face(unit(0))
        await store.create_cluster("Unknown Person 1", face_id)

        await service.detach_face(face_id)
        assert await service.detach_face(face_id) is None
        assert (await store.get_face(face_id)).cluster_id is None

    async def test_detach_unknown_face(self, service):
        with pytest.raises(FaceNotFoundError):
            await service.detach_face(12345)

    async def test_detach_other_users_face(self, service, store, add_face):
        face_id = await add_face(unit(0), owner_user_id=2)
        await store.create_cluster("Unknown Person 1", face_id)
        with pytest.raises(FaceNotFoundError):
            await service.detach_face(face_id, Scope.for_user(1))


class TestDeleteAndUpdate:
    """Test suite for deleting and labelling clusters."""

    async def test_delete_detaches_members(self, service, store, add_face):
        cluster_id = await make_cluster(store, add_face, [unit(0), unit(1), unit(2)])

        detached = await service.delete_cluster(cluster_id)

        assert detached == 3
        assert await store.get_cluster(cluster_id) is None
        assert len(await store.get_unclustered_faces(GLOBAL)) == 3

    async def test_delete_unknown_cluster(self, service):
        with pytest.raises(ClusterNotFoundError):
            await service.delete_cluster(77)

    async def test_person_name_becomes_display_name(self, service, store, add_face):
        cluster_id = await make_cluster(store, add_face, [unit(0)])
        before = await store.get_cluster(cluster_id)

        updated = await service.update_cluster(cluster_id, "Ada", "Grandmother")

        assert updated.name == "Ada"
        assert updated.person_name == "Ada"
        assert updated.description == "Grandmother"
        assert updated.last_updated_at.replace(tzinfo=None) >= before.last_updated_at.replace(tzinfo=None)

    async def test_blank_name_keeps_display_name_and_description(self, service, store, add_face):
        cluster_id = await make_cluster(store, add_face, [unit(0)])
        await service.update_cluster(cluster_id, "Ada", "Grandmother")

        updated = await service.update_cluster(cluster_id, "  ")

        assert updated.name == "Ada"
        assert updated.description == "Grandmother"

    async def test_update_in_foreign_scope(self, service, store, add_face):
        cluster_id = await make_cluster(store, add_face, [unit(0)], owner_user_id=2)
        with pytest.raises(ClusterNotFoundError):
            await service.update_cluster(cluster_id, "Ada", scope=Scope.for_user(1))

    async def test_update_unknown_cluster(self, service):
        with pytest.raises(ClusterNotFoundError):
            await service.update_cluster(5, "Ada")


class TestListingAndStatistics:
    """Test suite for listing and statistics."""

    async def test_largest_clusters_first(self, service, store, add_face):
        small = await make_cluster(store, add_face, [unit(0)])
        large = await make_cluster(store, add_face, [unit(1), unit(1), unit(1)])
        medium = await make_cluster(store, add_face, [unit(2), unit(2)])

        page = await service.list_clusters(GLOBAL, page=1, page_size=2)

        assert page.total_count == 3
        assert [s.cluster.cluster_id for s in page.items] == [large, medium]
        assert [s.face_count for s in page.items] == [3, 2]

        rest = await service.list_clusters(GLOBAL, page=2, page_size=2)
        assert [s.cluster.cluster_id for s in rest.items] == [small]

    async def test_invalid_paging_is_normalized(self, service, store, add_face):
        await make_cluster(store, add_face, [unit(0)])

        page = await service.list_clusters(GLOBAL, page=0, page_size=0)

        assert page.page == 1
        assert page.page_size == 20
        assert len(page.items) == 1

    async def test_user_listing_counts_own_faces(self, service, store, add_face):
        shared = await make_cluster(store, add_face, [unit(0)], owner_user_id=1)
        await add_face(unit(0), owner_user_id=2, cluster_id=shared)
        await make_cluster(store, add_face, [unit(1)], owner_user_id=2)

        page = await service.list_clusters(Scope.for_user(1))

        assert page.total_count == 1
        assert page.items[0].face_count == 1

    async def test_statistics(self, service, store, add_face):
        named = await make_cluster(store, add_face, [unit(0), unit(0)], owner_user_id=1)
        await make_cluster(store, add_face, [unit(1)], owner_user_id=2)
        await add_face(unit(2), owner_user_id=1)
        await service.update_cluster(named, "Ada")

        stats = await service.get_statistics()

        assert stats.total_clusters == 2
        assert stats.total_faces == 4
        assert stats.unclustered_faces == 1
        assert stats.named_clusters == 1
        assert stats.clusters_by_user == {1: 1, 2: 1}


class TestClusterPictures:
    """Test suite for browsing the pictures of a cluster."""

    async def test_distinct_pictures_newest_first(self, service, store, add_face):
        first = await add_face(unit(0), picture_id=10)
        cluster_id = (await store.create_cluster("Unknown Person 1", first)).cluster_id
        second = await add_face(unit(0), cluster_id=cluster_id, picture_id=11)
        third = await add_face(unit(0), cluster_id=cluster_id, picture_id=10)
        await add_face(unit(0), picture_id=12)

        page = await service.list_cluster_pictures(cluster_id)

        assert page.total_count == 2
        assert [p.picture_id for p in page.items] == [10, 11]
        assert page.items[0].face_ids == [third, first]
        assert page.items[1].face_ids == [second]

    async def test_paging(self, service, store, add_face):
        first = await add_face(unit(0), picture_id=1)
        cluster_id = (await store.create_cluster("Unknown Person 1", first)).cluster_id
        for picture_id in (2, 3, 4, 5):
            await add_face(unit(0), cluster_id=cluster_id, picture_id=picture_id)

        second_page = await service.list_cluster_pictures(cluster_id, page=2, page_size=2)
        normalized = await service.list_cluster_pictures(cluster_id, page=0, page_size=0)

        assert [p.picture_id for p in second_page.items] == [3, 2]
        assert second_page.total_count == 5
        assert (normalized.page, normalized.page_size) == (1, 20)
        assert len(normalized.items) == 5

    async def test_user_scope_lists_own_pictures(self, service, store, add_face):
        cluster_id = await make_cluster(store, add_face, [unit(0)], owner_user_id=1)
        await add_face(unit(0), owner_user_id=2, cluster_id=cluster_id, picture_id=99)

        own = await service.list_cluster_pictures(cluster_id, Scope.for_user(1))
        everyone = await service.list_cluster_pictures(cluster_id, GLOBAL)

        assert [p.picture_id for p in own.items] == [1]
        assert everyone.total_count == 2
        with pytest.raises(ClusterNotFoundError):
            await service.list_cluster_pictures(cluster_id, Scope.for_user(3))

    async def test_unknown_cluster(self, service):
        with pytest.raises(ClusterNotFoundError):
            await service.list_cluster_pictures(999)
