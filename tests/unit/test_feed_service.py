"""
Unit tests for the FeedService orchestration.
"""
import logging
from unittest.mock import AsyncMock

import pytest

from clipfeed.core.exceptions import DependencyUnavailableError, InvalidRequestError
from clipfeed.repositories.memory import (
    InMemoryCatalogRepository,
    InMemoryPreferenceRepository,
    InMemoryViewHistoryRepository,
)
from clipfeed.services.diversity import DiversityPolicy


def _ids(page):
    return [c.id for c in page.candidates]


class TestRankedFeed:
    @pytest.mark.asyncio
    async def test_seen_videos_are_excluded(self, feed_service_factory, distinct_catalog, record_views):
        history = InMemoryViewHistoryRepository()
        seen = ["v1", "v2", "v3", "v4", "v5"]
        record_views(history, "u1", seen)
        service = feed_service_factory(distinct_catalog(30), history=history)

        pages = [await service.get_feed("u1", page=p, page_size=10) for p in range(3)]

        all_ids = [video_id for page in pages for video_id in _ids(page)]
        assert [len(page.candidates) for page in pages] == [10, 10, 5]
        assert not set(all_ids) & set(seen)
        assert len(set(all_ids)) == 25

    @pytest.mark.asyncio
    async def test_scarcity_waiver_fills_page(self, feed_service_factory, distinct_catalog, record_views):
        history = InMemoryViewHistoryRepository()
        seen = [f"v{i}" for i in range(1, 21)]
        record_views(history, "u1", seen)
        service = feed_service_factory(distinct_catalog(25), history=history)

        page = await service.get_feed("u1", page=0, page_size=10)

        assert len(page.candidates) == 10
        # Unseen videos outrank every seen one
        assert set(_ids(page)[:5]) == {"v21", "v22", "v23", "v24", "v25"}

    @pytest.mark.asyncio
    async def test_small_catalog_sinks_seen_videos(self, feed_service_factory, distinct_catalog, record_views):
        history = InMemoryViewHistoryRepository()
        record_views(history, "u1", ["v1", "v2", "v3"])
        service = feed_service_factory(distinct_catalog(10), history=history)

        page = await service.get_feed("u1", page=0, page_size=10)

        ids = _ids(page)
        assert len(ids) == 10
        assert {"v1", "v2", "v3"} <= set(ids[5:])

    @pytest.mark.asyncio
    async def test_no_duplicates_with_diversity_drops(self, feed_service_factory):
        service = feed_service_factory(InMemoryCatalogRepository())

        for page_number in range(3):
            page = await service.get_feed("u1", page=page_number, page_size=10)
            ids = _ids(page)
            assert len(ids) == len(set(ids))
            assert len(ids) == 10

    @pytest.mark.asyncio
    async def test_fallback_fill_toggle(self, feed_service_factory, make_candidate):
        videos = [make_candidate(f"a{i}", creator_id="A", hours_old=i + 1) for i in range(6)]

        filled = feed_service_factory(InMemoryCatalogRepository(videos=videos), fallback_fill=True)
        strict = feed_service_factory(InMemoryCatalogRepository(videos=videos), fallback_fill=False)

        assert len((await filled.get_feed(None, page_size=10)).candidates) == 6
        assert len((await strict.get_feed(None, page_size=10)).candidates) == 1

    @pytest.mark.parametrize("seed", [1, 7, 42, 1234])
    @pytest.mark.asyncio
    async def test_crowded_creator_page_stays_unique(self, feed_service_factory, make_candidate, seed):
        # Fresh, unwatched, cold-start viewer: the dropped second A video is
        # backfilled rather than duplicated
        videos = [
            make_candidate("a1", creator_id="A", hours_old=1),
            make_candidate("a2", creator_id="A", hours_old=2),
            make_candidate("b1", creator_id="B", hours_old=3),
        ]
        service = feed_service_factory(InMemoryCatalogRepository(videos=videos), seed=seed)

        page = await service.get_feed(None, page=0, page_size=3)

        ids = _ids(page)
        assert len(ids) == 3
        assert sorted(ids) == ["a1", "a2", "b1"]

    @pytest.mark.asyncio
    async def test_defer_policy_keeps_everything(self, feed_service_factory, make_candidate):
        videos = [make_candidate(f"a{i}", creator_id="A", hours_old=i + 1) for i in range(6)]
        service = feed_service_factory(
            InMemoryCatalogRepository(videos=videos),
            policy=DiversityPolicy.DEFER,
            fallback_fill=False,
        )

        page = await service.get_feed(None, page_size=10)

        assert len(page.candidates) == 6

    @pytest.mark.asyncio
    async def test_empty_catalog_is_not_an_error(self, feed_service_factory):
        service = feed_service_factory(InMemoryCatalogRepository(videos=[]))

        page = await service.get_feed("u1", page=0, page_size=10)

        assert page.candidates == []
        assert page.fast_path is False

    @pytest.mark.asyncio
    async def test_page_past_the_end_is_empty(self, feed_service_factory, distinct_catalog):
        service = feed_service_factory(distinct_catalog(12))

        page = await service.get_feed(None, page=5, page_size=10)

        assert page.candidates == []

    @pytest.mark.asyncio
    async def test_catalog_failure_raises(self, feed_service_factory, failing_catalog):
        service = feed_service_factory(failing_catalog)

        with pytest.raises(DependencyUnavailableError) as exc_info:
            await service.get_feed("u1", page=0, page_size=10)

        assert exc_info.value.dependency == "catalog"
        assert exc_info.value.status_code == 503


class TestPersonalization:
    @pytest.mark.asyncio
    async def test_viewer_with_affinity_is_personalized(self, feed_service_factory, distinct_catalog):
        preferences = InMemoryPreferenceRepository(scores={"u1": {"tag_v7": 10.0}})
        service = feed_service_factory(distinct_catalog(30), preferences=preferences)

        page = await service.get_feed("u1", page=0, page_size=10)

        assert page.personalized is True
        assert page.degradations == []
        assert "v7" in _ids(page)

    @pytest.mark.asyncio
    async def test_anonymous_viewer_is_not_personalized(self, feed_service_factory, distinct_catalog):
        service = feed_service_factory(distinct_catalog(30))

        page = await service.get_feed(None, page=0, page_size=10)

        assert page.personalized is False
        assert len(page.candidates) == 10

    @pytest.mark.asyncio
    async def test_flags_off_serves_unpersonalized(self, feed_service_factory, distinct_catalog, static_flags):
        preferences = InMemoryPreferenceRepository(scores={"u1": {"tag_v7": 10.0}})
        service = feed_service_factory(
            distinct_catalog(30),
            preferences=preferences,
            feature_flags=static_flags(kill_switch=True),
        )

        page = await service.get_feed("u1", page=0, page_size=10)

        assert page.personalized is False
        assert page.degradations == []

    @pytest.mark.asyncio
    async def test_preference_failure_degrades(self, feed_service_factory, distinct_catalog, failing_preferences):
        service = feed_service_factory(distinct_catalog(30), preferences=failing_preferences)

        page = await service.get_feed("u1", page=0, page_size=10)

        assert len(page.candidates) == 10
        assert page.personalized is False
        assert page.degradations == ["affinity"]


class TestFastPath:
    @pytest.mark.asyncio
    async def test_same_for_every_viewer(self, feed_service_factory, distinct_catalog, failing_preferences):
        service = feed_service_factory(distinct_catalog(30), preferences=failing_preferences)

        first = await service.get_feed("u1", page=0, page_size=5, fast_path=True)
        second = await service.get_feed("u2", page=0, page_size=5, fast_path=True)
        anonymous = await service.get_feed(None, page=0, page_size=5, fast_path=True)

        assert _ids(first) == _ids(second) == _ids(anonymous) == ["v1", "v2", "v3", "v4", "v5"]
        assert first.fast_path is True
        assert first.personalized is False
        # Viewer state is never read
        assert failing_preferences.calls == 0

    @pytest.mark.asyncio
    async def test_ignored_after_first_page(self, feed_service_factory, distinct_catalog):
        service = feed_service_factory(distinct_catalog(30))

        page = await service.get_feed(None, page=1, page_size=5, fast_path=True)

        assert page.fast_path is False
        assert len(page.candidates) == 5

    @pytest.mark.asyncio
    async def test_served_line_is_logged(self, feed_service_factory, distinct_catalog, caplog):
        service = feed_service_factory(distinct_catalog(30))

        with caplog.at_level(logging.INFO, logger="clipfeed.services.feed"):
            await service.get_feed("u1", page=0, page_size=5, fast_path=True)

        served = [r for r in caplog.records if r.getMessage().startswith("Feed served")]
        assert len(served) == 1
        assert "fast_path=True" in served[0].getMessage()
        assert "items=5" in served[0].getMessage()


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "page, page_size",
        [(-1, 10), (0, 0), (0, -3), (0, 51)],
    )
    async def test_invalid_request_reads_nothing(self, feed_service_factory, page, page_size):
        catalog = AsyncMock()
        service = feed_service_factory(catalog)

        with pytest.raises(InvalidRequestError):
            await service.get_feed("u1", page=page, page_size=page_size)

        catalog.fetch_candidates.assert_not_called()
        catalog.count_videos.assert_not_called()


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_later_pages_slice_the_first_ranking(
        self, feed_service_factory, distinct_catalog, snapshot_store
    ):
        service = feed_service_factory(distinct_catalog(30), seed=None, snapshot_store=snapshot_store)

        first = await service.get_feed("u1", page=0, page_size=10)
        second = await service.get_feed("u1", page=1, page_size=10)

        order = [c.id for c in snapshot_store.load("u1").candidates]
        assert _ids(first) == order[:10]
        assert _ids(second) == order[10:20]
        assert not set(_ids(first)) & set(_ids(second))

    @pytest.mark.asyncio
    async def test_first_page_overwrites_snapshot(
        self, feed_service_factory, distinct_catalog, snapshot_store, make_candidate
    ):
        catalog = distinct_catalog(30)
        service = feed_service_factory(catalog, snapshot_store=snapshot_store)
        await service.get_feed("u1", page=0, page_size=10)

        catalog.add(make_candidate("fresh", hours_old=0.1, views=10_000, likes=2_000))
        await service.get_feed("u1", page=0, page_size=10)

        assert "fresh" in [c.id for c in snapshot_store.load("u1").candidates]

    @pytest.mark.asyncio
    async def test_anonymous_requests_are_not_snapshotted(
        self, feed_service_factory, distinct_catalog, snapshot_store
    ):
        service = feed_service_factory(distinct_catalog(30), snapshot_store=snapshot_store)

        await service.get_feed(None, page=0, page_size=10)

        assert snapshot_store.stats()["entries"] == 0
