"""
Unit tests for the Paginator and ranking snapshots.
"""
from clipfeed.core.cache import InMemoryCache
from clipfeed.services.diversity import Diversifier, DiversityResult
from clipfeed.services.pagination import (
    Paginator,
    RankingSnapshot,
    RankingSnapshotStore,
    slice_page,
)


def _ids(items):
    return [item.id for item in items]


class TestPaginator:
    def test_fallback_fill_keeps_page_full(self, make_scored):
        # A, A, B with a creator window: the second A is dropped by
        # diversification and re-admitted to fill the page
        items = [
            make_scored("a1", "A"),
            make_scored("a2", "A"),
            make_scored("b1", "B"),
        ]
        result = Diversifier(creator_window=3, tag_diversity=False).enforce_windows(items)

        page = Paginator(fallback_fill=True).paginate(result, page=0, page_size=3)

        assert _ids(page) == ["a1", "b1", "a2"]

    def test_without_fallback_fill_page_may_be_short(self, make_scored):
        items = [
            make_scored("a1", "A"),
            make_scored("a2", "A"),
            make_scored("b1", "B"),
        ]
        result = Diversifier(creator_window=3, tag_diversity=False).enforce_windows(items)

        page = Paginator(fallback_fill=False).paginate(result, page=0, page_size=3)

        assert _ids(page) == ["a1", "b1"]

    def test_fill_stops_at_min_length(self, make_scored):
        result = DiversityResult(
            ordered=[make_scored("v1", "A")],
            dropped=[make_scored("v2", "A"), make_scored("v3", "A")],
        )

        order = Paginator().fill(result, min_length=2)

        assert _ids(order) == ["v1", "v2"]

    def test_fill_never_repeats_ids(self, make_scored):
        dup = make_scored("v1", "A")
        result = DiversityResult(
            ordered=[dup, make_scored("v2", "B"), dup],
            dropped=[dup, make_scored("v3", "C")],
        )

        order = Paginator().fill(result)

        assert _ids(order) == ["v1", "v2", "v3"]

    def test_later_pages_slice_the_same_order(self, make_scored):
        items = [make_scored(f"v{i}", f"c{i}") for i in range(7)]
        result = DiversityResult(ordered=items, dropped=[])
        paginator = Paginator()

        pages = [_ids(paginator.paginate(result, page=p, page_size=3)) for p in range(4)]

        assert pages == [
            ["v0", "v1", "v2"],
            ["v3", "v4", "v5"],
            ["v6"],
            [],
        ]

    def test_slice_page(self):
        order = list(range(10))
        assert slice_page(order, 1, 4) == [4, 5, 6, 7]
        assert slice_page(order, 5, 4) == []


class TestRankingSnapshotStore:
    def test_disabled_store_is_a_no_op(self, make_candidate):
        store = RankingSnapshotStore(cache=InMemoryCache(), ttl_seconds=0)
        store.save("u1", RankingSnapshot(candidates=[make_candidate("v1")]))

        assert store.enabled is False
        assert store.load("u1") is None
        assert store.stats()["entries"] == 0

    def test_save_and_load(self, make_candidate):
        store = RankingSnapshotStore(cache=InMemoryCache(), ttl_seconds=60)
        snapshot = RankingSnapshot(
            candidates=[make_candidate("v2"), make_candidate("v1")],
            personalized=True,
        )

        store.save("u1", snapshot)
        loaded = store.load("u1")

        assert [c.id for c in loaded.candidates] == ["v2", "v1"]
        assert loaded.personalized is True
        assert store.load("u2") is None

    def test_snapshot_expires(self, make_candidate):
        clock_now = [0.0]
        cache = InMemoryCache(clock=lambda: clock_now[0])
        store = RankingSnapshotStore(cache=cache, ttl_seconds=30)
        store.save("u1", RankingSnapshot(candidates=[make_candidate("v1")]))

        clock_now[0] = 31.0

        assert store.load("u1") is None

    def test_invalidate(self, make_candidate):
        store = RankingSnapshotStore(cache=InMemoryCache(), ttl_seconds=60)
        store.save("u1", RankingSnapshot(candidates=[make_candidate("v1")]))

        assert store.invalidate("u1") is True
        assert store.load("u1") is None
        assert store.invalidate("u1") is False
