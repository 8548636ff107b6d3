"""
Pytest configuration and fixtures.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from clipfeed.api.dependencies import (
    clear_caches,
    get_catalog_repository,
    get_preference_repository,
    get_view_history_repository,
)
from clipfeed.core.cache import InMemoryCache
from clipfeed.core.circuit_breaker import CircuitBreaker
from clipfeed.core.random_source import RandomSourceFactory
from clipfeed.main import app
from clipfeed.models.interfaces import FeatureFlagService
from clipfeed.models.media import OptimizedMedia, RawMedia
from clipfeed.models.schemas import Candidate, ScoredCandidate
from clipfeed.repositories.memory import (
    InMemoryCatalogRepository,
    InMemoryPreferenceRepository,
    InMemoryViewHistoryRepository,
)
from clipfeed.services.candidates import CandidateFetcher
from clipfeed.services.diversity import Diversifier, DiversityPolicy
from clipfeed.services.feed import FeedService
from clipfeed.services.pagination import Paginator, RankingSnapshotStore
from clipfeed.services.ranking import (
    AffinityScoring,
    DiversityBonusScoring,
    EngagementScoring,
    FastDeliveryScoring,
    ExplorationScoring,
    QualityScoring,
    RecencyScoring,
    Scorer,
    ViewedPenaltyScoring,
)
from clipfeed.services.viewer_context import ViewerContextBuilder

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


class StaticFeatureFlags(FeatureFlagService):
    """Feature flags pinned for a test."""

    def __init__(self, enabled: bool = True, kill_switch: bool = False) -> None:
        self.enabled = enabled
        self.kill_switch = kill_switch
        self.checked: List[str] = []

    def is_personalization_enabled(self, viewer_id: str) -> bool:
        self.checked.append(viewer_id)
        return self.enabled and not self.kill_switch

    def is_kill_switch_active(self) -> bool:
        return self.kill_switch


class FailingCatalogRepository:
    """Catalog whose every read raises."""

    async def fetch_candidates(self, since, excluded, limit):
        raise RuntimeError("catalog down")

    async def count_videos(self):
        raise RuntimeError("catalog down")


class FailingPreferenceRepository:
    def __init__(self) -> None:
        self.calls = 0

    async def get_category_scores(self, viewer_id):
        self.calls += 1
        raise ConnectionError("preference store down")


@pytest.fixture
def static_flags():
    """The StaticFeatureFlags class, for tests that pin flags."""
    return StaticFeatureFlags


@pytest.fixture
def failing_catalog():
    return FailingCatalogRepository()


@pytest.fixture
def failing_preferences():
    return FailingPreferenceRepository()


@pytest.fixture
def make_candidate():
    """Factory for catalog candidates relative to the fixed clock."""

    def _make(
        video_id: str,
        creator_id: Optional[str] = None,
        tags: Optional[List[str]] = None,
        hours_old: float = 1.0,
        views: int = 0,
        likes: int = 0,
        comments: int = 0,
        optimized: bool = True,
    ) -> Candidate:
        media = [RawMedia(url=f"https://cdn.test/{video_id}.mp4")]
        if optimized:
            media.append(OptimizedMedia(url=f"https://cdn.test/{video_id}_720.mp4"))
        return Candidate(
            id=video_id,
            creator_id=creator_id or f"creator_{video_id}",
            title=f"Video {video_id}",
            created_at=NOW - timedelta(hours=hours_old),
            tags=tags if tags is not None else [f"tag_{video_id}"],
            view_count=views,
            like_count=likes,
            comment_count=comments,
            media=media,
        )

    return _make


@pytest.fixture
def make_scored(make_candidate):
    """Factory for scored candidates, for diversifier and paginator tests."""

    def _make(video_id: str, creator_id: str, tags: Optional[List[str]] = None, score: float = 0.0):
        candidate = make_candidate(video_id, creator_id=creator_id, tags=tags or [])
        return ScoredCandidate(candidate=candidate, score=score)

    return _make


@pytest.fixture
def distinct_catalog(make_candidate):
    """Catalog of videos with no shared creators or tags, newest is v1."""

    def _make(size: int) -> InMemoryCatalogRepository:
        return InMemoryCatalogRepository(
            videos=[
                make_candidate(f"v{i}", hours_old=i, views=10 * i, likes=i)
                for i in range(1, size + 1)
            ]
        )

    return _make


@pytest.fixture
def feed_service_factory():
    """
    Builds a FeedService around in-memory collaborators with a fixed
    clock and a seeded random source.
    """

    def _build(
        catalog,
        preferences=None,
        history=None,
        feature_flags: Optional[FeatureFlagService] = None,
        seed: Optional[int] = 7,
        policy: DiversityPolicy = DiversityPolicy.DROP,
        fallback_fill: bool = True,
        tier_size: int = 5,
        snapshot_store: Optional[RankingSnapshotStore] = None,
        preference_timeout_ms: int = 150,
    ) -> FeedService:
        fetcher = CandidateFetcher(
            catalog=catalog,
            circuit_breaker=CircuitBreaker("catalog"),
            clock=fixed_clock,
        )
        context_builder = ViewerContextBuilder(
            preference_repo=preferences or InMemoryPreferenceRepository(scores={}),
            history_repo=history or InMemoryViewHistoryRepository(),
            candidate_fetcher=fetcher,
            feature_flags=feature_flags or StaticFeatureFlags(),
            preference_timeout_ms=preference_timeout_ms,
            clock=fixed_clock,
        )
        scorer = Scorer(
            [
                AffinityScoring(),
                EngagementScoring(),
                RecencyScoring(clock=fixed_clock),
                QualityScoring(),
                DiversityBonusScoring(),
                FastDeliveryScoring(),
                ExplorationScoring(),
                ViewedPenaltyScoring(),
            ]
        )
        return FeedService(
            candidate_fetcher=fetcher,
            context_builder=context_builder,
            scorer=scorer,
            diversifier=Diversifier(tier_size=tier_size, policy=policy),
            paginator=Paginator(fallback_fill=fallback_fill),
            random_sources=RandomSourceFactory(seed=seed),
            snapshot_store=snapshot_store,
        )

    return _build


@pytest.fixture
def snapshot_store():
    """Enabled snapshot store on a plain in-memory cache."""
    return RankingSnapshotStore(cache=InMemoryCache(), ttl_seconds=60)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def record_views():
    """Appends one recent view per id to a history repository."""

    def _record(
        history: InMemoryViewHistoryRepository,
        viewer_id: str,
        video_ids: List[str],
    ) -> None:
        for video_id in video_ids:
            history.record_view(viewer_id, video_id, viewed_at=NOW - timedelta(hours=1))

    return _record


# =============================================================================
# API fixtures
# =============================================================================


@pytest.fixture
def mock_catalog_repo():
    """Fixture for the mock CatalogRepository."""
    return InMemoryCatalogRepository()


@pytest.fixture
def mock_preference_repo():
    """Fixture for the mock PreferenceRepository."""
    return InMemoryPreferenceRepository()


@pytest.fixture
def mock_view_history_repo():
    """Fixture for an empty ViewHistoryRepository."""
    return InMemoryViewHistoryRepository()


@pytest.fixture
def test_client(
    mock_catalog_repo,
    mock_preference_repo,
    mock_view_history_repo,
):
    """
    TestClient fixture with dependency overrides.
    Uses in-memory repositories for isolation; singletons (breakers,
    rate-limit windows) are rebuilt for every test.
    """
    clear_caches()
    app.dependency_overrides[get_catalog_repository] = lambda: mock_catalog_repo
    app.dependency_overrides[get_preference_repository] = lambda: mock_preference_repo
    app.dependency_overrides[get_view_history_repository] = lambda: mock_view_history_repo

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    clear_caches()
