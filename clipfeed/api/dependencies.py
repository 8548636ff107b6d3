"""
Dependency injection container.
Creates and wires all application components.
Uses FastAPI's dependency injection system.
"""
from datetime import timedelta
from functools import lru_cache
from typing import Dict

from fastapi import Depends

from clipfeed.config import get_settings
from clipfeed.core.cache import InMemoryCache
from clipfeed.core.circuit_breaker import CircuitBreaker
from clipfeed.core.random_source import RandomSourceFactory
from clipfeed.core.rate_limit import SlidingWindowRateLimiter
from clipfeed.models.interfaces import (
    CatalogRepository,
    FeatureFlagService,
    PreferenceRepository,
    RateLimitStore,
    ViewHistoryRepository,
)
from clipfeed.repositories.memory import (
    InMemoryCatalogRepository,
    InMemoryPreferenceRepository,
    InMemoryRateLimitStore,
    InMemoryViewHistoryRepository,
)
from clipfeed.services.candidates import CandidateFetcher
from clipfeed.services.diversity import Diversifier
from clipfeed.services.feature_flags import ConfigBasedFeatureFlagService
from clipfeed.services.feed import FeedService
from clipfeed.services.pagination import Paginator, RankingSnapshotStore
from clipfeed.services.ranking import Scorer, default_strategies
from clipfeed.services.viewer_context import ViewerContextBuilder


# =============================================================================
# Singleton Instances (Application Lifetime)
# =============================================================================


@lru_cache()
def get_catalog_repository() -> InMemoryCatalogRepository:
    """Get singleton catalog repository."""
    return InMemoryCatalogRepository()


@lru_cache()
def get_preference_repository() -> InMemoryPreferenceRepository:
    """Get singleton preference repository."""
    return InMemoryPreferenceRepository()


@lru_cache()
def get_view_history_repository() -> InMemoryViewHistoryRepository:
    """Get singleton view-history repository."""
    return InMemoryViewHistoryRepository()


@lru_cache()
def get_rate_limit_store() -> InMemoryRateLimitStore:
    """Get singleton rate-limit store."""
    return InMemoryRateLimitStore()


@lru_cache()
def get_feature_flag_service() -> ConfigBasedFeatureFlagService:
    """Get singleton feature flag service (rollout read from settings)."""
    return ConfigBasedFeatureFlagService()


@lru_cache()
def get_snapshot_store() -> RankingSnapshotStore:
    """Get singleton ranking snapshot store."""
    settings = get_settings()
    return RankingSnapshotStore(
        cache=InMemoryCache(max_entries=settings.SNAPSHOT_MAX_ENTRIES),
        ttl_seconds=settings.SNAPSHOT_TTL_SEC,
    )


@lru_cache()
def get_random_source_factory() -> RandomSourceFactory:
    """Get singleton random source factory."""
    return RandomSourceFactory(seed=get_settings().RANDOM_SEED)


@lru_cache()
def get_circuit_breakers() -> Dict[str, CircuitBreaker]:
    """One circuit breaker per read collaborator."""
    settings = get_settings()
    return {
        name: CircuitBreaker(
            name=name,
            failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout_sec=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT_SEC,
        )
        for name in ("catalog", "preferences", "view_history")
    }


# =============================================================================
# Request-Scoped Dependencies (Per-Request Lifetime)
# =============================================================================


def get_rate_limiter(
    store: RateLimitStore = Depends(get_rate_limit_store),
) -> SlidingWindowRateLimiter:
    """Rate limiter over the shared store."""
    settings = get_settings()
    return SlidingWindowRateLimiter(
        store=store,
        limit=settings.RATE_LIMIT_REQUESTS,
        window_sec=settings.RATE_LIMIT_WINDOW_SEC,
    )


def get_feed_service(
    catalog: CatalogRepository = Depends(get_catalog_repository),
    preferences: PreferenceRepository = Depends(get_preference_repository),
    history: ViewHistoryRepository = Depends(get_view_history_repository),
    feature_flags: FeatureFlagService = Depends(get_feature_flag_service),
    snapshot_store: RankingSnapshotStore = Depends(get_snapshot_store),
    random_sources: RandomSourceFactory = Depends(get_random_source_factory),
) -> FeedService:
    """
    Get feed service with all dependencies wired.
    This is the main entry point for the feed endpoint.
    """
    settings = get_settings()
    breakers = get_circuit_breakers()

    candidate_fetcher = CandidateFetcher(
        catalog=catalog,
        circuit_breaker=breakers["catalog"],
        timeout_ms=settings.CATALOG_TIMEOUT_MS,
    )
    context_builder = ViewerContextBuilder(
        preference_repo=preferences,
        history_repo=history,
        candidate_fetcher=candidate_fetcher,
        feature_flags=feature_flags,
        preference_breaker=breakers["preferences"],
        history_breaker=breakers["view_history"],
        min_catalog_for_exclusion=settings.MIN_CATALOG_FOR_EXCLUSION,
        history_retention=timedelta(days=settings.VIEW_HISTORY_RETENTION_DAYS),
        preference_timeout_ms=settings.PREFERENCE_TIMEOUT_MS,
        history_timeout_ms=settings.HISTORY_TIMEOUT_MS,
    )
    diversifier = Diversifier(
        tier_size=settings.TIER_SIZE,
        creator_window=settings.CREATOR_WINDOW,
        tag_diversity=settings.TAG_DIVERSITY_ENABLED,
        tag_window=settings.TAG_WINDOW,
        tag_max_shared=settings.TAG_MAX_SHARED,
        policy=settings.DIVERSITY_POLICY,
        relax_after_drops=settings.RELAX_AFTER_DROPS,
    )

    return FeedService(
        candidate_fetcher=candidate_fetcher,
        context_builder=context_builder,
        scorer=Scorer(default_strategies(settings)),
        diversifier=diversifier,
        paginator=Paginator(fallback_fill=settings.FALLBACK_FILL_ENABLED),
        random_sources=random_sources,
        snapshot_store=snapshot_store,
        candidate_window=timedelta(days=settings.CANDIDATE_WINDOW_DAYS),
        pool_size=settings.CANDIDATE_POOL_SIZE,
        max_page_size=settings.MAX_PAGE_SIZE,
    )


# =============================================================================
# Cleanup Functions
# =============================================================================


def clear_caches() -> None:
    """Clear all cached singleton instances (for testing)."""
    get_catalog_repository.cache_clear()
    get_preference_repository.cache_clear()
    get_view_history_repository.cache_clear()
    get_rate_limit_store.cache_clear()
    get_feature_flag_service.cache_clear()
    get_snapshot_store.cache_clear()
    get_random_source_factory.cache_clear()
    get_circuit_breakers.cache_clear()
