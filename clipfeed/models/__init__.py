"""Models package - domain entities and interfaces."""
from .interfaces import (
    CatalogRepository,
    FeatureFlagService,
    PreferenceRepository,
    RateLimitStore,
    ViewHistoryRepository,
)
from .media import AdaptiveMedia, MediaSource, OptimizedMedia, RawMedia
from .schemas import (
    Candidate,
    DiversityPolicy,
    ErrorResponse,
    ExclusionDecision,
    FeedPage,
    FeedRequest,
    FeedResponse,
    FeedVideo,
    PoolStats,
    ScoredCandidate,
    ViewerContext,
    ViewHistory,
)

__all__ = [
    # Interfaces
    "CatalogRepository",
    "FeatureFlagService",
    "PreferenceRepository",
    "RateLimitStore",
    "ViewHistoryRepository",
    # Media
    "AdaptiveMedia",
    "MediaSource",
    "OptimizedMedia",
    "RawMedia",
    # Schemas
    "Candidate",
    "DiversityPolicy",
    "ErrorResponse",
    "ExclusionDecision",
    "FeedPage",
    "FeedRequest",
    "FeedResponse",
    "FeedVideo",
    "PoolStats",
    "ScoredCandidate",
    "ViewerContext",
    "ViewHistory",
]
