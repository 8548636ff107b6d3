"""
Domain models using Pydantic.
All data structures for the feed ranking engine.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator

from clipfeed.models.media import MediaSource, has_fast_delivery, order_media_sources


# =============================================================================
# Domain Models (Internal)
# =============================================================================


class Candidate(BaseModel):
    """
    Video eligible for ranking in one request.
    Immutable snapshot read from the catalog collaborator.
    """

    id: str = Field(..., description="Unique video identifier")
    creator_id: str = Field(..., description="Uploader identifier")
    title: str = Field(default="", description="Video title")
    created_at: datetime = Field(..., description="Creation time (UTC)")
    tags: List[str] = Field(default_factory=list, description="Content tags")
    view_count: int = Field(default=0, ge=0)
    like_count: int = Field(default=0, ge=0)
    comment_count: int = Field(default=0, ge=0)
    media: List[MediaSource] = Field(
        default_factory=list,
        description="Available renditions",
    )

    class Config:
        frozen = True

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(tag for tag in value if tag))

    @property
    def has_fast_delivery(self) -> bool:
        """Whether optimized media is ready."""
        return has_fast_delivery(self.media)


class ExclusionDecision(str, Enum):
    """Outcome of the seen-video exclusion policy for one request."""

    ANONYMOUS = "anonymous"
    SMALL_CATALOG = "small_catalog"
    SCARCITY = "scarcity"
    HISTORY_UNAVAILABLE = "history_unavailable"
    COUNT_UNAVAILABLE = "count_unavailable"
    APPLIED = "applied"


class DiversityPolicy(str, Enum):
    """What happens to a candidate that violates a diversity window."""

    DROP = "drop"      # Remove it; reported in DiversityResult.dropped
    DEFER = "defer"    # Move it to the end of the order
    RELAX = "relax"    # Drop until N drops, then stop enforcing


class ViewerContext(BaseModel):
    """
    Per-request view of the requester.
    Built from the preference store and view-history log; never persisted.
    """

    viewer_id: Optional[str] = Field(default=None, description="None for anonymous viewers")
    category_affinity: Dict[str, float] = Field(
        default_factory=dict,
        description="Normalized tag affinity (non-negative, sums to <= 1)",
    )
    seen_video_ids: Set[str] = Field(default_factory=set)
    exclusion_decision: ExclusionDecision = ExclusionDecision.ANONYMOUS
    personalized: bool = Field(
        default=False,
        description="Whether affinity ranking was allowed for this viewer",
    )
    degradations: List[str] = Field(
        default_factory=list,
        description="Signals zeroed because a collaborator failed",
    )

    @field_validator("category_affinity")
    @classmethod
    def _non_negative(cls, value: Dict[str, float]) -> Dict[str, float]:
        if any(weight < 0 for weight in value.values()):
            raise ValueError("affinity weights must be non-negative")
        return value

    @property
    def exclusion_applied(self) -> bool:
        return self.exclusion_decision == ExclusionDecision.APPLIED

    @property
    def is_cold_start(self) -> bool:
        return not self.category_affinity

    @property
    def excluded_ids(self) -> Set[str]:
        """Ids to omit at the source query (empty unless exclusion applies)."""
        return set(self.seen_video_ids) if self.exclusion_applied else set()


class ViewHistory(BaseModel):
    """Videos a viewer was shown within the retention window."""

    viewed_ids: Set[str] = Field(default_factory=set)

    @property
    def viewed_count(self) -> int:
        return len(self.viewed_ids)


class PoolStats(BaseModel):
    """Aggregates over the candidate pool used by normalized scoring."""

    max_likes: int = 0
    max_views: int = 0

    @classmethod
    def from_candidates(cls, candidates: List[Candidate]) -> "PoolStats":
        return cls(
            max_likes=max((c.like_count for c in candidates), default=0),
            max_views=max((c.view_count for c in candidates), default=0),
        )

    @property
    def safe_max_likes(self) -> int:
        return max(self.max_likes, 1)

    @property
    def safe_max_views(self) -> int:
        return max(self.max_views, 1)


class ScoredCandidate(BaseModel):
    """Internal model for a candidate with its computed score."""

    candidate: Candidate
    score: float
    breakdown: Dict[str, float] = Field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def creator_id(self) -> str:
        return self.candidate.creator_id

    @property
    def tags(self) -> List[str]:
        return self.candidate.tags


class FeedPage(BaseModel):
    """Result of one feed request before serialization."""

    candidates: List[Candidate] = Field(default_factory=list)
    page: int = 0
    page_size: int = 10
    personalized: bool = False
    fast_path: bool = False
    degradations: List[str] = Field(default_factory=list)


# =============================================================================
# API Models (External)
# =============================================================================


class FeedRequest(BaseModel):
    """Request body for the feed endpoint."""

    viewer_id: Optional[str] = Field(default=None, alias="viewerId")
    page: int = Field(default=0, ge=0, description="Zero-based page index")
    page_size: Optional[int] = Field(
        default=None,
        gt=0,
        alias="pageSize",
        description="Items per page, server default when omitted",
    )
    fast_path: bool = Field(
        default=False,
        alias="fastPath",
        description="Unscored newest-first first page",
    )

    class Config:
        populate_by_name = True


class FeedVideo(BaseModel):
    """Single video in feed response."""

    id: str = Field(..., description="Video ID")
    creator_id: str = Field(..., alias="creatorId")
    title: str = Field(..., description="Video title")
    media_refs: List[MediaSource] = Field(
        default_factory=list,
        alias="mediaRefs",
        description="Playable renditions, best first",
    )
    view_count: int = Field(..., alias="viewCount")
    like_count: int = Field(..., alias="likeCount")
    comment_count: Optional[int] = Field(default=None, alias="commentCount")
    tags: Optional[List[str]] = Field(default=None)
    created_at: datetime = Field(..., alias="createdAt")

    class Config:
        populate_by_name = True

    @classmethod
    def from_candidate(cls, candidate: Candidate, first_paint: bool = False) -> "FeedVideo":
        """Strip internal fields; first-paint items also drop scoring-only fields."""
        return cls(
            id=candidate.id,
            creator_id=candidate.creator_id,
            title=candidate.title,
            media_refs=order_media_sources(candidate.media),
            view_count=candidate.view_count,
            like_count=candidate.like_count,
            comment_count=None if first_paint else candidate.comment_count,
            tags=None if first_paint else list(candidate.tags),
            created_at=candidate.created_at,
        )


class FeedResponse(BaseModel):
    """Feed endpoint response."""

    videos: List[FeedVideo] = Field(..., description="Ranked videos for the requested page")


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str = Field(..., description="Error message")
    code: str = Field(default="INTERNAL_ERROR")
    details: Dict[str, Any] = Field(default_factory=dict)
