"""
Read contracts the feed engine consumes.

Repositories are structural `Protocol`s so any async client with the right
methods plugs in; the in-memory versions live in `clipfeed.repositories`.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Set, runtime_checkable

from clipfeed.models.schemas import Candidate, ViewHistory


@runtime_checkable
class CatalogRepository(Protocol):
    """Video metadata and engagement counters (a read replica in production)."""

    async def fetch_candidates(
        self,
        since: datetime,
        excluded: Set[str],
        limit: int,
    ) -> List[Candidate]:
        """
        Videos created at or after `since`, newest first.

        `excluded` ids are filtered in the query itself, so `limit` counts
        only eligible rows.
        """
        ...

    async def count_videos(self) -> int:
        ...


@runtime_checkable
class PreferenceRepository(Protocol):
    async def get_category_scores(self, viewer_id: str) -> Dict[str, float]:
        """Raw interaction score per tag; empty for viewers without history."""
        ...


@runtime_checkable
class ViewHistoryRepository(Protocol):
    async def get_view_history(
        self,
        viewer_id: str,
        since: Optional[datetime] = None,
    ) -> ViewHistory:
        """Distinct ids shown to the viewer at or after `since` (all when None)."""
        ...


@runtime_checkable
class RateLimitStore(Protocol):
    """
    Sliding-window hit log keyed by requester.

    Must be shared between workers for limits to hold across processes.
    """

    def acquire(self, key: str, now: float, window_sec: float, limit: int) -> float:
        """
        Record a hit for `key` if fewer than `limit` hits fall inside
        `(now - window_sec, now]`.

        Returns:
            0.0 when admitted, otherwise seconds until the oldest hit leaves
            the window
        """
        ...


class FeatureFlagService(ABC):
    """Kill switch and gradual rollout of affinity ranking."""

    @abstractmethod
    def is_personalization_enabled(self, viewer_id: str) -> bool:
        """False under the kill switch, when disabled, or outside the rollout bucket."""

    @abstractmethod
    def is_kill_switch_active(self) -> bool:
        ...
