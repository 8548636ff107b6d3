"""
Paginator and per-viewer ranking snapshots.

Pages are plain slices of the diversified order. When diversification
leaves the order too short for the requested page, dropped candidates
are appended (fallback-fill) so a page is never short while usable
content exists.
"""
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from clipfeed.core.cache import CacheInterface
from clipfeed.models.schemas import Candidate, ScoredCandidate
from clipfeed.services.diversity import DiversityResult

logger = logging.getLogger(__name__)


class Paginator:
    """Slices diversified results into pages."""

    def __init__(self, fallback_fill: bool = True) -> None:
        self._fallback_fill = fallback_fill

    def fill(
        self,
        result: DiversityResult,
        min_length: Optional[int] = None,
    ) -> List[ScoredCandidate]:
        """
        Unique-id order, backfilled from dropped candidates.

        Args:
            result: Diversifier output
            min_length: Stop backfilling once the order is this long;
                None backfills every dropped candidate

        Returns:
            Ordered candidates with no repeated id
        """
        order: List[ScoredCandidate] = []
        seen_ids = set()
        for item in result.ordered:
            if item.id not in seen_ids:
                seen_ids.add(item.id)
                order.append(item)

        if not self._fallback_fill:
            return order

        filled = 0
        for item in result.dropped:
            if min_length is not None and len(order) >= min_length:
                break
            if item.id not in seen_ids:
                seen_ids.add(item.id)
                order.append(item)
                filled += 1

        if filled:
            logger.debug(f"Fallback-fill re-admitted {filled} dropped candidates")
        return order

    def paginate(
        self,
        result: DiversityResult,
        page: int,
        page_size: int,
    ) -> List[ScoredCandidate]:
        """`order[page*size : (page+1)*size]` over the filled order."""
        end = (page + 1) * page_size
        return slice_page(self.fill(result, min_length=end), page, page_size)


def slice_page(order: List, page: int, page_size: int) -> List:
    start = page * page_size
    return order[start : start + page_size]


class RankingSnapshot(BaseModel):
    """Full ranked order computed on a viewer's first page."""

    candidates: List[Candidate] = Field(default_factory=list)
    personalized: bool = False
    degradations: List[str] = Field(default_factory=list)


class RankingSnapshotStore:
    """
    Per-viewer ranking snapshots with a short TTL.

    Page 0 always re-ranks and overwrites the snapshot; later pages slice
    it while it lives so scrolling does not reshuffle already-seen pages.
    """

    KEY_PREFIX = "ranking"

    def __init__(self, cache: CacheInterface[RankingSnapshot], ttl_seconds: float) -> None:
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self._ttl_seconds > 0

    def _key(self, viewer_id: str) -> str:
        return f"{self.KEY_PREFIX}:{viewer_id}"

    def save(self, viewer_id: str, snapshot: RankingSnapshot) -> None:
        if not self.enabled:
            return
        self._cache.purge_expired()
        self._cache.set(self._key(viewer_id), snapshot, ttl_seconds=self._ttl_seconds)

    def load(self, viewer_id: str) -> Optional[RankingSnapshot]:
        if not self.enabled:
            return None
        return self._cache.get(self._key(viewer_id))

    def invalidate(self, viewer_id: str) -> bool:
        return self._cache.delete(self._key(viewer_id))

    def stats(self) -> Dict[str, object]:
        return {
            "enabled": self.enabled,
            "ttl_seconds": self._ttl_seconds,
            "entries": len(self._cache),
        }
