"""
Diversifier.
Reorders a score-sorted list so the feed does not run the same creator
or the same tags back to back, while keeping better videos roughly first.
"""
import logging
import random
from typing import List, NamedTuple, Optional

from clipfeed.models.schemas import DiversityPolicy, ScoredCandidate

logger = logging.getLogger(__name__)


class DiversityResult(NamedTuple):
    """Diversified order plus the candidates removed to build it."""

    ordered: List[ScoredCandidate]
    dropped: List[ScoredCandidate]


class Diversifier:
    """
    Tiered shuffle followed by creator and tag window checks.

    Usage:
        diversifier = Diversifier(tier_size=5, creator_window=3)
        result = diversifier.diversify(scorer.rank(pool, viewer, rng), rng)
    """

    def __init__(
        self,
        tier_size: int = 5,
        creator_window: int = 3,
        tag_diversity: bool = True,
        tag_window: int = 3,
        tag_max_shared: int = 2,
        policy: DiversityPolicy = DiversityPolicy.DROP,
        relax_after_drops: int = 3,
    ) -> None:
        """
        Initialize diversifier.

        Args:
            tier_size: Size of the contiguous tiers shuffled independently
            creator_window: How many recently emitted creators block a repeat
            tag_diversity: Enable the tag window check
            tag_window: Trailing span (including the candidate) for tag checks
            tag_max_shared: Max videos in that span that may share one tag
            policy: Violation handling
            relax_after_drops: Drops allowed before RELAX lifts the constraints
        """
        if tier_size < 1:
            raise ValueError("tier_size must be >= 1")
        self._tier_size = tier_size
        self._creator_window = creator_window
        self._tag_diversity = tag_diversity
        self._tag_window = tag_window
        self._tag_max_shared = tag_max_shared
        self._policy = DiversityPolicy(policy)
        self._relax_after_drops = relax_after_drops

    @property
    def policy(self) -> DiversityPolicy:
        return self._policy

    def diversify(
        self,
        ranked: List[ScoredCandidate],
        rng: random.Random,
    ) -> DiversityResult:
        """Shuffle within tiers, then enforce the windows."""
        shuffled = self.tiered_shuffle(ranked, rng)
        result = self.enforce_windows(shuffled)

        logger.debug(
            f"Diversified {len(ranked)} candidates -> {len(result.ordered)} ordered, "
            f"{len(result.dropped)} dropped (policy={self._policy.value})"
        )
        return result

    def tiered_shuffle(
        self,
        ranked: List[ScoredCandidate],
        rng: random.Random,
    ) -> List[ScoredCandidate]:
        """Shuffle each contiguous tier of `tier_size` independently."""
        shuffled: List[ScoredCandidate] = []
        for start in range(0, len(ranked), self._tier_size):
            tier = ranked[start : start + self._tier_size]
            rng.shuffle(tier)
            shuffled.extend(tier)
        return shuffled

    def enforce_windows(self, items: List[ScoredCandidate]) -> DiversityResult:
        """Walk the list once, applying the policy to each violation."""
        emitted: List[ScoredCandidate] = []
        deferred: List[ScoredCandidate] = []
        dropped: List[ScoredCandidate] = []
        relaxed = False

        for item in items:
            if relaxed or self._violation(item, emitted) is None:
                emitted.append(item)
                continue

            if self._policy == DiversityPolicy.DEFER:
                deferred.append(item)
                continue

            dropped.append(item)
            if (
                self._policy == DiversityPolicy.RELAX
                and len(dropped) >= self._relax_after_drops
            ):
                relaxed = True

        return DiversityResult(ordered=emitted + deferred, dropped=dropped)

    def _violation(
        self,
        item: ScoredCandidate,
        emitted: List[ScoredCandidate],
    ) -> Optional[str]:
        """Name of the violated window, or None."""
        if self._creator_window > 0:
            recent_creators = {e.creator_id for e in emitted[-self._creator_window :]}
            if item.creator_id in recent_creators:
                return "creator"

        if self._tag_diversity and item.tags and self._tag_window > 1:
            recent = emitted[-(self._tag_window - 1) :]
            for tag in item.tags:
                if sum(1 for e in recent if tag in e.tags) >= self._tag_max_shared:
                    return "tag"

        return None
