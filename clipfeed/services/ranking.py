"""
Ranking engine service.
Composite relevance scoring over hand-weighted, independently bounded terms.
"""
import logging
import math
import random
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional

from clipfeed.config.settings import Settings
from clipfeed.models.schemas import (
    Candidate,
    PoolStats,
    ScoredCandidate,
    ViewerContext,
)
from clipfeed.services.candidates import utc_now

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


# =============================================================================
# Scoring Strategy (Strategy Pattern)
# =============================================================================


class ScoringStrategy(ABC):
    """Abstract base class for one bounded score term."""

    name: str = "base"

    @abstractmethod
    def calculate(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> float:
        """
        Calculate this term's contribution.

        Returns:
            Points added to the composite score
        """
        pass


class AffinityScoring(ScoringStrategy):
    """Mean tag affinity scaled to 0-40; flat points for cold-start viewers."""

    name = "affinity"

    def __init__(self, max_points: float = 40.0, cold_start_points: float = 10.0) -> None:
        self._max_points = max_points
        self._cold_start_points = cold_start_points

    def calculate(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> float:
        if viewer.is_cold_start or not candidate.tags:
            return self._cold_start_points

        total = sum(viewer.category_affinity.get(tag, 0.0) for tag in candidate.tags)
        return self._max_points * total / len(candidate.tags)


class EngagementScoring(ScoringStrategy):
    """
    Popularity on a log scale (0-25) so viral outliers cannot dominate.

    `pool_normalized` mode scales likes and views against the pool maxima
    instead.
    """

    name = "engagement"

    def __init__(self, mode: str = "log", max_points: float = 25.0) -> None:
        if mode not in ("log", "pool_normalized"):
            raise ValueError(f"Unknown engagement mode: {mode}")
        self._mode = mode
        self._max_points = max_points

    def calculate(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> float:
        if self._mode == "pool_normalized":
            likes = candidate.like_count / stats.safe_max_likes
            views = candidate.view_count / stats.safe_max_views
            return self._max_points * (0.6 * likes + 0.4 * views)

        weighted = (
            candidate.view_count
            + 5 * candidate.like_count
            + 10 * candidate.comment_count
        )
        return min(self._max_points, 3 * math.log1p(weighted))


class RecencyScoring(ScoringStrategy):
    """
    Freshness, 0-20.

    `step`: <1d 20, <3d 15, <7d 10, <14d 5, older 0.
    `decay`: 20 * 0.5 ** (age_days / 7), a 7-day half-life.
    """

    name = "recency"

    STEPS = ((1, 20.0), (3, 15.0), (7, 10.0), (14, 5.0))
    HALF_LIFE_DAYS = 7.0

    def __init__(
        self,
        mode: str = "step",
        max_points: float = 20.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if mode not in ("step", "decay"):
            raise ValueError(f"Unknown recency mode: {mode}")
        self._mode = mode
        self._max_points = max_points
        self._clock = clock

    def calculate(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> float:
        age_days = max(0.0, (self._clock() - candidate.created_at).total_seconds() / SECONDS_PER_DAY)

        if self._mode == "decay":
            return self._max_points * 0.5 ** (age_days / self.HALF_LIFE_DAYS)

        for limit_days, points in self.STEPS:
            if age_days < limit_days:
                return points
        return 0.0


class QualityScoring(ScoringStrategy):
    """Engagement per view, 0-10, rewarding rate over raw popularity."""

    name = "quality"

    def calculate(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> float:
        interactions = candidate.like_count + candidate.comment_count
        return min(10.0, 20 * interactions / max(candidate.view_count, 1))


class DiversityBonusScoring(ScoringStrategy):
    """+5 when the candidate carries a tag the viewer has not engaged with."""

    name = "diversity_bonus"

    def __init__(self, bonus: float = 5.0) -> None:
        self._bonus = bonus

    def calculate(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> float:
        if any(tag not in viewer.category_affinity for tag in candidate.tags):
            return self._bonus
        return 0.0


class FastDeliveryScoring(ScoringStrategy):
    """Small nudge for videos with a transcoded rendition, which start faster."""

    name = "fast_delivery"

    def __init__(self, bonus: float = 3.0) -> None:
        self._bonus = bonus

    def calculate(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> float:
        return self._bonus if candidate.has_fast_delivery else 0.0


class ExplorationScoring(ScoringStrategy):
    """Uniform noise from the request's generator so feeds are not static."""

    name = "exploration"

    def __init__(self, max_points: float = 5.0) -> None:
        self._max_points = max_points

    def calculate(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> float:
        return rng.uniform(0.0, self._max_points)


class ViewedPenaltyScoring(ScoringStrategy):
    """Sinks already-seen videos when exclusion was waived for this request."""

    name = "viewed_penalty"

    def __init__(self, penalty: float = -200.0) -> None:
        self._penalty = penalty

    def calculate(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> float:
        if not viewer.exclusion_applied and candidate.id in viewer.seen_video_ids:
            return self._penalty
        return 0.0


def default_strategies(
    settings: Settings,
    clock: Callable[[], datetime] = utc_now,
) -> List[ScoringStrategy]:
    """Standard term set configured from settings."""
    return [
        AffinityScoring(),
        EngagementScoring(mode=settings.ENGAGEMENT_MODE),
        RecencyScoring(mode=settings.RECENCY_MODE, clock=clock),
        QualityScoring(),
        DiversityBonusScoring(),
        FastDeliveryScoring(bonus=settings.FAST_DELIVERY_BONUS),
        ExplorationScoring(max_points=settings.EXPLORATION_MAX),
        ViewedPenaltyScoring(penalty=settings.VIEWED_PENALTY),
    ]


# =============================================================================
# Scorer
# =============================================================================


class Scorer:
    """
    Computes composite scores and orders a candidate pool.
    The only nondeterminism comes from the injected generator.
    """

    def __init__(self, strategies: Optional[List[ScoringStrategy]] = None):
        """
        Initialize scorer with scoring strategies.

        Args:
            strategies: Terms to sum (default: all terms with default bounds)
        """
        self._strategies = strategies or [
            AffinityScoring(),
            EngagementScoring(),
            RecencyScoring(),
            QualityScoring(),
            DiversityBonusScoring(),
            FastDeliveryScoring(),
            ExplorationScoring(),
            ViewedPenaltyScoring(),
        ]

    def score(
        self,
        candidate: Candidate,
        viewer: ViewerContext,
        stats: PoolStats,
        rng: random.Random,
    ) -> ScoredCandidate:
        """Score one candidate, keeping the per-term breakdown."""
        breakdown: Dict[str, float] = {}
        for strategy in self._strategies:
            breakdown[strategy.name] = strategy.calculate(candidate, viewer, stats, rng)

        return ScoredCandidate(
            candidate=candidate,
            score=sum(breakdown.values()),
            breakdown=breakdown,
        )

    def rank(
        self,
        candidates: List[Candidate],
        viewer: ViewerContext,
        rng: random.Random,
    ) -> List[ScoredCandidate]:
        """
        Score the pool and sort it by score, best first.

        Args:
            candidates: Candidate pool for this request
            viewer: Requester context
            rng: Per-request random source

        Returns:
            Scored candidates, score-descending (stable for ties)
        """
        stats = PoolStats.from_candidates(candidates)
        scored = [self.score(candidate, viewer, stats, rng) for candidate in candidates]
        scored.sort(key=lambda s: s.score, reverse=True)

        logger.debug(
            f"Scored {len(scored)} candidates for viewer={viewer.viewer_id} "
            f"(cold_start={viewer.is_cold_start}, exclusion={viewer.exclusion_decision.value})"
        )
        return scored
