"""Services package - business logic layer."""
from .candidates import CandidateFetcher
from .diversity import Diversifier, DiversityPolicy, DiversityResult
from .feature_flags import ConfigBasedFeatureFlagService
from .feed import FeedService
from .pagination import Paginator, RankingSnapshot, RankingSnapshotStore
from .ranking import (
    AffinityScoring,
    DiversityBonusScoring,
    EngagementScoring,
    ExplorationScoring,
    FastDeliveryScoring,
    QualityScoring,
    RecencyScoring,
    Scorer,
    ScoringStrategy,
    ViewedPenaltyScoring,
)
from .viewer_context import ViewerContextBuilder

__all__ = [
    "AffinityScoring",
    "CandidateFetcher",
    "ConfigBasedFeatureFlagService",
    "Diversifier",
    "DiversityBonusScoring",
    "DiversityPolicy",
    "DiversityResult",
    "EngagementScoring",
    "ExplorationScoring",
    "FastDeliveryScoring",
    "FeedService",
    "Paginator",
    "QualityScoring",
    "RankingSnapshot",
    "RankingSnapshotStore",
    "RecencyScoring",
    "Scorer",
    "ScoringStrategy",
    "ViewedPenaltyScoring",
    "ViewerContextBuilder",
]
