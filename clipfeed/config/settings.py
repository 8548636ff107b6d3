"""
Centralized configuration using Pydantic BaseSettings.
All environment variables are loaded here - no hardcoded values.
"""
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings

from clipfeed.models.schemas import DiversityPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Clip Feed Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    CORS_ORIGINS: List[str] = ["*"]

    # Feature Flags
    PERSONALIZATION_ENABLED: bool = True
    KILL_SWITCH_ACTIVE: bool = False

    # Rollout Configuration
    ROLLOUT_PERCENTAGE: float = 100.0  # Percentage of viewers receiving affinity ranking

    # Candidate Pool
    CANDIDATE_WINDOW_DAYS: int = 30
    CANDIDATE_POOL_SIZE: int = 50
    MIN_CATALOG_FOR_EXCLUSION: int = 20
    VIEW_HISTORY_RETENTION_DAYS: int = 7

    # Scoring
    RECENCY_MODE: Literal["step", "decay"] = "step"
    ENGAGEMENT_MODE: Literal["log", "pool_normalized"] = "log"
    EXPLORATION_MAX: float = 5.0
    FAST_DELIVERY_BONUS: float = 3.0  # Candidates with an optimized or adaptive rendition
    VIEWED_PENALTY: float = -200.0
    RANDOM_SEED: Optional[int] = None  # Pin for reproducible rankings (tests, debugging)

    # Diversity
    TIER_SIZE: int = 5
    CREATOR_WINDOW: int = 3
    TAG_DIVERSITY_ENABLED: bool = True
    TAG_WINDOW: int = 3
    TAG_MAX_SHARED: int = 2
    DIVERSITY_POLICY: DiversityPolicy = DiversityPolicy.DROP
    RELAX_AFTER_DROPS: int = 3
    FALLBACK_FILL_ENABLED: bool = True  # Backfill short pages with dropped candidates

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 50
    SNAPSHOT_TTL_SEC: int = 0  # 0 disables per-viewer ranking snapshots
    SNAPSHOT_MAX_ENTRIES: int = 10_000
    FAST_PATH_CACHE_MAX_AGE_SEC: int = 15

    # Telemetry
    ENABLE_OTEL: bool = False  # Default to False to prevent gRPC errors in dev
    ENABLE_PROMETHEUS: bool = True

    # Timeouts (milliseconds) - Strict budgets per dependency
    CATALOG_TIMEOUT_MS: int = 500
    PREFERENCE_TIMEOUT_MS: int = 150
    HISTORY_TIMEOUT_MS: int = 150

    # Circuit Breaker
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT_SEC: int = 30

    # Rate Limiting
    RATE_LIMIT_REQUESTS: int = 120
    RATE_LIMIT_WINDOW_SEC: int = 60

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - singleton pattern."""
    return Settings()
