"""Repository implementations package."""
from .memory import (
    InMemoryCatalogRepository,
    InMemoryPreferenceRepository,
    InMemoryRateLimitStore,
    InMemoryViewHistoryRepository,
)

__all__ = [
    "InMemoryCatalogRepository",
    "InMemoryPreferenceRepository",
    "InMemoryRateLimitStore",
    "InMemoryViewHistoryRepository",
]
