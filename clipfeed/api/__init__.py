"""API package - FastAPI routes and dependencies."""
from .dependencies import clear_caches, get_feed_service, get_rate_limiter
from .routers import feed_router, health_router

__all__ = [
    "clear_caches",
    "feed_router",
    "get_feed_service",
    "get_rate_limiter",
    "health_router",
]
