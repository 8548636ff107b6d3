"""Core infrastructure components."""
from .cache import CacheInterface, InMemoryCache
from .circuit_breaker import CircuitBreaker, CircuitState
from .exceptions import (
    AppException,
    CircuitBreakerOpenError,
    DependencyUnavailableError,
    InvalidRequestError,
    RateLimitError,
)
from .rate_limit import SlidingWindowRateLimiter

__all__ = [
    "AppException",
    "CacheInterface",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "DependencyUnavailableError",
    "InMemoryCache",
    "InvalidRequestError",
    "RateLimitError",
    "SlidingWindowRateLimiter",
]
