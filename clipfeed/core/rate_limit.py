"""
Sliding-window rate limiting for feed requests.
Window state lives in an injected RateLimitStore, never in module globals,
so the limiter behaves the same behind several workers sharing a store.
"""
import logging
import math
import time
from typing import Callable

from clipfeed.core.exceptions import RateLimitError
from clipfeed.models.interfaces import RateLimitStore

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """
    Admits at most `limit` requests per requester key within any
    `window_sec` span.

    Usage:
        limiter = SlidingWindowRateLimiter(InMemoryRateLimitStore(), limit=120, window_sec=60)
        limiter.check("viewer:u_42")  # raises RateLimitError when exhausted
    """

    def __init__(
        self,
        store: RateLimitStore,
        limit: int,
        window_sec: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._limit = limit
        self._window_sec = window_sec
        self._clock = clock

    def check(self, key: str) -> None:
        """
        Record a hit for `key`.

        Raises:
            RateLimitError: If the window is already full
        """
        if self._limit <= 0:
            return

        retry_after = self._store.acquire(
            key,
            now=self._clock(),
            window_sec=self._window_sec,
            limit=self._limit,
        )
        if retry_after > 0:
            logger.warning(
                f"Rate limit exceeded for {key}",
                extra={"reason": "rate_limited"},
            )
            raise RateLimitError(retry_after=max(1, math.ceil(retry_after)))
