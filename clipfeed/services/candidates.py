"""
Candidate fetcher.
Bounded, newest-first reads of the catalog with source-side exclusion.
The catalog is the one mandatory collaborator: any failure here fails
the request with DependencyUnavailableError.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional, Set, TypeVar

from clipfeed.core.circuit_breaker import CircuitBreaker
from clipfeed.core.exceptions import CircuitBreakerOpenError, DependencyUnavailableError
from clipfeed.models.interfaces import CatalogRepository
from clipfeed.models.schemas import Candidate

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEPENDENCY_NAME = "catalog"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CandidateFetcher:
    """Reads candidate pools from the catalog collaborator."""

    def __init__(
        self,
        catalog: CatalogRepository,
        circuit_breaker: Optional[CircuitBreaker] = None,
        timeout_ms: int = 500,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize candidate fetcher.

        Args:
            catalog: Catalog read collaborator
            circuit_breaker: Breaker guarding catalog reads
            timeout_ms: Per-read timeout budget
            clock: Source of the current UTC time
        """
        self._catalog = catalog
        self._circuit_breaker = circuit_breaker or CircuitBreaker(name=DEPENDENCY_NAME)
        self._timeout_sec = timeout_ms / 1000
        self._clock = clock

    async def fetch(
        self,
        window: timedelta,
        excluded: Set[str],
        pool_size: int,
    ) -> List[Candidate]:
        """
        Fetch the newest videos created within `window`.

        Args:
            window: How far back to look (e.g. 30 days)
            excluded: Ids omitted in the catalog query itself
            pool_size: Maximum pool size

        Returns:
            Candidates newest-first; empty when nothing qualifies

        Raises:
            DependencyUnavailableError: If the catalog read fails
        """
        if pool_size <= 0:
            return []

        since = self._clock() - window
        candidates = await self._read(
            lambda: self._catalog.fetch_candidates(
                since=since,
                excluded=set(excluded),
                limit=pool_size,
            )
        )
        logger.debug(
            f"Fetched {len(candidates)} candidates "
            f"(window={window.days}d, excluded={len(excluded)}, pool_size={pool_size})"
        )
        return candidates

    async def fetch_recent(self, window: timedelta, limit: int) -> List[Candidate]:
        """Trimmed fetch for the fast path: no exclusion, pool capped at `limit`."""
        return await self.fetch(window=window, excluded=set(), pool_size=limit)

    async def count_catalog(self) -> int:
        """Total catalog size for the exclusion policy."""
        return await self._read(self._catalog.count_videos)

    async def _read(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Run one catalog read under the timeout and circuit breaker."""
        try:
            return await self._circuit_breaker.call(
                lambda: asyncio.wait_for(factory(), timeout=self._timeout_sec)
            )
        except asyncio.TimeoutError:
            logger.error(f"Catalog read timed out after {self._timeout_sec:.3f}s")
            raise DependencyUnavailableError(DEPENDENCY_NAME, "timeout") from None
        except CircuitBreakerOpenError:
            raise DependencyUnavailableError(DEPENDENCY_NAME, "circuit_open") from None
        except DependencyUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Catalog read failed: {e!r}")
            raise DependencyUnavailableError(DEPENDENCY_NAME, type(e).__name__) from e
