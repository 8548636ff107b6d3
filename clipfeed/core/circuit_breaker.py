"""
Circuit breaker for the feed's read collaborators.

The catalog, the preference store and the view-history log each sit behind
their own breaker. Optional reads pass a fallback and short-circuit to it
while the breaker is open; the catalog read has none and surfaces
`CircuitBreakerOpenError` instead.
"""
import logging
import time
from enum import Enum
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from clipfeed.core.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Counts consecutive failures of an awaitable read and trips after
    `failure_threshold`. Once `recovery_timeout_sec` has elapsed a single
    probe is let through; concurrent callers keep getting the open
    behaviour until that probe settles.

    Usage:
        breaker = CircuitBreaker("preferences", failure_threshold=5)
        scores = await breaker.call(lambda: repo.get_category_scores(v), fallback=lambda: None)
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout_sec: float = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._name = name
        self._failure_threshold = failure_threshold
        self._recovery_timeout_sec = recovery_timeout_sec
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._lock = Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        return self._state

    async def call(
        self,
        func: Callable[[], Awaitable[T]],
        fallback: Optional[Callable[[], T]] = None,
    ) -> T:
        """
        Await `func()` unless the circuit is open.

        A failing call is recorded, then either answered by `fallback` or
        re-raised. `fallback` may itself return None.
        """
        if not self._admit():
            if fallback is None:
                raise CircuitBreakerOpenError(self._name)
            logger.debug(f"Circuit '{self._name}' open, serving fallback")
            return fallback()

        try:
            result = await func()
        except Exception as exc:
            self._record_failure()
            if fallback is None:
                raise
            logger.warning(f"Circuit '{self._name}' call failed, serving fallback: {exc!r}")
            return fallback()
        except BaseException:
            self._abandon_probe()
            raise

        self._record_success()
        return result

    def snapshot(self) -> Dict[str, Any]:
        """Point-in-time view for the readiness endpoint."""
        with self._lock:
            open_for = None
            if self._opened_at is not None and self._state != CircuitState.CLOSED:
                open_for = round(self._clock() - self._opened_at, 3)
            return {
                "state": self._state.value,
                "consecutive_failures": self._failure_count,
                "open_for_sec": open_for,
            }

    def reset(self) -> None:
        with self._lock:
            self._close()
        logger.info(f"Circuit '{self._name}' manually reset")

    # -------------------------------------------------------------------------
    # State transitions (caller holds no lock)
    # -------------------------------------------------------------------------

    def _admit(self) -> bool:
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.HALF_OPEN:
                return False
            if self._clock() - self._opened_at < self._recovery_timeout_sec:
                return False
            self._state = CircuitState.HALF_OPEN
            self._probe_in_flight = True
        logger.info(f"Circuit '{self._name}' half-open, probing")
        return True

    def _record_success(self) -> None:
        with self._lock:
            recovered = self._state != CircuitState.CLOSED
            self._close()
        if recovered:
            logger.info(f"Circuit '{self._name}' recovered")

    def _record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            probe_failed = self._probe_in_flight
            if not probe_failed and self._failure_count < self._failure_threshold:
                return
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            self._probe_in_flight = False
            failures = self._failure_count
        logger.error(f"Circuit '{self._name}' opened after {failures} consecutive failures")

    def _abandon_probe(self) -> None:
        # Cancelled probe: stay open but let the next caller probe again
        with self._lock:
            if self._probe_in_flight:
                self._state = CircuitState.OPEN
                self._probe_in_flight = False

    def _close(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._probe_in_flight = False
