"""
Viewer context builder.
Assembles the requester's tag affinity and seen-video set, and decides
whether seen videos can be excluded from this request.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from clipfeed.core.circuit_breaker import CircuitBreaker, CircuitState
from clipfeed.core.exceptions import DependencyUnavailableError
from clipfeed.core.telemetry import record_degradation
from clipfeed.models.interfaces import (
    FeatureFlagService,
    PreferenceRepository,
    ViewHistoryRepository,
)
from clipfeed.models.schemas import ExclusionDecision, ViewerContext, ViewHistory
from clipfeed.services.candidates import CandidateFetcher, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


def normalize_affinity(scores: Dict[str, float]) -> Dict[str, float]:
    """
    Turn raw interaction scores into weights summing to 1.

    Non-positive scores are dropped; an all-zero map is a cold start.
    """
    positive = {tag: float(score) for tag, score in scores.items() if tag and score > 0}
    total = sum(positive.values())
    if total <= 0:
        return {}
    return {tag: score / total for tag, score in positive.items()}


def decide_exclusion(
    total_catalog_size: Optional[int],
    history: Optional[ViewHistory],
    page_size: int,
    min_catalog_for_exclusion: int,
) -> ExclusionDecision:
    """
    Exclusion degradation policy, evaluated fresh on every request.

    None for either input means the read failed; exclusion is waived
    rather than guessed.
    """
    if history is None:
        return ExclusionDecision.HISTORY_UNAVAILABLE
    if total_catalog_size is None:
        return ExclusionDecision.COUNT_UNAVAILABLE
    if total_catalog_size <= min_catalog_for_exclusion:
        return ExclusionDecision.SMALL_CATALOG
    unwatched = total_catalog_size - history.viewed_count
    if unwatched < page_size:
        return ExclusionDecision.SCARCITY
    return ExclusionDecision.APPLIED


class ViewerContextBuilder:
    """
    Builds a ViewerContext from the preference store, the view-history
    log and the catalog size, reading all three concurrently.

    Preference and history failures are recoverable: the signal is
    zeroed, the degradation is logged and counted, and the request goes on.
    """

    def __init__(
        self,
        preference_repo: PreferenceRepository,
        history_repo: ViewHistoryRepository,
        candidate_fetcher: CandidateFetcher,
        feature_flags: FeatureFlagService,
        preference_breaker: Optional[CircuitBreaker] = None,
        history_breaker: Optional[CircuitBreaker] = None,
        min_catalog_for_exclusion: int = 20,
        history_retention: timedelta = timedelta(days=7),
        preference_timeout_ms: int = 150,
        history_timeout_ms: int = 150,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._preference_repo = preference_repo
        self._history_repo = history_repo
        self._candidate_fetcher = candidate_fetcher
        self._feature_flags = feature_flags
        self._preference_breaker = preference_breaker or CircuitBreaker(name="preferences")
        self._history_breaker = history_breaker or CircuitBreaker(name="view_history")
        self._min_catalog_for_exclusion = min_catalog_for_exclusion
        self._history_retention = history_retention
        self._preference_timeout_sec = preference_timeout_ms / 1000
        self._history_timeout_sec = history_timeout_ms / 1000
        self._clock = clock

    async def build(self, viewer_id: Optional[str], page_size: int) -> ViewerContext:
        """
        Build the context for one request.

        Args:
            viewer_id: Requester, None for anonymous viewers
            page_size: Requested page size (drives the scarcity rule)

        Returns:
            ViewerContext with affinity, seen ids and exclusion decision
        """
        if not viewer_id:
            return ViewerContext(exclusion_decision=ExclusionDecision.ANONYMOUS)

        degradations: List[str] = []
        personalized = self._feature_flags.is_personalization_enabled(viewer_id)
        if not personalized:
            logger.info(
                f"Affinity ranking disabled by feature flags for viewer={viewer_id}",
                extra={"viewer_id": viewer_id},
            )

        scores, history, total = await asyncio.gather(
            self._read_preferences(viewer_id, degradations) if personalized else _empty_scores(),
            self._read_history(viewer_id, degradations),
            self._count_catalog(viewer_id, degradations),
        )

        decision = decide_exclusion(
            total_catalog_size=total,
            history=history,
            page_size=page_size,
            min_catalog_for_exclusion=self._min_catalog_for_exclusion,
        )
        if decision in (ExclusionDecision.SMALL_CATALOG, ExclusionDecision.SCARCITY):
            logger.info(
                f"Exclusion waived for viewer={viewer_id}: catalog={total}, "
                f"viewed={history.viewed_count if history else 0}, page_size={page_size}",
                extra={"viewer_id": viewer_id, "exclusion_decision": decision.value},
            )

        return ViewerContext(
            viewer_id=viewer_id,
            category_affinity=normalize_affinity(scores or {}),
            seen_video_ids=set(history.viewed_ids) if history else set(),
            exclusion_decision=decision,
            personalized=personalized,
            degradations=degradations,
        )

    async def _read_preferences(
        self,
        viewer_id: str,
        degradations: List[str],
    ) -> Optional[Dict[str, float]]:
        return await self._read_optional(
            signal="affinity",
            breaker=self._preference_breaker,
            timeout_sec=self._preference_timeout_sec,
            factory=lambda: self._preference_repo.get_category_scores(viewer_id),
            viewer_id=viewer_id,
            degradations=degradations,
        )

    async def _read_history(
        self,
        viewer_id: str,
        degradations: List[str],
    ) -> Optional[ViewHistory]:
        since = self._clock() - self._history_retention
        return await self._read_optional(
            signal="view_history",
            breaker=self._history_breaker,
            timeout_sec=self._history_timeout_sec,
            factory=lambda: self._history_repo.get_view_history(viewer_id, since=since),
            viewer_id=viewer_id,
            degradations=degradations,
        )

    async def _count_catalog(self, viewer_id: str, degradations: List[str]) -> Optional[int]:
        try:
            return await self._candidate_fetcher.count_catalog()
        except DependencyUnavailableError as e:
            degradations.append("catalog_count")
            record_degradation("catalog_count", e.reason, viewer_id)
            return None

    async def _read_optional(
        self,
        signal: str,
        breaker: CircuitBreaker,
        timeout_sec: float,
        factory: Callable[[], Awaitable[T]],
        viewer_id: str,
        degradations: List[str],
    ) -> Optional[T]:
        """Read an optional signal; failures zero it instead of failing the request."""
        failures: List[str] = []

        async def _guarded() -> T:
            try:
                return await asyncio.wait_for(factory(), timeout=timeout_sec)
            except asyncio.TimeoutError:
                failures.append("timeout")
                raise
            except Exception as e:
                failures.append(type(e).__name__)
                raise

        result = await breaker.call(_guarded, fallback=lambda: None)
        if result is None:
            if failures:
                reason = failures[0]
            elif breaker.state != CircuitState.CLOSED:
                reason = "circuit_open"
            else:
                reason = "empty_response"
            degradations.append(signal)
            record_degradation(signal, reason, viewer_id)
        return result


async def _empty_scores() -> Dict[str, float]:
    return {}
