"""
Feed service - main business logic orchestrator.
Coordinates viewer context, candidate fetching, scoring, diversification
and pagination, plus the unscored fast path for first paint.
"""
import logging
import time
from datetime import timedelta
from typing import List, Optional

from opentelemetry import trace

from clipfeed.core.exceptions import InvalidRequestError
from clipfeed.core.random_source import RandomSourceFactory
from clipfeed.core.telemetry import record_feed_path
from clipfeed.models.schemas import Candidate, FeedPage, ViewerContext
from clipfeed.services.candidates import CandidateFetcher
from clipfeed.services.diversity import Diversifier
from clipfeed.services.pagination import (
    Paginator,
    RankingSnapshot,
    RankingSnapshotStore,
    slice_page,
)
from clipfeed.services.ranking import Scorer
from clipfeed.services.viewer_context import ViewerContextBuilder

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class FeedService:
    """
    Main feed service orchestrating one ranking pass per request.

    Responsibilities:
    - Validate the request before any read
    - Serve the fast path for first paint
    - Build viewer context and fetch the candidate pool
    - Score, diversify and paginate
    """

    def __init__(
        self,
        candidate_fetcher: CandidateFetcher,
        context_builder: ViewerContextBuilder,
        scorer: Scorer,
        diversifier: Diversifier,
        paginator: Paginator,
        random_sources: Optional[RandomSourceFactory] = None,
        snapshot_store: Optional[RankingSnapshotStore] = None,
        candidate_window: timedelta = timedelta(days=30),
        pool_size: int = 50,
        max_page_size: int = 50,
    ) -> None:
        """
        Initialize feed service with dependencies.

        Args:
            candidate_fetcher: Catalog reads (mandatory collaborator)
            context_builder: Affinity, seen ids and exclusion decision
            scorer: Composite scorer
            diversifier: Tiered shuffle and diversity windows
            paginator: Page slicing with fallback-fill
            random_sources: Per-request generators (entropy-seeded by default)
            snapshot_store: Optional per-viewer ranking snapshots
            candidate_window: How far back candidates may be created
            pool_size: Maximum candidate pool per request
            max_page_size: Largest accepted page size
        """
        self._candidate_fetcher = candidate_fetcher
        self._context_builder = context_builder
        self._scorer = scorer
        self._diversifier = diversifier
        self._paginator = paginator
        self._random_sources = random_sources or RandomSourceFactory()
        self._snapshot_store = snapshot_store
        self._candidate_window = candidate_window
        self._pool_size = pool_size
        self._max_page_size = max_page_size

    async def get_feed(
        self,
        viewer_id: Optional[str],
        page: int = 0,
        page_size: int = 10,
        fast_path: bool = False,
    ) -> FeedPage:
        """
        Get one feed page.

        Args:
            viewer_id: Requester, None for anonymous viewers
            page: Zero-based page index
            page_size: Items per page
            fast_path: Serve page 0 unscored, newest first

        Returns:
            FeedPage with unique candidates in display order

        Raises:
            InvalidRequestError: Before any read, for bad page parameters
            DependencyUnavailableError: If the catalog cannot be read
        """
        self._validate(page, page_size)
        start_time = time.time()

        if fast_path and page == 0:
            feed_page = await self._get_fast_path_feed(page_size)
        else:
            if fast_path:
                logger.debug(f"fastPath ignored for page={page}")
            feed_page = self._get_snapshot_page(viewer_id, page, page_size)
            if feed_page is None:
                feed_page = await self._get_ranked_feed(viewer_id, page, page_size)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Feed served: viewer={viewer_id or 'anonymous'}, page={page}, "
            f"items={len(feed_page.candidates)}, personalized={feed_page.personalized}, "
            f"fast_path={feed_page.fast_path}, elapsed_ms={elapsed_ms:.2f}",
            extra={"viewer_id": viewer_id},
        )
        return feed_page

    def _validate(self, page: int, page_size: int) -> None:
        if page < 0:
            raise InvalidRequestError("page must be >= 0", details={"page": page})
        if page_size <= 0:
            raise InvalidRequestError("pageSize must be > 0", details={"pageSize": page_size})
        if page_size > self._max_page_size:
            raise InvalidRequestError(
                f"pageSize must be <= {self._max_page_size}",
                details={"pageSize": page_size},
            )

    async def _get_fast_path_feed(self, page_size: int) -> FeedPage:
        """
        Newest videos, unscored and unpersonalized.
        Never reads viewer state, so output is the same for every viewer.
        """
        record_feed_path("fast")
        candidates = await self._candidate_fetcher.fetch_recent(
            window=self._candidate_window,
            limit=page_size,
        )
        return FeedPage(
            candidates=_unique(candidates)[:page_size],
            page=0,
            page_size=page_size,
            personalized=False,
            fast_path=True,
        )

    def _get_snapshot_page(
        self,
        viewer_id: Optional[str],
        page: int,
        page_size: int,
    ) -> Optional[FeedPage]:
        """Slice a live snapshot for later pages of an identified viewer."""
        if page == 0 or not viewer_id or self._snapshot_store is None:
            return None

        snapshot = self._snapshot_store.load(viewer_id)
        if snapshot is None:
            return None

        record_feed_path("snapshot")
        return FeedPage(
            candidates=slice_page(snapshot.candidates, page, page_size),
            page=page,
            page_size=page_size,
            personalized=snapshot.personalized,
            degradations=list(snapshot.degradations),
        )

    async def _get_ranked_feed(
        self,
        viewer_id: Optional[str],
        page: int,
        page_size: int,
    ) -> FeedPage:
        """Viewer context -> candidates -> score -> diversify -> paginate."""
        record_feed_path("ranked")
        with tracer.start_as_current_span("feed.viewer_context") as span:
            viewer = await self._context_builder.build(viewer_id, page_size)
            span.set_attribute("feed.exclusion_decision", viewer.exclusion_decision.value)
            span.set_attribute("feed.excluded_count", len(viewer.excluded_ids))

        with tracer.start_as_current_span("feed.fetch_candidates") as span:
            candidates = await self._candidate_fetcher.fetch(
                window=self._candidate_window,
                excluded=viewer.excluded_ids,
                pool_size=self._pool_size,
            )
            span.set_attribute("feed.pool_size", len(candidates))

        if not candidates:
            logger.info(f"No eligible candidates for viewer={viewer_id or 'anonymous'}")
            return self._page(viewer, [], page, page_size)

        with tracer.start_as_current_span("feed.rank") as span:
            rng = self._random_sources.create()
            ranked = self._scorer.rank(candidates, viewer, rng)
            result = self._diversifier.diversify(ranked, rng)
            span.set_attribute("feed.diversity_dropped", len(result.dropped))

        if viewer_id and self._snapshot_store is not None and self._snapshot_store.enabled:
            order = [item.candidate for item in self._paginator.fill(result)]
            self._snapshot_store.save(
                viewer_id,
                RankingSnapshot(
                    candidates=order,
                    personalized=viewer.personalized and not viewer.is_cold_start,
                    degradations=list(viewer.degradations),
                ),
            )
            return self._page(viewer, slice_page(order, page, page_size), page, page_size)

        page_items = self._paginator.paginate(result, page, page_size)
        return self._page(viewer, [item.candidate for item in page_items], page, page_size)

    @staticmethod
    def _page(
        viewer: ViewerContext,
        candidates: List[Candidate],
        page: int,
        page_size: int,
    ) -> FeedPage:
        return FeedPage(
            candidates=candidates,
            page=page,
            page_size=page_size,
            personalized=viewer.personalized and not viewer.is_cold_start,
            degradations=list(viewer.degradations),
        )


def _unique(candidates: List[Candidate]) -> List[Candidate]:
    seen_ids = set()
    unique = []
    for candidate in candidates:
        if candidate.id not in seen_ids:
            seen_ids.add(candidate.id)
            unique.append(candidate)
    return unique
