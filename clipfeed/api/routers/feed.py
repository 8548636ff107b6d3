"""
Feed API router.
Implements POST and GET /v1/feed with rate limiting and cache headers.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from clipfeed.api.dependencies import get_feed_service, get_rate_limiter
from clipfeed.config import get_settings
from clipfeed.core.rate_limit import SlidingWindowRateLimiter
from clipfeed.models.schemas import ErrorResponse, FeedPage, FeedRequest, FeedResponse, FeedVideo
from clipfeed.services.feed import FeedService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["feed"])

FEED_RESPONSES = {
    200: {"description": "Feed page returned successfully"},
    400: {"model": ErrorResponse, "description": "Invalid page parameters"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    503: {"model": ErrorResponse, "description": "Catalog unavailable"},
}


@router.post(
    "/feed",
    response_model=FeedResponse,
    response_model_exclude_none=True,
    summary="Get Feed Page",
    description="""
    Retrieve one page of the ranked video feed.

    Ranking blends:
    - Category affinity from the viewer's preferences
    - Engagement, recency and like-to-view quality
    - A small random exploration term

    **Features:**
    - Viewed-video exclusion when the catalog is large enough
    - Creator and tag diversity windows
    - Unscored fast path for first paint (`fastPath`)
    """,
    responses=FEED_RESPONSES,
)
async def post_feed(
    request: Request,
    response: Response,
    feed_request: Optional[FeedRequest] = Body(default=None),
    feed_service: FeedService = Depends(get_feed_service),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
) -> FeedResponse:
    """Feed endpoint taking a JSON body."""
    feed_request = feed_request or FeedRequest()
    return await _serve_feed(request, response, feed_request, feed_service, rate_limiter)


@router.get(
    "/feed",
    response_model=FeedResponse,
    response_model_exclude_none=True,
    summary="Get Feed Page (query string)",
    responses=FEED_RESPONSES,
)
async def get_feed(
    request: Request,
    response: Response,
    viewer_id: Optional[str] = Query(default=None, alias="viewerId"),
    page: int = Query(default=0, ge=0, description="Zero-based page index"),
    page_size: Optional[int] = Query(default=None, gt=0, alias="pageSize"),
    fast_path: bool = Query(default=False, alias="fastPath"),
    feed_service: FeedService = Depends(get_feed_service),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
) -> FeedResponse:
    """Same as POST /v1/feed, for clients that cannot send a body."""
    feed_request = FeedRequest(
        viewer_id=viewer_id,
        page=page,
        page_size=page_size,
        fast_path=fast_path,
    )
    return await _serve_feed(request, response, feed_request, feed_service, rate_limiter)


async def _serve_feed(
    request: Request,
    response: Response,
    feed_request: FeedRequest,
    feed_service: FeedService,
    rate_limiter: SlidingWindowRateLimiter,
) -> FeedResponse:
    settings = get_settings()

    rate_limiter.check(_requester_key(request, feed_request.viewer_id))

    feed_page = await feed_service.get_feed(
        viewer_id=feed_request.viewer_id,
        page=feed_request.page,
        page_size=feed_request.page_size or settings.DEFAULT_PAGE_SIZE,
        fast_path=feed_request.fast_path,
    )

    _apply_headers(response, feed_page, settings.FAST_PATH_CACHE_MAX_AGE_SEC)

    return FeedResponse(
        videos=[
            FeedVideo.from_candidate(candidate, first_paint=feed_page.fast_path)
            for candidate in feed_page.candidates
        ]
    )


def _requester_key(request: Request, viewer_id: Optional[str]) -> str:
    if viewer_id:
        return f"viewer:{viewer_id}"
    host = request.client.host if request.client else "unknown"
    return f"client:{host}"


def _apply_headers(response: Response, feed_page: FeedPage, fast_path_max_age: int) -> None:
    # Fast-path pages are identical for every viewer, so shared caches may keep them
    if feed_page.fast_path:
        response.headers["Cache-Control"] = f"public, max-age={fast_path_max_age}"
    else:
        response.headers["Cache-Control"] = "private, no-store"

    response.headers["X-Personalized"] = str(feed_page.personalized).lower()
    if feed_page.degradations:
        response.headers["X-Feed-Degraded"] = ",".join(sorted(set(feed_page.degradations)))
