"""
Clip Feed Engine application.
Wires logging, middleware, exception handlers, routers and telemetry.
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clipfeed.api.routers import feed_router, health_router
from clipfeed.config import get_settings
from clipfeed.config.logging import configure_logging, request_id_var
from clipfeed.core.exceptions import AppException, RateLimitError
from clipfeed.core.telemetry import setup_telemetry

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
FEED_HEADERS = ["X-Personalized", "X-Feed-Degraded", "Retry-After", REQUEST_ID_HEADER]


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logger.info(
        f"Starting {settings.APP_NAME} v{settings.APP_VERSION} "
        f"(personalization={settings.PERSONALIZATION_ENABLED}, "
        f"kill_switch={settings.KILL_SWITCH_ACTIVE}, "
        f"rollout={settings.ROLLOUT_PERCENTAGE}%)"
    )
    logger.info(
        f"Ranking: recency={settings.RECENCY_MODE}, engagement={settings.ENGAGEMENT_MODE}, "
        f"diversity={settings.DIVERSITY_POLICY.value}, fallback_fill={settings.FALLBACK_FILL_ENABLED}, "
        f"snapshot_ttl={settings.SNAPSHOT_TTL_SEC}s"
    )

    yield

    logger.info("Shutting down")


# =============================================================================
# Middleware
# =============================================================================


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Bind a request id for log correlation and log one summary line."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms:.1f}ms"
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        request_id_var.reset(token)


# =============================================================================
# Exception Handlers
# =============================================================================


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed page parameters are client errors, reported as 400."""
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request parameters",
            "code": "INVALID_REQUEST",
            "details": {"errors": errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc!r}")
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred", "code": "INTERNAL_ERROR", "details": {}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


# =============================================================================
# Application Factory
# =============================================================================


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(debug=settings.DEBUG)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
        Clip Feed Engine

        Ranks and serves pages of short-form videos.

        ## Features
        - Scoring on affinity, engagement, recency, quality and exploration
        - Viewed-video exclusion with small-catalog and scarcity waivers
        - Creator and tag diversity with fallback-fill
        - Unscored fast path for first paint
        - Feature flags with kill switch and percentage rollout
        - Circuit breakers and per-dependency timeouts
        """,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=FEED_HEADERS,
    )
    app.middleware("http")(request_context_middleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(feed_router)

    setup_telemetry(app)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("clipfeed.main:app", host="0.0.0.0", port=8000, reload=True)
