"""
Health check router for observability.
"""
from fastapi import APIRouter

from clipfeed.api.dependencies import get_circuit_breakers, get_snapshot_store
from clipfeed.config import get_settings
from clipfeed.core.circuit_breaker import CircuitState

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health Check")
async def health_check() -> dict:
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check() -> dict:
    """
    Readiness check for Kubernetes.
    Returns circuit breaker states, feature flags and snapshot store stats.
    """
    settings = get_settings()
    breakers = get_circuit_breakers()
    catalog_open = breakers["catalog"].state == CircuitState.OPEN

    return {
        "status": "degraded" if catalog_open else "ready",
        "circuit_breakers": {name: breaker.snapshot() for name, breaker in breakers.items()},
        "feature_flags": {
            "personalization_enabled": settings.PERSONALIZATION_ENABLED,
            "kill_switch_active": settings.KILL_SWITCH_ACTIVE,
            "rollout_percentage": settings.ROLLOUT_PERCENTAGE,
        },
        "ranking_snapshots": get_snapshot_store().stats(),
    }
