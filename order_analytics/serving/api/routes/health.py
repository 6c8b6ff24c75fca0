"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

import time
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from order_analytics.config import Settings
from order_analytics.serving.api.dependencies import get_app_settings, get_store
from order_analytics.store.base import ORDER_STATS, KeyValueStore

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def check_store_health(store: KeyValueStore) -> Dict[str, Any]:
    """Round-trip a one-item scan against the store"""
    try:
        start = time.perf_counter()
        await store.scan(ORDER_STATS, limit=1)
        latency_ms = (time.perf_counter() - start) * 1000
        return {
            "status": "healthy",
            "backend": type(store).__name__,
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {"status": "unhealthy", "backend": type(store).__name__, "error": str(e)}


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: KeyValueStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Application status
    - Store connectivity
    """
    store_health = await check_store_health(store)
    overall_status = "healthy" if store_health["status"] == "healthy" else "unhealthy"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks={"store": store_health},
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(
    response: Response,
    store: KeyValueStore = Depends(get_store),
) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Returns 200 if the application is ready to receive traffic.
    """
    store_health = await check_store_health(store)
    if store_health["status"] != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "store_unavailable"}
    return {"status": "ready"}
