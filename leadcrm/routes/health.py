from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from leadcrm.core.logging import get_structlog_logger
from leadcrm.services.container import ServiceContainer, get_container

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["health"])

_started_at = time.time()


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    environment: str
    timestamp: str
    uptime: float
    checks: Dict[str, Dict[str, Any]]


def check_store(container: ServiceContainer) -> Dict[str, Any]:
    store = container.store
    return {
        "status": "healthy",
        "locations": len(store.locations),
        "providers": len(store.providers),
        "leads": len(store.leads),
    }


def check_realtime(container: ServiceContainer) -> Dict[str, Any]:
    return {
        "status": "healthy" if container.settings.realtime_configured else "disabled",
        "subscribers": container.event_bus.subscriber_count("admin"),
    }


@router.get("/health", response_model=HealthCheckResponse)
async def health(container: ServiceContainer = Depends(get_container)):
    checks = {
        "store": check_store(container),
        "realtime": check_realtime(container),
    }
    if container.redis is not None:
        checks["redis"] = await container.redis.health()

    healthy = all(check["status"] != "unhealthy" for check in checks.values())
    if not healthy:
        logger.warning("health.degraded", checks=checks)

    body = HealthCheckResponse(
        status="healthy" if healthy else "unhealthy",
        service="leadcrm",
        environment=container.settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=time.time() - _started_at,
        checks=checks,
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
