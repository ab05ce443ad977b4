"""
Service status endpoints.

/health reports the running service and its mission slot, /health/ready
gates traffic on Redis and the dialogue oracle key, and /health/live is
the process heartbeat.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.core.outreach.orchestrator import OutreachOrchestrator, get_orchestrator
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Record service start. Called once from the lifespan hook."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class ServiceStatus(BaseModel):
    """Outreach service status."""
    status: str
    service: str
    environment: str
    mission: str
    timestamp: datetime


class ReadyResponse(BaseModel):
    """Dependency status for the outreach service."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


class LiveResponse(BaseModel):
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


@router.get(
    "",
    response_model=ServiceStatus,
    status_code=status.HTTP_200_OK,
    summary="Service status",
    description="Reports the service name, environment and the state of the mission slot ('idle' when empty).",
)
async def health(
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
) -> ServiceStatus:
    """Service status without dependency checks."""
    handle = orchestrator.current
    return ServiceStatus(
        status="healthy",
        service=settings.app_name,
        environment=settings.app_env,
        mission=handle.status.value if handle is not None else "idle",
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Outreach readiness",
    description=(
        "Ready when bookings can be persisted in Redis and calls can reach the "
        "dialogue oracle. Returns 503 otherwise."
    ),
    responses={
        200: {"description": "Missions can be started"},
        503: {"description": "Redis is down or ANTHROPIC_API_KEY is unset"},
    },
)
async def ready() -> ReadyResponse:
    """
    Readiness for starting missions.

    The oracle key is checked rather than called; a call to Claude per
    poll would cost tokens.
    """
    checks = {}

    redis_ok = await check_redis_health()
    checks["redis"] = "ok" if redis_ok else "failed"
    if not redis_ok:
        logger.warning("Not ready: booking store unreachable")

    if settings.anthropic_api_key:
        checks["oracle"] = "ok"
    else:
        checks["oracle"] = "not_configured"
        logger.warning("Not ready: ANTHROPIC_API_KEY not set, calls would fail")

    all_ok = all(value == "ok" for value in checks.values())
    response = ReadyResponse(
        status="ready" if all_ok else "not_ready",
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )

    if not all_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )

    return response


@router.get(
    "/live",
    response_model=LiveResponse,
    status_code=status.HTTP_200_OK,
    summary="Process heartbeat",
)
async def live() -> LiveResponse:
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )
