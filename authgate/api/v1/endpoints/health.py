"""Health check endpoints."""

from fastapi import APIRouter, Request, status
from pydantic import BaseModel

from authgate.config import settings
from authgate.core.redis_client import check_redis_connection
from authgate.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Health including backing services and the passcode reaper."""

    database: str
    redis: str
    otp_reaper: str
    email_backend: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Report that the process is serving requests."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
)
async def detailed_health_check(request: Request) -> DetailedHealthResponse:
    """
    Report database, Redis and reaper status.

    Redis only backs rate limiting, which fails open, so an unreachable Redis
    degrades the service without stopping it.
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()

    reaper = getattr(request.app.state, "otp_reaper", None)
    reaper_running = reaper is not None and not reaper.done()

    return DetailedHealthResponse(
        status="healthy" if db_healthy and redis_healthy and reaper_running else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
        otp_reaper="running" if reaper_running else "stopped",
        email_backend=settings.email_backend,
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """Simple ping endpoint."""
    return {"message": "pong"}
