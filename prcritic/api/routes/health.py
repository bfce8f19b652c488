from datetime import UTC, datetime
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from prcritic.api.dependencies import get_token_cache
from prcritic.core.config import settings
from prcritic.db.session import check_db_connection
from prcritic.services.github.auth import InstallationTokenCache

router = APIRouter()


class HealthStatus(BaseModel):
    status: Literal["healthy", "unhealthy"]
    version: str
    environment: str
    timestamp: datetime


class ReadinessStatus(BaseModel):
    status: Literal["ready", "not_ready"]
    checks: dict[str, bool]
    timestamp: datetime


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    """Liveness probe: the process is up and serving requests."""
    return HealthStatus(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        timestamp=datetime.now(UTC),
    )


@router.get("/ready", response_model=ReadinessStatus)
async def readiness_check(
    token_cache: InstallationTokenCache = Depends(get_token_cache),
) -> ReadinessStatus:
    """
    Readiness probe.

    Ready when the database answers and some GitHub credential (App or
    static token) is configured.
    """
    checks = {
        "database": await check_db_connection(),
        "github_credentials": token_cache.app_auth is not None
        or bool(token_cache.static_token),
    }

    return ReadinessStatus(
        status="ready" if all(checks.values()) else "not_ready",
        checks=checks,
        timestamp=datetime.now(UTC),
    )
