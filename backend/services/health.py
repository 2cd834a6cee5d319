"""
Health check service for Homelab IPAM.

Checks database connectivity and whether the UniFi controller is
configured, and tracks uptime. Returns structured health responses with
per-component status.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import text

from config import settings
from database import AsyncSessionLocal
from .errors import NotConfigured
from .inventory import load_controller_config

logger = logging.getLogger(__name__)

# Captured at module load, used to compute uptime
_start_time = time.monotonic()


class ComponentHealth(BaseModel):
    name: str
    status: str  # "ok" | "degraded" | "error"
    message: Optional[str] = None
    response_time_ms: Optional[float] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    app: str
    version: str
    uptime_seconds: float
    checks: list[ComponentHealth]
    timestamp: str


async def check_database(session_factory=None) -> ComponentHealth:
    """Check database connectivity by running SELECT 1."""
    session_factory = session_factory or AsyncSessionLocal
    start = time.perf_counter()
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        elapsed = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name="database",
            status="ok",
            response_time_ms=round(elapsed, 1),
        )
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name="database",
            status="error",
            message=str(e),
            response_time_ms=round(elapsed, 1),
        )


async def check_controller_config(session_factory=None) -> ComponentHealth:
    """
    Check that a controller URL and API key resolve.

    Does not contact the controller; use /api/unifi/status for that.
    """
    session_factory = session_factory or AsyncSessionLocal
    try:
        async with session_factory() as session:
            config = await load_controller_config(session)
    except NotConfigured as e:
        return ComponentHealth(name="unifi_controller", status="degraded", message=e.message)
    except Exception as e:
        return ComponentHealth(name="unifi_controller", status="error", message=str(e))
    return ComponentHealth(name="unifi_controller", status="ok", message=config.url)


async def run_health_checks(session_factory=None) -> HealthResponse:
    """Run all health checks and return aggregated status."""
    checks = [
        await check_database(session_factory),
        await check_controller_config(session_factory),
    ]

    # Database is critical: if it is down, the service is unhealthy.
    # The controller is optional: anything short of "ok" is "degraded".
    critical_names = {"database"}
    has_critical_error = any(
        c.status == "error" and c.name in critical_names for c in checks
    )
    has_any_problem = any(c.status != "ok" for c in checks)

    if has_critical_error:
        overall = "unhealthy"
    elif has_any_problem:
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        uptime_seconds=round(time.monotonic() - _start_time, 1),
        checks=checks,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
