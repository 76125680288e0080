"""
Summarify Backend — Health Check Route
========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and the AI adapter and returns an aggregate status.
Who:   Called by Docker health checks, load balancers, and monitoring systems.

Status levels:
    - healthy:   database reachable, AI adapter available
    - degraded:  AI adapter down or its circuit is open (spends still work;
                 summary jobs will fail and can be refunded)
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from summarify import __version__
from summarify.database import engine
from summarify.schemas.common import HealthResponse
from summarify.services.job_runner import job_runner

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description=(
        "Returns the health status of the backend service and its dependencies. "
        "Used by Docker health checks and load balancers."
    ),
)
async def health_check(response: Response) -> HealthResponse:
    """
    Probe the database with SELECT 1 and the AI adapter with its own
    lightweight check. The circuit breaker state is read first so an open
    circuit does not cost a network call.
    """
    db_status = "connected"
    gemini_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check AI adapter ──────────────────────────────────────────────────
    llm = job_runner.llm
    try:
        breaker = getattr(llm, "circuit_breaker", None)
        if breaker is not None and breaker.state == "open":
            gemini_status = "circuit_open"
        elif not await llm.health_check():
            gemini_status = "unavailable"
    except Exception as e:
        gemini_status = "unavailable"
        logger.warning("Health check: AI adapter unreachable: %s", str(e))

    if gemini_status != "available" and overall == "healthy":
        overall = "degraded"
    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        gemini=gemini_status,
        active_jobs=job_runner.active_jobs,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
