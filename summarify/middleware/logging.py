"""
Summarify Backend — Request Logging Middleware
================================================

What:  One access-log line per HTTP request with status and duration.
How:   Measures from middleware entry to response return and logs at a
       level chosen by status class (5xx ERROR, 4xx WARNING, else INFO).
       402 and 409 are ordinary ledger outcomes (not enough credits, a
       summary already queued) and stay at INFO.
Who:   Applied to every request via Starlette middleware.
When:  After RequestIDMiddleware (uses the request ID for correlation).

Log line:
    POST /api/transcripts 402 12.4ms [a1b2c3d4] account=user_123 from 10.0.0.7

Not logged: request bodies (transcripts are private), admin keys, webhook
payloads. The account id is logged because every ledger line carries it too.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from summarify.middleware.request_id import request_id_var

logger = logging.getLogger("summarify.access")

# Probes every few seconds would drown the useful lines
QUIET_PATHS = frozenset({"/health"})

# Business rejections, not client mistakes
EXPECTED_REJECTIONS = frozenset({402, 409})


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        account_id = request.headers.get("X-Account-ID", "-")
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400 and status not in EXPECTED_REJECTIONS:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] account=%s from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            account_id,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "account_id": account_id,
            },
        )
        return response
