"""
Summarify Backend — Request ID Middleware
===========================================

What:  Assigns a correlation ID to each incoming request and echoes it back.
How:   Uses the client's X-Request-ID when present, otherwise generates a
       short UUID; stores it in a ContextVar for loggers and exception
       handlers, and returns it in the X-Request-ID response header.
Who:   Applied to every request via Starlette middleware.

Error responses carry the same ID in their `request_id` field, so a user
reporting "insufficient credits" can be matched to the exact ledger log
lines of that request.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── Context Variable ──────────────────────────────────────────────────────
# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
