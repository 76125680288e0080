# Middleware package init
"""
Summarify Backend — Middleware Package
========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Request ID: correlation ID for every log line of the request
    2. Logging: access log with status and duration, tagged with the ID
    3. GZip / CORS: applied by FastAPI's built-in middleware

    Responses pass back through the chain in reverse order, so the
    X-Request-ID header is set on every response, including errors
    produced by the exception handlers.
"""
