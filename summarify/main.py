"""
Summarify Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       lifespan() owns logging setup, job recovery and the periodic sweeper.
Who:   uvicorn (uvicorn summarify.main:app) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  Request ID → Logging → GZip → CORS         │
    │                                                          │
    │  Routes:                                                 │
    │   /api/accounts  /api/transcripts  /api/summaries        │
    │   /api/credits   /api/payments     /api/admin   /health  │
    │                                                          │
    │  Exception Handlers:                                     │
    │   Validation→400  Auth→401  Credits→402  Forbidden→403   │
    │   NotFound→404    Conflict→409  Upstream→503  DB→500     │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, never fatal)
    3. Re-dispatch pending summary jobs left by a previous process
    4. Start the periodic sweeper (job recovery + settlement retry)

    Shutdown:
    1. Stop the sweeper
    2. Cancel in-flight summary tasks (their jobs stay pending and are
       recovered by the next process)
    3. Dispose the database engine
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from summarify import __version__
from summarify.config import settings
from summarify.database import dispose_engine
from summarify.exceptions import (
    AuthenticationError,
    ConflictError,
    DatabaseError,
    InsufficientCreditsError,
    LedgerInvariantError,
    NotFoundError,
    PermissionDeniedError,
    SummarifyError,
    TransientDependencyError,
    ValidationError,
)
from summarify.middleware.logging import RequestLoggingMiddleware
from summarify.middleware.request_id import RequestIDMiddleware, request_id_var
from summarify.routes import accounts, admin, credits, health, payments, summaries, transcripts
from summarify.services.job_runner import job_runner
from summarify.services.settlement_service import settlement_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once, to stdout.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Background Sweeper
# ══════════════════════════════════════════════════════════════════════════

async def run_sweeps_once() -> None:
    """One pass: recover stuck summary jobs, then retry unreconciled webhook events."""
    try:
        await job_runner.recover_pending()
    except Exception:
        logger.error("Job recovery sweep failed", exc_info=True)
    try:
        await settlement_service.sweep_failed_events()
    except Exception:
        logger.error("Settlement sweep failed", exc_info=True)


async def sweeper_loop(interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        await run_sweeps_once()


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Summarify Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        # Not fatal: health checks and the ledger keep working
        logger.error("Fix the configuration and restart the server.")

    try:
        await job_runner.recover_pending()
    except Exception:
        logger.error("Startup job recovery failed", exc_info=True)

    sweeper: Optional[asyncio.Task] = None
    if settings.job_sweep_interval > 0:
        sweeper = asyncio.create_task(sweeper_loop(settings.job_sweep_interval))
        logger.info("Sweeper running every %ds", settings.job_sweep_interval)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Summarify Backend shutting down...")

    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass

    await job_runner.shutdown()
    await dispose_engine()

    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(status_code: int, error: str, exc: SummarifyError, details=None, headers=None):
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": exc.message,
            "details": details,
            "request_id": request_id_var.get(""),
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy onto HTTP responses.

    Handler hierarchy:
        ValidationError           → 400 validation_error
        AuthenticationError       → 401 unauthorized
        InsufficientCreditsError  → 402 insufficient_credits
        PermissionDeniedError     → 403 forbidden
        NotFoundError             → 404 not_found
        ConflictError             → 409 conflict
        TransientDependencyError  → 503 service_unavailable (+ Retry-After)
        LedgerInvariantError      → 500 ledger_invariant
        DatabaseError             → 500 server_error
        SummarifyError (base)     → 500 server_error
        Exception (fallback)      → 500 internal_server_error

    4xx responses carry the exception context as `details`; 5xx responses
    never do, the context is logged server-side only.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc, details=exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(401, "unauthorized", exc)

    @app.exception_handler(InsufficientCreditsError)
    async def handle_insufficient_credits(request: Request, exc: InsufficientCreditsError):
        logger.info(
            "[%s] Insufficient credits: required=%d current=%d",
            request_id_var.get(""),
            exc.required,
            exc.current,
        )
        return _error_response(402, "insufficient_credits", exc, details=exc.context)

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        return _error_response(403, "forbidden", exc)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc, details=exc.context)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return _error_response(409, "conflict", exc, details=exc.context)

    @app.exception_handler(TransientDependencyError)
    async def handle_transient_dependency(request: Request, exc: TransientDependencyError):
        logger.error("[%s] Upstream failure (%s): %s", request_id_var.get(""), type(exc).__name__, exc.message)
        headers = {}
        if exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return _error_response(503, "service_unavailable", exc, details=exc.context, headers=headers)

    @app.exception_handler(LedgerInvariantError)
    async def handle_ledger_invariant(request: Request, exc: LedgerInvariantError):
        logger.error("[%s] Ledger invariant violated: %s", request_id_var.get(""), exc.context)
        return _error_response(500, "ledger_invariant", exc)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": "An internal error occurred. Please try again later.",
                "details": None,
                "request_id": rid,
            },
        )

    @app.exception_handler(SummarifyError)
    async def handle_summarify_error(request: Request, exc: SummarifyError):
        logger.error("[%s] Unhandled application error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "server_error", exc)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "details": None,
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Summarify API",
        description=(
            "Credit ledger behind the Summarify meeting recorder: transcript storage, "
            "AI summaries and credit purchases, each paid for from a per-account balance."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executed in reverse order of addition: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Total-Count",
            "Retry-After",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(accounts.router)
    app.include_router(transcripts.router)
    app.include_router(summaries.router)
    app.include_router(credits.router)
    app.include_router(payments.router)
    app.include_router(admin.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
