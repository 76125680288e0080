"""
Summarify Backend — Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory, and scoped transactions.
How:   Creates an async engine with connection pooling. Every ledger mutation
       runs inside `transaction()`, which owns the whole checkout: begin,
       commit on success, rollback on error, release on every exit path.
Who:   Services open transactions; read paths open `async_session_factory()` directly.
When:  Engine is created at module import; sessions are created per use.

Connection Pooling Strategy:
    PostgreSQL: pool_size=20, max_overflow=10, pre-ping, hourly recycle.
    SQLite:     NullPool, so every session owns a separate connection and
                concurrent transactions contend on the database lock the same
                way they contend on row locks under PostgreSQL.

Hold diagnostics:
    A transaction that stays checked out longer than
    settings.db_hold_warning_seconds fires the registered hold hooks. The
    timer lives here, outside the ledger logic; the default hook only logs.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from summarify.config import settings

logger = logging.getLogger(__name__)


def _engine_options() -> Dict[str, object]:
    """Pool options for the configured backend."""
    if settings.is_sqlite:
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": 3600,
    }


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(
    settings.database_url,
    echo=settings.log_level == "DEBUG",
    **_engine_options(),
)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: ORM objects stay readable after their transaction ends
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares one metadata object, which Alembic reads for migrations and the
    test suite uses to create the schema.
    """
    pass


# ══════════════════════════════════════════════════════════════════════════
# Hold Hooks ("connection held too long")
# ══════════════════════════════════════════════════════════════════════════

HoldHook = Callable[[str, float], None]


def _log_long_hold(label: str, held_seconds: float) -> None:
    logger.warning(
        "Transaction '%s' has been checked out for more than %.1fs; possible leak",
        label,
        held_seconds,
    )


_hold_hooks: List[HoldHook] = [_log_long_hold]


def add_hold_hook(hook: HoldHook) -> None:
    """Register a callable(label, seconds) fired when a transaction is held too long."""
    _hold_hooks.append(hook)


def remove_hold_hook(hook: HoldHook) -> None:
    if hook in _hold_hooks:
        _hold_hooks.remove(hook)


def _fire_hold_hooks(label: str, threshold: float) -> None:
    for hook in list(_hold_hooks):
        try:
            hook(label, threshold)
        except Exception:
            logger.exception("Hold hook %r failed", hook)


# ══════════════════════════════════════════════════════════════════════════
# Scoped Transactions
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def transaction(label: str = "transaction") -> AsyncIterator[AsyncSession]:
    """
    Scoped transactional handle used by every ledger mutation.

    What:    Checks out a session, begins a transaction and yields the session.
    How:
        1. Arms a timer that fires the hold hooks after the warning threshold
        2. Yields the session inside `session.begin()`
        3. On success: commits; on any exception: rolls back and re-raises
        4. Always: disarms the timer and closes the session (connection
           goes back to the pool, row locks are released)

    External calls (AI generation, payment API) must never happen while this
    context is open.

    Example:
        async with transaction("spend") as session:
            account = await ledger_store.lock_account(session, account_id)
            ...
    """
    loop = asyncio.get_running_loop()
    threshold = settings.db_hold_warning_seconds
    timer = loop.call_later(threshold, _fire_hold_hooks, label, threshold)
    started = time.perf_counter()

    try:
        async with async_session_factory() as session:
            async with session.begin():
                yield session
    finally:
        timer.cancel()
        logger.debug(
            "Transaction '%s' released after %.1fms",
            label,
            (time.perf_counter() - started) * 1000,
        )


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
