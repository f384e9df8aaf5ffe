"""Unit of work with bounded optimistic-concurrency retry.

Every engine operation runs as ``operation(repo)`` inside its own session and
transaction. A version conflict on a balance re-runs the whole operation from
a fresh read; a conflict on any other record is surfaced to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from leave_engine.common.exceptions import (
    ConcurrencyConflict,
    StoreUnavailable,
    TransientFailure,
)
from leave_engine.config import settings
from leave_engine.leave.repository import LeaveRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Records whose conflicts are safe to retry by recomputing from a fresh read
RETRYABLE_ENTITIES = frozenset({"LeaveBalance"})


def _unflushed_entity(session: AsyncSession) -> str:
    """Name the versioned record type a commit-time flush would write."""
    names = {
        type(obj).__name__
        for obj in session.dirty
        if type(obj).__mapper__.version_id_col is not None
    }
    # Request conflicts are never retried, so they win when both are pending
    return "LeaveBalance" if names == {"LeaveBalance"} else "LeaveRequest"


async def _attempt(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[LeaveRepository], Awaitable[T]],
) -> T:
    async with session_factory() as session:
        try:
            result = await operation(LeaveRepository(session))
            entity_type = _unflushed_entity(session)
            try:
                await session.commit()
            except StaleDataError as exc:
                raise ConcurrencyConflict(entity_type, "commit") from exc
            return result
        except Exception:
            await session.rollback()
            raise


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[LeaveRepository], Awaitable[T]],
    *,
    name: str,
    max_attempts: Optional[int] = None,
    timeout: Optional[float] = None,
) -> T:
    """Run *operation* in a fresh transaction, retrying balance conflicts."""
    attempts = max_attempts or settings.CONCURRENCY_MAX_RETRIES
    timeout = timeout or settings.STORE_TIMEOUT_SECONDS

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(
                _attempt(session_factory, operation), timeout=timeout,
            )
        except ConcurrencyConflict as exc:
            if exc.entity_type not in RETRYABLE_ENTITIES:
                logger.info("%s: conflict on %s %s, not retried", name, exc.entity_type, exc.entity_id)
                raise
            if attempt >= attempts:
                logger.error("%s: gave up after %d conflicting attempts", name, attempt)
                raise TransientFailure(
                    f"{name} could not complete after {attempt} attempts due to concurrent updates.",
                ) from exc
            logger.warning(
                "%s: %s %s changed concurrently, retrying (%d/%d)",
                name, exc.entity_type, exc.entity_id, attempt, attempts,
            )
        except asyncio.TimeoutError as exc:
            logger.error("%s: store call exceeded %.1fs", name, timeout)
            raise StoreUnavailable() from exc

    raise TransientFailure(f"{name} did not run.")
