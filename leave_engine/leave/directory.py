"""External collaborators: employee directory and public-holiday provider.

Both are consumed through small protocols so the workflow can be driven by
the HTTP directory in production and by in-memory fakes in tests.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date
from typing import Awaitable, Optional, Protocol, TypeVar

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leave_engine.common.exceptions import DirectoryUnavailable
from leave_engine.config import settings
from leave_engine.leave.entitlements import RECURRING_HOLIDAYS
from leave_engine.leave.models import PublicHoliday
from leave_engine.leave.repository import LeaveRepository
from leave_engine.leave.schemas import EmployeeProfile, Holiday

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EmployeeDirectory(Protocol):
    async def get_employee(self, employee_id: uuid.UUID) -> Optional[EmployeeProfile]:
        ...


class HolidayProvider(Protocol):
    async def get_holidays(self, subsidiary_id: Optional[uuid.UUID], year: int) -> list[Holiday]:
        ...


async def with_directory_timeout(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """Bound a collaborator lookup; a hang surfaces as :class:`DirectoryUnavailable`."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout or settings.DIRECTORY_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as exc:
        raise DirectoryUnavailable() from exc


# ═════════════════════════════════════════════════════════════════════
# HTTP employee directory
# ═════════════════════════════════════════════════════════════════════


class HttpEmployeeDirectory:
    """``GET {base_url}/employees/{id}`` → :class:`EmployeeProfile` (404 → None)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.DIRECTORY_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.DIRECTORY_API_KEY
        self.timeout = timeout or settings.DIRECTORY_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def get_employee(self, employee_id: uuid.UUID) -> Optional[EmployeeProfile]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._headers(),
            transport=self._transport,
        ) as client:
            try:
                resp = await client.get(f"/employees/{employee_id}")
            except httpx.TimeoutException as exc:
                logger.warning("Directory lookup for %s timed out", employee_id)
                raise DirectoryUnavailable() from exc
            except httpx.TransportError as exc:
                logger.warning("Directory unreachable: %s", exc)
                raise DirectoryUnavailable(f"Employee directory unreachable: {exc}") from exc

        if resp.status_code == 404:
            return None
        if resp.status_code >= 500:
            raise DirectoryUnavailable(
                f"Employee directory returned {resp.status_code} for {employee_id}.",
            )
        resp.raise_for_status()

        payload = resp.json()
        if isinstance(payload, dict) and "data" in payload:
            payload = payload["data"]
        return EmployeeProfile.model_validate(payload)


# ═════════════════════════════════════════════════════════════════════
# Store-backed holidays
# ═════════════════════════════════════════════════════════════════════


class StoreHolidayProvider:
    """Reads the ``public_holidays`` table in its own short session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_holidays(self, subsidiary_id: Optional[uuid.UUID], year: int) -> list[Holiday]:
        async with self._session_factory() as session:
            rows = await LeaveRepository(session).list_holidays(subsidiary_id, year)
        return [Holiday(date=row.holiday_date, name=row.name) for row in rows]


async def seed_public_holidays(
    repo: LeaveRepository,
    year: int,
    subsidiary_id: Optional[uuid.UUID] = None,
) -> int:
    """Insert the recurring holidays for *year* that are not stored yet."""
    existing = {h.holiday_date for h in await repo.list_holidays(subsidiary_id, year)}
    created = 0
    for month, day, name in RECURRING_HOLIDAYS:
        holiday_date = date(year, month, day)
        if holiday_date in existing:
            continue
        await repo.add_holiday(PublicHoliday(
            subsidiary_id=subsidiary_id,
            holiday_date=holiday_date,
            year=year,
            name=name,
            is_recurring=True,
        ))
        created += 1
    logger.info("Seeded %d public holidays for %d", created, year)
    return created
