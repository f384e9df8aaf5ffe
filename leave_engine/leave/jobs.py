"""Scheduled leave jobs — monthly accrual, year-end carry-over, carry-over expiry.

Each employee is processed in its own retried unit of work, so one failing
balance never blocks the rest of the run. All jobs are idempotent and safe to
re-run for the same period.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Awaitable, Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leave_engine.common.exceptions import AppException
from leave_engine.leave.balance import BalanceLedger
from leave_engine.leave.directory import seed_public_holidays
from leave_engine.leave.models import ZERO
from leave_engine.leave.repository import LeaveRepository
from leave_engine.leave.unit_of_work import run_in_transaction

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system:leave-jobs"


@dataclass
class JobSummary:
    """Outcome of one batch run."""

    job: str
    processed: int = 0
    failed: int = 0
    total_days: Decimal = ZERO
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return self.processed - self.failed


class LeaveJobs:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def _employee_ids(self, leave_year: int) -> list[uuid.UUID]:
        async def operation(repo: LeaveRepository) -> list[uuid.UUID]:
            return await repo.list_balance_employee_ids(leave_year)

        return await run_in_transaction(self.session_factory, operation, name="list_balance_employees")

    async def _for_each(
        self,
        summary: JobSummary,
        keys: Iterable,
        operation_for: Callable[..., Callable[[LeaveRepository], Awaitable[Decimal]]],
    ) -> JobSummary:
        for key in keys:
            summary.processed += 1
            try:
                days = await run_in_transaction(
                    self.session_factory, operation_for(key), name=f"{summary.job}:{key}",
                )
            except AppException as exc:
                summary.failed += 1
                summary.errors[str(key)] = exc.detail
                logger.error("%s failed for %s: %s", summary.job, key, exc.detail)
                continue
            summary.total_days += days
        logger.info(
            "%s complete: %d processed, %d failed, %s days",
            summary.job, summary.processed, summary.failed, summary.total_days,
        )
        return summary

    # ─────────────────────────────────────────────────────────────────
    # Accrual
    # ─────────────────────────────────────────────────────────────────

    async def run_monthly_accrual(
        self,
        leave_year: int,
        month: int,
        employee_ids: Optional[list[uuid.UUID]] = None,
    ) -> JobSummary:
        """Accrue *month* of *leave_year* for every employee with balances."""
        ids = employee_ids if employee_ids is not None else await self._employee_ids(leave_year)

        def operation_for(employee_id: uuid.UUID):
            async def operation(repo: LeaveRepository) -> Decimal:
                return await BalanceLedger(repo).accrue_monthly(
                    employee_id, leave_year, month, created_by=SYSTEM_ACTOR,
                )
            return operation

        return await self._for_each(JobSummary(job=f"accrual {leave_year}-{month:02d}"), ids, operation_for)

    # ─────────────────────────────────────────────────────────────────
    # Carry-over
    # ─────────────────────────────────────────────────────────────────

    async def run_carry_over(
        self,
        from_year: int,
        to_year: Optional[int] = None,
        employee_ids: Optional[list[uuid.UUID]] = None,
    ) -> JobSummary:
        to_year = to_year if to_year is not None else from_year + 1
        ids = employee_ids if employee_ids is not None else await self._employee_ids(from_year)

        def operation_for(employee_id: uuid.UUID):
            async def operation(repo: LeaveRepository) -> Decimal:
                carried = await BalanceLedger(repo).carry_over(
                    employee_id, from_year, to_year, created_by=SYSTEM_ACTOR,
                )
                return sum(carried.values(), ZERO)
            return operation

        return await self._for_each(JobSummary(job=f"carry-over {from_year}->{to_year}"), ids, operation_for)

    async def run_carry_over_expiry(self, today: Optional[date] = None) -> JobSummary:
        """Expire every unused carry-over whose expiry date is before *today*."""
        today = today or date.today()

        async def list_keys(repo: LeaveRepository):
            return await repo.list_expiring_balance_keys(today)

        keys = await run_in_transaction(self.session_factory, list_keys, name="list_expiring_balances")

        def operation_for(key):
            employee_id, leave_year, leave_type = key

            async def operation(repo: LeaveRepository) -> Decimal:
                return await BalanceLedger(repo).expire_carry_over(
                    employee_id, leave_year, leave_type, today, created_by=SYSTEM_ACTOR,
                )
            return operation

        return await self._for_each(JobSummary(job=f"carry-over expiry {today}"), keys, operation_for)

    # ─────────────────────────────────────────────────────────────────
    # Reference data
    # ─────────────────────────────────────────────────────────────────

    async def seed_holidays(self, year: int, subsidiary_id: Optional[uuid.UUID] = None) -> int:
        async def operation(repo: LeaveRepository) -> int:
            return await seed_public_holidays(repo, year, subsidiary_id)

        return await run_in_transaction(self.session_factory, operation, name=f"seed_holidays {year}")
