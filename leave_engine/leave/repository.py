"""Leave repository — the engine's only access path to the document store.

Wraps one ``AsyncSession`` (one unit of work). Writes to versioned records
are flushed immediately so a version mismatch surfaces as
:class:`ConcurrencyConflict` at the call site rather than at commit.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from leave_engine.common.constants import LeaveRequestStatus, LeaveType
from leave_engine.common.exceptions import ConcurrencyConflict
from leave_engine.common.pagination import PaginationMeta, paginate_query
from leave_engine.leave.models import (
    ApprovalDelegation,
    BalanceHistoryEntry,
    LeaveBalance,
    LeaveRequest,
    PublicHoliday,
    TeamCalendarEntry,
)


class LeaveRepository:
    """Point reads, version-guarded writes and range queries for the leave engine."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _flush(self, entity_type: str, entity_id: object) -> None:
        try:
            await self.db.flush()
        except StaleDataError as exc:
            raise ConcurrencyConflict(entity_type, entity_id) from exc
        except IntegrityError as exc:
            # Unique key taken by a concurrent insert
            raise ConcurrencyConflict(entity_type, entity_id) from exc

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    async def get_balance(
        self,
        employee_id: uuid.UUID,
        leave_year: int,
        leave_type: LeaveType,
    ) -> Optional[LeaveBalance]:
        result = await self.db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_year == leave_year,
                LeaveBalance.leave_type == leave_type,
            )
        )
        return result.scalars().first()

    async def list_balances(
        self,
        employee_id: uuid.UUID,
        leave_year: Optional[int] = None,
    ) -> Sequence[LeaveBalance]:
        query = select(LeaveBalance).where(LeaveBalance.employee_id == employee_id)
        if leave_year is not None:
            query = query.where(LeaveBalance.leave_year == leave_year)
        result = await self.db.execute(
            query.order_by(LeaveBalance.leave_year, LeaveBalance.leave_type)
        )
        return result.scalars().all()

    async def list_balance_employee_ids(
        self,
        leave_year: int,
        leave_type: Optional[LeaveType] = None,
    ) -> list[uuid.UUID]:
        query = select(LeaveBalance.employee_id).where(LeaveBalance.leave_year == leave_year)
        if leave_type is not None:
            query = query.where(LeaveBalance.leave_type == leave_type)
        result = await self.db.execute(query.distinct())
        return list(result.scalars().all())

    async def list_expiring_balance_keys(self, before: date) -> list[tuple[uuid.UUID, int, LeaveType]]:
        """Keys of balances whose carry-over expired before *before* and still has unused days."""
        result = await self.db.execute(
            select(
                LeaveBalance.employee_id,
                LeaveBalance.leave_year,
                LeaveBalance.leave_type,
            ).where(
                LeaveBalance.carry_over_expiry.is_not(None),
                LeaveBalance.carry_over_expiry < before,
                LeaveBalance.carried_over
                > LeaveBalance.carried_over_used + LeaveBalance.carried_over_expired,
            )
        )
        return [tuple(row) for row in result.all()]

    async def add_balance(self, balance: LeaveBalance) -> LeaveBalance:
        self.db.add(balance)
        await self._flush("LeaveBalance", f"{balance.employee_id}/{balance.leave_year}/{balance.leave_type.value}")
        return balance

    async def save_balance(self, balance: LeaveBalance) -> LeaveBalance:
        """Flush a modified balance; the UPDATE is conditional on its version."""
        await self._flush("LeaveBalance", balance.id)
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Balance history (append-only)
    # ─────────────────────────────────────────────────────────────────

    async def add_history(self, entry: BalanceHistoryEntry) -> BalanceHistoryEntry:
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_history(
        self,
        employee_id: uuid.UUID,
        leave_year: Optional[int] = None,
        leave_type: Optional[LeaveType] = None,
        limit: int = 100,
    ) -> Sequence[BalanceHistoryEntry]:
        query = select(BalanceHistoryEntry).where(BalanceHistoryEntry.employee_id == employee_id)
        if leave_year is not None:
            query = query.where(BalanceHistoryEntry.leave_year == leave_year)
        if leave_type is not None:
            query = query.where(BalanceHistoryEntry.leave_type == leave_type)
        result = await self.db.execute(
            query.order_by(BalanceHistoryEntry.created_at.desc()).limit(limit)
        )
        return result.scalars().all()

    # ─────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────

    async def get_request(self, request_id: uuid.UUID) -> Optional[LeaveRequest]:
        return await self.db.get(LeaveRequest, request_id)

    async def add_request(self, request: LeaveRequest) -> LeaveRequest:
        self.db.add(request)
        await self._flush("LeaveRequest", request.request_number)
        return request

    async def save_request(self, request: LeaveRequest) -> LeaveRequest:
        await self._flush("LeaveRequest", request.id)
        return request

    async def count_request_numbers(self, prefix: str) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.request_number.startswith(prefix)
            )
        )
        return result.scalar_one()

    async def find_overlapping_requests(
        self,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        statuses: Iterable[LeaveRequestStatus],
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Sequence[LeaveRequest]:
        query = select(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(list(statuses)),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        if exclude_id is not None:
            query = query.where(LeaveRequest.id != exclude_id)
        result = await self.db.execute(query.order_by(LeaveRequest.start_date))
        return result.scalars().all()

    async def list_requests(
        self,
        *,
        employee_id: Optional[uuid.UUID] = None,
        statuses: Optional[Iterable[LeaveRequestStatus]] = None,
        leave_type: Optional[LeaveType] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[Sequence[LeaveRequest], PaginationMeta]:
        query = select(LeaveRequest)
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if statuses:
            query = query.where(LeaveRequest.status.in_(list(statuses)))
        if leave_type is not None:
            query = query.where(LeaveRequest.leave_type == leave_type)
        if from_date is not None:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date is not None:
            query = query.where(LeaveRequest.start_date <= to_date)
        query = query.order_by(LeaveRequest.start_date.desc(), LeaveRequest.request_number)
        return await paginate_query(self.db, query, page, page_size)

    async def list_requests_in_statuses(
        self, statuses: Iterable[LeaveRequestStatus],
    ) -> Sequence[LeaveRequest]:
        result = await self.db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.status.in_(list(statuses)))
            .order_by(LeaveRequest.submitted_at, LeaveRequest.request_number)
        )
        return result.scalars().all()

    # ─────────────────────────────────────────────────────────────────
    # Team calendar
    # ─────────────────────────────────────────────────────────────────

    async def replace_calendar_entries(
        self,
        request_id: uuid.UUID,
        entries: list[TeamCalendarEntry],
    ) -> None:
        await self.db.execute(
            delete(TeamCalendarEntry).where(TeamCalendarEntry.request_id == request_id)
        )
        self.db.add_all(entries)
        await self.db.flush()

    async def list_calendar_entries(
        self,
        start_date: date,
        end_date: date,
        *,
        department_id: Optional[uuid.UUID] = None,
        subsidiary_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> Sequence[TeamCalendarEntry]:
        query = select(TeamCalendarEntry).where(
            TeamCalendarEntry.leave_date >= start_date,
            TeamCalendarEntry.leave_date <= end_date,
        )
        if department_id is not None:
            query = query.where(TeamCalendarEntry.department_id == department_id)
        if subsidiary_id is not None:
            query = query.where(TeamCalendarEntry.subsidiary_id == subsidiary_id)
        if employee_id is not None:
            query = query.where(TeamCalendarEntry.employee_id == employee_id)
        result = await self.db.execute(
            query.order_by(TeamCalendarEntry.leave_date, TeamCalendarEntry.employee_name)
        )
        return result.scalars().all()

    # ─────────────────────────────────────────────────────────────────
    # Reference data
    # ─────────────────────────────────────────────────────────────────

    async def list_holidays(
        self,
        subsidiary_id: Optional[uuid.UUID],
        year: int,
    ) -> Sequence[PublicHoliday]:
        """Holidays for a subsidiary plus the ones defined for every subsidiary."""
        scope = PublicHoliday.subsidiary_id.is_(None)
        if subsidiary_id is not None:
            scope = or_(scope, PublicHoliday.subsidiary_id == subsidiary_id)
        result = await self.db.execute(
            select(PublicHoliday)
            .where(PublicHoliday.year == year, scope)
            .order_by(PublicHoliday.holiday_date)
        )
        return result.scalars().all()

    async def add_holiday(self, holiday: PublicHoliday) -> PublicHoliday:
        self.db.add(holiday)
        await self.db.flush()
        return holiday

    async def list_delegations_from(
        self,
        delegator_id: uuid.UUID,
        delegate_id: uuid.UUID,
    ) -> Sequence[ApprovalDelegation]:
        result = await self.db.execute(
            select(ApprovalDelegation).where(
                ApprovalDelegation.delegator_id == delegator_id,
                ApprovalDelegation.delegate_id == delegate_id,
                ApprovalDelegation.is_active.is_(True),
            )
        )
        return result.scalars().all()

    async def list_delegations_to(self, delegate_id: uuid.UUID) -> Sequence[ApprovalDelegation]:
        result = await self.db.execute(
            select(ApprovalDelegation).where(
                ApprovalDelegation.delegate_id == delegate_id,
                ApprovalDelegation.is_active.is_(True),
            )
        )
        return result.scalars().all()

    async def add_delegation(self, delegation: ApprovalDelegation) -> ApprovalDelegation:
        self.db.add(delegation)
        await self.db.flush()
        return delegation
