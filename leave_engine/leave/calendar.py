"""Team calendar projection — per-day rows derived from pending/approved requests."""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import date
from typing import Optional, Sequence

from leave_engine.common.constants import ACTIVE_STATUSES
from leave_engine.common.exceptions import ValidationException
from leave_engine.leave.models import LeaveRequest, TeamCalendarEntry
from leave_engine.leave.repository import LeaveRepository
from leave_engine.leave.schemas import (
    DayAvailability,
    DayConfig,
    TeamCalendarEntryOut,
    TeamConflict,
)
from leave_engine.leave.utils import daterange


class TeamCalendarProjector:
    def __init__(self, repo: LeaveRepository) -> None:
        self.repo = repo

    async def sync_request(self, request: LeaveRequest) -> int:
        """Regenerate the request's rows; requests outside pending/approved get none."""
        entries: list[TeamCalendarEntry] = []
        if request.status in ACTIVE_STATUSES:
            for raw in request.day_configs:
                day = DayConfig.model_validate(raw)
                if not day.is_working_day or day.is_holiday or day.day_value <= 0:
                    continue
                entries.append(TeamCalendarEntry(
                    request_id=request.id,
                    employee_id=request.employee_id,
                    employee_name=request.employee_name,
                    department_id=request.department_id,
                    subsidiary_id=request.subsidiary_id,
                    leave_type=request.leave_type,
                    leave_date=day.date,
                    day_type=day.day_type,
                    day_value=day.day_value,
                    status=request.status,
                ))
        await self.repo.replace_calendar_entries(request.id, entries)
        return len(entries)

    async def get_entries(
        self,
        start_date: date,
        end_date: date,
        *,
        department_id: Optional[uuid.UUID] = None,
        subsidiary_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> Sequence[TeamCalendarEntry]:
        if end_date < start_date:
            raise ValidationException({"end_date": ["end_date must be on or after start_date."]})
        return await self.repo.list_calendar_entries(
            start_date,
            end_date,
            department_id=department_id,
            subsidiary_id=subsidiary_id,
            employee_id=employee_id,
        )

    async def check_team_conflicts(
        self,
        department_id: uuid.UUID,
        start_date: date,
        end_date: date,
        max_allowed: int,
        exclude_employee_id: Optional[uuid.UUID] = None,
    ) -> list[TeamConflict]:
        """Dates where the number of colleagues on leave meets or exceeds *max_allowed*."""
        entries = await self.get_entries(start_date, end_date, department_id=department_id)

        on_leave: dict[date, set[uuid.UUID]] = defaultdict(set)
        for entry in entries:
            if entry.employee_id == exclude_employee_id:
                continue
            on_leave[entry.leave_date].add(entry.employee_id)

        conflicts: list[TeamConflict] = []
        for day in sorted(on_leave):
            employees = on_leave[day]
            if len(employees) >= max_allowed:
                conflicts.append(TeamConflict(
                    date=day,
                    on_leave_count=len(employees),
                    employee_ids=sorted(employees, key=str),
                    exceeds_limit=len(employees) > max_allowed,
                ))
        return conflicts

    async def get_availability(
        self,
        department_id: uuid.UUID,
        start_date: date,
        end_date: date,
    ) -> list[DayAvailability]:
        entries = await self.get_entries(start_date, end_date, department_id=department_id)
        by_day: dict[date, list[TeamCalendarEntryOut]] = defaultdict(list)
        for entry in entries:
            by_day[entry.leave_date].append(TeamCalendarEntryOut.model_validate(entry))
        return [
            DayAvailability(date=day, on_leave=by_day.get(day, []))
            for day in daterange(start_date, end_date)
        ]
