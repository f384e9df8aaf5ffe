"""Date helpers for leave requests — working days, overlap, notice, numbering."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Iterator, Mapping, Optional

from leave_engine.common.constants import DayType
from leave_engine.config import settings
from leave_engine.leave.schemas import DayConfig

HALF_DAY_TYPES = frozenset({DayType.half_day_am, DayType.half_day_pm})


def daterange(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def generate_day_configs(
    start_date: date,
    end_date: date,
    holidays: Mapping[date, str],
    overrides: Optional[Mapping[date, DayType]] = None,
    working_weekdays: Optional[set[int]] = None,
) -> list[DayConfig]:
    """Build one :class:`DayConfig` per calendar day in the range.

    A day is charged only if it is a working weekday and not a holiday;
    half-day overrides charge 0.5.
    """
    weekdays = working_weekdays if working_weekdays is not None else settings.working_weekdays_set
    overrides = overrides or {}
    configs: list[DayConfig] = []

    for day in daterange(start_date, end_date):
        is_working = day.weekday() in weekdays
        holiday_name = holidays.get(day)
        if not is_working or holiday_name is not None:
            configs.append(DayConfig(
                date=day,
                day_type=DayType.full_day,
                is_working_day=is_working,
                is_holiday=holiday_name is not None,
                holiday_name=holiday_name,
                day_value=Decimal("0"),
            ))
            continue

        day_type = overrides.get(day, DayType.full_day)
        configs.append(DayConfig(
            date=day,
            day_type=day_type,
            day_value=Decimal("0.5") if day_type in HALF_DAY_TYPES else Decimal("1"),
        ))

    return configs


def calculate_total_days(configs: Iterable[DayConfig]) -> Decimal:
    return sum(
        (c.day_value for c in configs if c.is_working_day and not c.is_holiday),
        Decimal("0"),
    )


def dates_overlap(
    start_a: date, end_a: date, start_b: date, end_b: date,
) -> bool:
    """Inclusive range overlap."""
    return start_a <= end_b and end_a >= start_b


def notice_days_given(start_date: date, today: Optional[date] = None) -> int:
    return (start_date - (today or date.today())).days


def generate_request_number(employee_number: str, on: date, sequence: int) -> str:
    """``LR-<employee number>-<YYYYMMDD>-<seq>``, sequence per employee per day."""
    return f"LR-{employee_number}-{on:%Y%m%d}-{sequence:03d}"


def calculate_return_date(
    end_date: date,
    holidays: Mapping[date, str],
    working_weekdays: Optional[set[int]] = None,
) -> date:
    """First working, non-holiday day after *end_date*."""
    weekdays = working_weekdays if working_weekdays is not None else settings.working_weekdays_set
    candidate = end_date + timedelta(days=1)
    # Gives up after two weeks
    for _ in range(14):
        if candidate.weekday() in weekdays and candidate not in holidays:
            return candidate
        candidate += timedelta(days=1)
    return candidate
