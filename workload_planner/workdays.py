"""
Working-day arithmetic over weekends, public holidays and personal leave.

The holiday source is a collaborator: anything implementing
``HolidayProvider.non_working_dates`` can be passed in. Only the static,
in-memory provider ships here.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List, Optional, Protocol, Sequence, Set, Union

from .models import DateLike, Holiday, LeaveRecord, to_date

WEEKEND_DAYS = frozenset({5, 6})  # Saturday, Sunday


class HolidayProvider(Protocol):
    def non_working_dates(self, start: date, end: date) -> List[date]:
        ...


def _excluded_set(excluded: Optional[Iterable[DateLike]]) -> Set[date]:
    dates: Set[date] = set()
    for value in excluded or ():
        if isinstance(value, Holiday):
            dates.add(value.date)
            continue
        parsed = to_date(value)
        if parsed is not None:
            dates.add(parsed)
    return dates


def is_workday(day: date, excluded: Union[Set[date], Iterable[DateLike], None] = None) -> bool:
    if day.weekday() in WEEKEND_DAYS:
        return False
    excluded_dates = excluded if isinstance(excluded, set) else _excluded_set(excluded)
    return day not in excluded_dates


def add_workdays(start: DateLike, num_days: float, excluded: Optional[Iterable[DateLike]] = None) -> date:
    """Move forward ``num_days`` working days from ``start`` (spreadsheet WORKDAY).

    The start date itself is never counted; non-positive counts return it unchanged.
    """
    current = to_date(start)
    if current is None:
        raise ValueError("start date is required")
    excluded_dates = _excluded_set(excluded)
    added = 0
    while added < num_days:
        current += timedelta(days=1)
        if is_workday(current, excluded_dates):
            added += 1
    return current


def count_workdays(start: DateLike, end: DateLike, excluded: Optional[Iterable[DateLike]] = None) -> int:
    """Inclusive count of working days between two dates (NETWORKDAYS)."""
    current = to_date(start)
    last = to_date(end)
    if current is None or last is None:
        raise ValueError("start and end dates are required")
    excluded_dates = _excluded_set(excluded)
    count = 0
    while current <= last:
        if is_workday(current, excluded_dates):
            count += 1
        current += timedelta(days=1)
    return count


class StaticHolidayProvider:
    """Holiday provider backed by in-memory holiday and leave records."""

    def __init__(self, holidays: Sequence[Holiday] = (), leaves: Sequence[LeaveRecord] = ()) -> None:
        self.holidays = tuple(holidays)
        self.leaves = tuple(leaves)

    def non_working_dates(self, start: date, end: date) -> List[date]:
        return sorted({holiday.date for holiday in self.holidays if start <= holiday.date <= end})

    def leave_dates_for(self, member: str) -> List[date]:
        lowered = member.lower()
        dates: Set[date] = set()
        for leave in self.leaves:
            if leave.member_name.lower() == lowered:
                dates.update(leave.days())
        return sorted(dates)

    def excluded_dates_for(self, member: Optional[str]) -> List[date]:
        """Public holidays merged with the member's own leave days."""
        dates = {holiday.date for holiday in self.holidays}
        if member:
            dates.update(self.leave_dates_for(member))
        return sorted(dates)
