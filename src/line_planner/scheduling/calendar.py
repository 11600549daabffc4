# src/line_planner/scheduling/calendar.py
from __future__ import annotations

import datetime as dt
from collections import defaultdict
from typing import Iterable

from .errors import InvalidDate
from .models import Holiday

# Saturday, Sunday (date.weekday())
WEEKEND_DAYS = frozenset({5, 6})
PLANNING_HORIZON_DAYS = 366


class WorkingCalendar:
    """Weekend policy plus global / per-line / recurring holidays."""

    def __init__(self, holidays: Iterable[Holiday] = ()):
        self.holidays = list(holidays)
        self._by_date: dict[dt.date, list[Holiday]] = defaultdict(list)
        self._recurring: dict[tuple[int, int], list[Holiday]] = defaultdict(list)
        for h in self.holidays:
            if h.is_recurring:
                self._recurring[(h.day.month, h.day.day)].append(h)
            else:
                self._by_date[h.day].append(h)

    @staticmethod
    def is_weekend(day: dt.date) -> bool:
        return day.weekday() in WEEKEND_DAYS

    def holidays_on(self, day: dt.date) -> list[Holiday]:
        return self._by_date.get(day, []) + self._recurring.get((day.month, day.day), [])

    def is_holiday(self, day: dt.date, line_id: str | None = None) -> bool:
        return any(h.applies_to(line_id) for h in self.holidays_on(day))

    def is_working_day(self, day: dt.date, line_id: str | None = None) -> bool:
        return not self.is_weekend(day) and not self.is_holiday(day, line_id)

    def next_working_day(self, day: dt.date, line_id: str | None = None) -> dt.date:
        """First working day on or after ``day``."""
        cursor = day
        for _ in range(PLANNING_HORIZON_DAYS + 1):
            if self.is_working_day(cursor, line_id):
                return cursor
            cursor += dt.timedelta(days=1)
        raise InvalidDate(day, line_id, msg=f"no working day for line {line_id!r} within the horizon from {day}")
