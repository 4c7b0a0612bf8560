"""
Calendar Module

Calendar arithmetic for installment due dates and the injectable Clock that
supplies "today" to the ledger and classifiers. Core logic never calls
date.today() directly.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union
import calendar
import threading

SUNDAY = 6  # date.weekday() value


def parse_date(value: Union[date, str]) -> date:
    """
    Accept a date or an ISO 'YYYY-MM-DD' string.

    Raises:
        ValueError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip())
    raise ValueError(f"Expected a date or ISO date string, got {type(value).__name__}")


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping to the last valid day of the target month"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def is_business_day(day: date) -> bool:
    """Collection days run Monday through Saturday"""
    return day.weekday() != SUNDAY


def add_business_days(start_date: date, count: int) -> date:
    """
    Return the `count`-th collection day counting start_date as day one.

    Sundays are never counted. add_business_days(d, 1) is d itself unless d
    is a Sunday, in which case it rolls to the following Monday.
    """
    if count < 1:
        raise ValueError("count must be at least 1")

    current = start_date
    while not is_business_day(current):
        current += timedelta(days=1)

    remaining = count - 1
    while remaining > 0:
        current += timedelta(days=1)
        if is_business_day(current):
            remaining -= 1
    return current


def days_between(earlier: date, later: date) -> int:
    """Whole calendar days from earlier to later (negative if reversed)"""
    return (later - earlier).days


def days_late(due_date: date, today: date) -> int:
    """Days an obligation is overdue, never negative"""
    return max(0, days_between(due_date, today))


class Clock(ABC):
    """Source of the current date and time"""

    @abstractmethod
    def today(self) -> date:
        """Current calendar date"""
        pass

    def now(self) -> datetime:
        """Current UTC timestamp, used for record bookkeeping only"""
        return datetime.now(timezone.utc)


class SystemClock(Clock):
    """Clock backed by the host's local calendar"""

    def today(self) -> date:
        return date.today()


class FixedClock(Clock):
    """Settable clock for tests and back-dated batch runs"""

    def __init__(self, today: Optional[date] = None):
        self._today = today or date.today()
        self._lock = threading.Lock()

    def today(self) -> date:
        with self._lock:
            return self._today

    def set(self, today: date) -> None:
        with self._lock:
            self._today = today

    def advance(self, days: int = 1) -> date:
        with self._lock:
            self._today = self._today + timedelta(days=days)
            return self._today
