"""
Clock and bonus calendar.

All engine time comes from an injected Clock so tests can pin "now". The
BonusCalendar owns the civil-calendar rules: the Sunday double-XP bonus and
the Monday-aligned week used as the XP ledger key, both evaluated in one
configured timezone (Central European time by default).
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

SUNDAY = 6  # datetime.weekday()


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a timestamp to aware UTC.

    SQLite hands DateTime(timezone=True) columns back naive; every value the
    engine writes is UTC, so a naive value is read as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """Source of the current instant."""

    @abstractmethod
    def now(self) -> datetime:
        """Current aware UTC datetime."""
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, instant: datetime):
        self._instant = ensure_utc(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = ensure_utc(instant)

    def advance(self, delta: timedelta) -> datetime:
        self._instant = self._instant + delta
        return self._instant


class BonusCalendar:
    """Day-of-week XP multiplier and week boundaries in a fixed timezone."""

    def __init__(self, timezone_name: str = "Europe/Paris"):
        self.timezone_name = timezone_name
        self.tz = ZoneInfo(timezone_name)

    def local(self, now: datetime) -> datetime:
        return ensure_utc(now).astimezone(self.tz)

    def multiplier(self, now: datetime) -> int:
        """2 on Sunday (00:00-23:59:59 local), otherwise 1."""
        return 2 if self.local(now).weekday() == SUNDAY else 1

    def week_bounds(self, now: datetime) -> Tuple[date, date]:
        """Monday and Sunday of the local calendar week containing `now`."""
        today = self.local(now).date()
        week_start = today - timedelta(days=today.weekday())
        return week_start, week_start + timedelta(days=6)

