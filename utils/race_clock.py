"""
Race clock utilities.

Off-times are stored as local clock strings ("13:30", "1:30", "01:30:00"). By racing
convention, hours 01-11 are afternoon/evening times recorded without the 12-hour
offset, so "01:30" means 13:30. Hours 00 and 12-23 are taken as written.

The Clock classes give the tracker a single injectable source of "now" and "today"
so that a snapshot is computed against one instant.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, date, timezone
from typing import Optional
from zoneinfo import ZoneInfo

_TIME_PATTERN = re.compile(r'(\d{1,2}):(\d{2})')

# Hours stored without the PM offset
PM_HOUR_START = 1
PM_HOUR_END = 11

MINUTES_PER_DAY = 24 * 60


def _split_race_time(raw: Optional[str]):
    if not raw:
        return None
    match = _TIME_PATTERN.search(str(raw))
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def normalize_race_clock_time(raw: Optional[str]) -> int:
    """
    Convert a stored off-time to minutes since midnight.

    Hours 01-11 are shifted by 12 hours (01:30 -> 13:30). Empty or unparseable
    values return 0, which sorts them first and never counts as upcoming.
    """
    parts = _split_race_time(raw)
    if parts is None:
        return 0
    hours, minutes = parts
    if PM_HOUR_START <= hours <= PM_HOUR_END:
        hours += 12
    return hours * 60 + minutes


def format_race_time(raw: Optional[str]) -> str:
    """Display form (HH:MM) of a stored off-time with the PM convention applied."""
    parts = _split_race_time(raw)
    if parts is None:
        return ''
    minutes_since_midnight = normalize_race_clock_time(raw)
    return f"{minutes_since_midnight // 60:02d}:{minutes_since_midnight % 60:02d}"


def compare_race_times(a: Optional[str], b: Optional[str]) -> int:
    return normalize_race_clock_time(a) - normalize_race_clock_time(b)


def is_race_completed(raw: Optional[str], now_minutes: int, buffer_minutes: int = 120) -> bool:
    """True once the race went off at least buffer_minutes ago."""
    if not raw:
        return False
    return (now_minutes - normalize_race_clock_time(raw)) >= buffer_minutes


def is_race_upcoming(raw: Optional[str], now_minutes: int) -> bool:
    if not raw:
        return False
    return normalize_race_clock_time(raw) > now_minutes


def minutes_into_race_day(race_date: str, instant: datetime) -> int:
    """
    Minutes of race_date that have elapsed at instant.

    The instant's own day gives its time of day; an earlier race day has fully
    elapsed (MINUTES_PER_DAY) and a later one has not started (0).
    """
    today = instant.date().isoformat()
    if race_date < today:
        return MINUTES_PER_DAY
    if race_date > today:
        return 0
    return instant.hour * 60 + instant.minute


class Clock(ABC):
    """Source of the current instant for a tracker run."""

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware instant."""
        raise NotImplementedError

    def today(self) -> str:
        return self.now().date().isoformat()

    def now_minutes(self) -> int:
        current = self.now()
        return current.hour * 60 + current.minute


class SystemClock(Clock):
    """Wall clock in the racing timezone (UK by default)."""

    def __init__(self, tz_name: str = 'Europe/London'):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock(Clock):
    """Clock frozen at one instant; naive datetimes are taken as UTC."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant

    @classmethod
    def at(cls, race_date: str, clock_time: str) -> 'FixedClock':
        day = date.fromisoformat(race_date)
        hours, minutes = (int(part) for part in clock_time.split(':')[:2])
        return cls(datetime(day.year, day.month, day.day, hours, minutes, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self.instant
