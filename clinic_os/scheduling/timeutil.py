"""Time-of-day helpers.

Times travel as ``"HH:MM"`` strings on the wire and in storage, but every
comparison in the scheduling core is done on integer minutes since midnight
so that ``"9:00"`` and ``"09:00"`` compare correctly.
"""

import re
from datetime import date
from typing import NamedTuple

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

MINUTES_PER_DAY = 24 * 60

# Index matches day_of_week(): 0=Sunday .. 6=Saturday.
DAY_NAMES = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]


def to_minutes(value: str) -> int:
    """Parse an ``HH:MM`` string into minutes since midnight."""
    m = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not m:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return int(m.group(1)) * 60 + int(m.group(2))


def format_minutes(minutes: int) -> str:
    """Render minutes since midnight as zero-padded ``HH:MM``."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range for a time of day: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """Return *value* as zero-padded ``HH:MM`` (``"9:05"`` -> ``"09:05"``)."""
    return format_minutes(to_minutes(value))


def add_minutes(value: str, minutes: int) -> str:
    return format_minutes(to_minutes(value) + minutes)


def day_of_week(day: date) -> int:
    """Weekday number as persisted by the clinic: 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def is_weekend(day: date) -> bool:
    return day_of_week(day) in (0, 6)


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open overlap test: back-to-back intervals do not overlap."""
    return a_start < b_end and a_end > b_start


class Interval(NamedTuple):
    """Half-open ``[start, end)`` interval in minutes since midnight."""

    start: int
    end: int

    @classmethod
    def parse(cls, start: str, end: str) -> "Interval":
        return cls(to_minutes(start), to_minutes(end))

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    def covers(self, other: "Interval") -> bool:
        """True when *other* lies entirely inside this interval."""
        return self.start <= other.start and other.end <= self.end

    def contains_minute(self, minute: int) -> bool:
        return self.start <= minute < self.end

    @property
    def duration(self) -> int:
        return self.end - self.start

    def label(self) -> str:
        return f"{format_minutes(self.start)}-{format_minutes(self.end)}"
