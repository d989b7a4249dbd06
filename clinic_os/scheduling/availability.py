"""Partner availability index.

Derives a partner's bookable windows for a date from weekly availability
rules minus blocked-date exceptions. Several active rules for the same
weekday are treated as a union of windows.
"""

from datetime import date
from typing import Iterable, Sequence

from clinic_os.scheduling.models import (
    Appointment,
    AppointmentStatus,
    DaySlot,
    PartnerAvailability,
    PartnerBlockedDate,
    SlotStatus,
)
from clinic_os.scheduling.timeutil import Interval, day_of_week, format_minutes, to_minutes


def rules_for_day(rules: Iterable[PartnerAvailability], day: date) -> list[PartnerAvailability]:
    """Active rules whose weekday matches *day*, earliest window first."""
    weekday = day_of_week(day)
    matching = [r for r in rules if r.active and r.day_of_week == weekday]
    return sorted(matching, key=lambda r: to_minutes(r.start_time))


def blocks_for_day(blocked: Iterable[PartnerBlockedDate], day: date) -> list[PartnerBlockedDate]:
    """Active blocks on *day*, compared as ISO ``yyyy-mm-dd`` strings."""
    key = day.isoformat()
    return [b for b in blocked if b.active and b.blocked_date.isoformat() == key]


def is_time_available(time: str, rules: Sequence[PartnerAvailability], day: date) -> bool:
    """True if *time* is inside some working window and outside its break."""
    minute = to_minutes(time)
    for rule in rules_for_day(rules, day):
        if not rule.window().contains_minute(minute):
            continue
        brk = rule.break_interval()
        if brk is not None and brk.contains_minute(minute):
            continue
        return True
    return False


def is_time_blocked(time: str, day: date, blocked: Sequence[PartnerBlockedDate]) -> bool:
    """True if a block on *day* covers *time* (full-day blocks cover everything)."""
    minute = to_minutes(time)
    for block in blocks_for_day(blocked, day):
        interval = block.interval()
        if interval is None or interval.contains_minute(minute):
            return True
    return False


def free_windows(
    rules: Sequence[PartnerAvailability],
    blocked: Sequence[PartnerBlockedDate],
    day: date,
) -> list[Interval]:
    """Working windows for *day* with breaks and blocks cut out, merged and sorted."""
    windows: list[Interval] = []
    for rule in rules_for_day(rules, day):
        pieces = [rule.window()]
        brk = rule.break_interval()
        if brk is not None:
            pieces = _subtract(pieces, brk)
        windows.extend(pieces)

    for block in blocks_for_day(blocked, day):
        interval = block.interval()
        if interval is None:
            return []
        windows = _subtract(windows, interval)

    return merge_intervals(windows)


def is_interval_available(
    interval: Interval,
    rules: Sequence[PartnerAvailability],
    blocked: Sequence[PartnerBlockedDate],
    day: date,
) -> bool:
    """True if *interval* fits entirely inside one free window."""
    return any(w.covers(interval) for w in free_windows(rules, blocked, day))


def day_view(
    day: date,
    rules: Sequence[PartnerAvailability],
    blocked: Sequence[PartnerBlockedDate],
    appointments: Sequence[Appointment],
    slot_minutes: int = 30,
    first_minute: int = 7 * 60,
    last_minute: int = 21 * 60,
) -> list[DaySlot]:
    """Classify each fixed-width slot of *day* for a partner's calendar column."""
    live = [a for a in appointments if a.date == day and a.status != AppointmentStatus.CANCELLED]
    last_minute = min(last_minute, 24 * 60 - 1)
    slots: list[DaySlot] = []
    current = first_minute
    while current + slot_minutes <= last_minute:
        slot = Interval(current, current + slot_minutes)
        start = format_minutes(slot.start)
        busy_ids = [a.id for a in live if a.interval().overlaps(slot)]
        if busy_ids:
            status = SlotStatus.BUSY
        elif is_time_blocked(start, day, blocked):
            status = SlotStatus.BLOCKED
        elif is_time_available(start, rules, day):
            status = SlotStatus.AVAILABLE
        else:
            status = SlotStatus.UNAVAILABLE
        slots.append(
            DaySlot(
                start_time=start,
                end_time=format_minutes(slot.end),
                status=status,
                appointment_ids=busy_ids,
            )
        )
        current += slot_minutes
    return slots


# ------------------------------------------------------------------
# Interval arithmetic
# ------------------------------------------------------------------


def _subtract(windows: list[Interval], cut: Interval) -> list[Interval]:
    result: list[Interval] = []
    for w in windows:
        if not w.overlaps(cut):
            result.append(w)
            continue
        if w.start < cut.start:
            result.append(Interval(w.start, cut.start))
        if cut.end < w.end:
            result.append(Interval(cut.end, w.end))
    return result


def merge_intervals(windows: list[Interval]) -> list[Interval]:
    merged: list[Interval] = []
    for w in sorted(windows):
        if merged and w.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, w.end))
        else:
            merged.append(w)
    return merged
