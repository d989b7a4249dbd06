"""Conflict detection for a requested (partner, room, date, start, end) slot.

Detection is read-only and accumulates every conflict it finds, so it is safe
to call repeatedly while a user edits a draft.
"""

import logging
from datetime import date
from typing import Literal, Optional, Protocol, Sequence

from clinic_os.scheduling.availability import (
    blocks_for_day,
    free_windows,
    merge_intervals,
    rules_for_day,
)
from clinic_os.scheduling.errors import NotFoundError, ValidationError
from clinic_os.scheduling.models import (
    Appointment,
    AppointmentStatus,
    AvailabilityResult,
    ClinicSettings,
    ConflictDetail,
    ConflictType,
    PartnerAvailability,
    PartnerBlockedDate,
    Reference,
    TimeWindow,
)
from clinic_os.scheduling.timeutil import DAY_NAMES, Interval, day_of_week, format_minutes, to_minutes

logger = logging.getLogger(__name__)

OverrideScope = Literal["appointment", "all"]


class ScheduleSource(Protocol):
    """Read access the detector needs; implemented by the repository layer."""

    async def get_partner(self, partner_id: str) -> Optional[Reference]: ...

    async def list_day_appointments(
        self, day: date, partner_id: str, room_id: Optional[str] = None
    ) -> list[Appointment]: ...

    async def list_availability(self, partner_id: str) -> list[PartnerAvailability]: ...

    async def list_blocked_dates(self, partner_id: str, day: date) -> list[PartnerBlockedDate]: ...


def ensure_range(start_time: str, end_time: str) -> Interval:
    """Parse a requested range, rejecting malformed times and end <= start."""
    try:
        requested = Interval.parse(start_time, end_time)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if requested.end <= requested.start:
        raise ValidationError(f"End time {end_time} must be after start time {start_time}")
    return requested


def _window(interval: Interval) -> TimeWindow:
    return TimeWindow(start_time=format_minutes(interval.start), end_time=format_minutes(interval.end))


def _reason(block: PartnerBlockedDate) -> str:
    return block.reason or "Schedule blocked"


def detect_conflicts(
    day: date,
    start_time: str,
    end_time: str,
    *,
    partner_id: str,
    existing: Sequence[Appointment],
    rules: Sequence[PartnerAvailability],
    blocked: Sequence[PartnerBlockedDate],
    clinic: Optional[ClinicSettings] = None,
    room_id: Optional[str] = None,
    partner_name: str = "Partner",
    exclude_appointment_id: Optional[str] = None,
) -> list[ConflictDetail]:
    """Return every reason ``[start_time, end_time)`` on *day* is not bookable."""
    requested = Interval.parse(start_time, end_time)
    conflicts: list[ConflictDetail] = []

    # Existing bookings for the partner, then for the room.
    live = [
        a
        for a in existing
        if a.status != AppointmentStatus.CANCELLED
        and a.id != exclude_appointment_id
        and a.date == day
        and a.interval().overlaps(requested)
    ]
    for appt in live:
        if appt.partner_id == partner_id:
            conflicts.append(
                ConflictDetail(
                    type=ConflictType.APPOINTMENT,
                    message=f"{partner_name} already has an appointment from {appt.start_time} to {appt.end_time}",
                    appointment=appt.summary(),
                    time_slot=TimeWindow(start_time=appt.start_time, end_time=appt.end_time),
                )
            )
    if room_id:
        for appt in live:
            if appt.room_id == room_id:
                conflicts.append(
                    ConflictDetail(
                        type=ConflictType.APPOINTMENT,
                        message=f"Room is already occupied from {appt.start_time} to {appt.end_time}",
                        appointment=appt.summary(),
                        time_slot=TimeWindow(start_time=appt.start_time, end_time=appt.end_time),
                    )
                )

    if clinic is not None:
        conflicts.extend(_clinic_hours_conflicts(clinic, day, requested))

    conflicts.extend(_partner_hours_conflicts(rules, day, requested, partner_name))

    for block in blocks_for_day(blocked, day):
        interval = block.interval()
        if interval is None:
            conflicts.append(
                ConflictDetail(
                    type=ConflictType.BLOCKED,
                    message=f"{partner_name} is unavailable all day. Reason: {_reason(block)}",
                )
            )
        elif interval.overlaps(requested):
            conflicts.append(
                ConflictDetail(
                    type=ConflictType.BLOCKED,
                    message=(
                        f"{partner_name} is unavailable from {block.start_time} to {block.end_time}. "
                        f"Reason: {_reason(block)}"
                    ),
                    time_slot=_window(interval),
                )
            )

    return conflicts


def _clinic_hours_conflicts(clinic: ClinicSettings, day: date, requested: Interval) -> list[ConflictDetail]:
    weekday = day_of_week(day)
    hours = clinic.hours_for(weekday)
    if hours is None or not hours.is_open:
        return [
            ConflictDetail(
                type=ConflictType.AVAILABILITY,
                message=f"Clinic is closed on {DAY_NAMES[weekday]}",
            )
        ]

    conflicts: list[ConflictDetail] = []
    open_m = to_minutes(hours.open_time) if hours.open_time else 0
    close_m = to_minutes(hours.close_time) if hours.close_time else 24 * 60
    if requested.start < open_m or requested.end > close_m:
        conflicts.append(
            ConflictDetail(
                type=ConflictType.AVAILABILITY,
                message=(
                    f"Requested time ({requested.label()}) is outside clinic hours "
                    f"({hours.open_time or '00:00'} to {hours.close_time or '24:00'})"
                ),
                time_slot=TimeWindow(
                    start_time=hours.open_time or "00:00",
                    end_time=hours.close_time or "23:59",
                ),
            )
        )

    lunch = hours.lunch_interval()
    if lunch is not None and lunch.overlaps(requested):
        conflicts.append(
            ConflictDetail(
                type=ConflictType.BREAK,
                message=f"Requested time overlaps the clinic lunch break ({lunch.label()})",
                time_slot=_window(lunch),
            )
        )
    return conflicts


def _partner_hours_conflicts(
    rules: Sequence[PartnerAvailability],
    day: date,
    requested: Interval,
    partner_name: str,
) -> list[ConflictDetail]:
    todays = rules_for_day(rules, day)
    weekday = day_of_week(day)
    if not todays:
        working = sorted({r.day_of_week for r in rules if r.active})
        days = ", ".join(DAY_NAMES[d] for d in working) or "no days configured"
        return [
            ConflictDetail(
                type=ConflictType.AVAILABILITY,
                message=f"{partner_name} does not work on {DAY_NAMES[weekday]}. Working days: {days}",
            )
        ]

    # Blocks are reported separately, so only breaks are cut out here.
    if any(w.covers(requested) for w in free_windows(todays, [], day)):
        return []

    conflicts: list[ConflictDetail] = []
    working_windows = merge_intervals([r.window() for r in todays])
    if not any(w.covers(requested) for w in working_windows):
        shown = working_windows[0]
        conflicts.append(
            ConflictDetail(
                type=ConflictType.AVAILABILITY,
                message=(
                    f"Requested time ({requested.label()}) is outside the working hours of "
                    f"{partner_name} ({', '.join(w.label() for w in working_windows)})"
                ),
                time_slot=_window(shown),
            )
        )

    for rule in todays:
        brk = rule.break_interval()
        if brk is not None and brk.overlaps(requested):
            conflicts.append(
                ConflictDetail(
                    type=ConflictType.BREAK,
                    message=f"Requested time overlaps the break of {partner_name} ({brk.label()})",
                    time_slot=_window(brk),
                )
            )
    return conflicts


def split_overridable(
    conflicts: Sequence[ConflictDetail],
    is_encaixe: bool,
    scope: OverrideScope = "appointment",
) -> tuple[list[ConflictDetail], list[ConflictDetail]]:
    """Split *conflicts* into (blocking, overridden) under the encaixe policy."""
    if not is_encaixe:
        return list(conflicts), []
    if scope == "all":
        return [], list(conflicts)
    blocking = [c for c in conflicts if c.type != ConflictType.APPOINTMENT]
    overridden = [c for c in conflicts if c.type == ConflictType.APPOINTMENT]
    return blocking, overridden


def suggest_times(
    day: date,
    duration: int,
    *,
    partner_id: str,
    existing: Sequence[Appointment],
    rules: Sequence[PartnerAvailability],
    blocked: Sequence[PartnerBlockedDate],
    clinic: Optional[ClinicSettings] = None,
    room_id: Optional[str] = None,
    exclude_appointment_id: Optional[str] = None,
    slot_minutes: int = 30,
    limit: int = 5,
) -> list[TimeWindow]:
    """Conflict-free slots of *duration* minutes inside the partner's free windows."""
    suggestions: list[TimeWindow] = []
    if duration <= 0 or limit <= 0:
        return suggestions
    for window in free_windows(rules, blocked, day):
        start = window.start
        while start + duration <= window.end and len(suggestions) < limit:
            candidate = Interval(start, start + duration)
            found = detect_conflicts(
                day,
                format_minutes(candidate.start),
                format_minutes(candidate.end),
                partner_id=partner_id,
                existing=existing,
                rules=rules,
                blocked=blocked,
                clinic=clinic,
                room_id=room_id,
                exclude_appointment_id=exclude_appointment_id,
            )
            if not found:
                suggestions.append(_window(candidate))
            start += slot_minutes
    return suggestions


class ConflictDetector:
    """Loads a partner's day from a ``ScheduleSource`` and runs detection."""

    def __init__(
        self,
        source: ScheduleSource,
        slot_minutes: int = 30,
        suggestion_count: int = 5,
    ) -> None:
        self.source = source
        self.slot_minutes = slot_minutes
        self.suggestion_count = suggestion_count

    async def check_availability(
        self,
        partner_id: str,
        day: date,
        start_time: str,
        end_time: str,
        *,
        clinic: Optional[ClinicSettings] = None,
        room_id: Optional[str] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> AvailabilityResult:
        requested = ensure_range(start_time, end_time)
        partner = await self.source.get_partner(partner_id)
        if partner is None:
            raise NotFoundError(f"Partner {partner_id} not found")

        existing = await self.source.list_day_appointments(day, partner_id, room_id)
        rules = await self.source.list_availability(partner_id)
        blocked = await self.source.list_blocked_dates(partner_id, day)

        conflicts = detect_conflicts(
            day,
            start_time,
            end_time,
            partner_id=partner_id,
            existing=existing,
            rules=rules,
            blocked=blocked,
            clinic=clinic,
            room_id=room_id,
            partner_name=partner.name,
            exclude_appointment_id=exclude_appointment_id,
        )
        result = AvailabilityResult(available=not conflicts, conflicts=conflicts)

        if conflicts and self.suggestion_count:
            result.suggested_times = suggest_times(
                day,
                requested.duration,
                partner_id=partner_id,
                existing=existing,
                rules=rules,
                blocked=blocked,
                clinic=clinic,
                room_id=room_id,
                exclude_appointment_id=exclude_appointment_id,
                slot_minutes=self.slot_minutes,
                limit=self.suggestion_count,
            )
        logger.debug(
            f"Availability check partner={partner_id} {day} {start_time}-{end_time}: "
            f"{len(conflicts)} conflict(s)"
        )
        return result
