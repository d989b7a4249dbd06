"""Pydantic models for the scheduling core."""

import datetime as dt
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from clinic_os.scheduling.timeutil import Interval, normalize_time, to_minutes


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _normalize_optional(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    return normalize_time(value)


class AppointmentStatus(str, Enum):
    """Appointment lifecycle statuses."""

    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class AppointmentType(str, Enum):
    CONSULTATION = "CONSULTATION"
    EXAM = "EXAM"
    PROCEDURE = "PROCEDURE"
    RETURN = "RETURN"


class ValidationResult(CamelModel):
    """Outcome of a policy predicate: valid, or invalid with a readable reason."""

    valid: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, reason: str) -> "ValidationResult":
        return cls(valid=False, reason=reason)


# ---------------------------------------------------------------------------
# Clinic settings
# ---------------------------------------------------------------------------


class DayHours(CamelModel):
    """Opening hours for one weekday (0=Sunday .. 6=Saturday).

    Time fields of a closed day are meaningless and are neither parsed nor
    validated.
    """

    day_of_week: int = Field(ge=0, le=6)
    is_open: bool
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    lunch_break_start: Optional[str] = None
    lunch_break_end: Optional[str] = None

    @model_validator(mode="after")
    def _check_open_day(self) -> "DayHours":
        if not self.is_open:
            return self
        self.open_time = _normalize_optional(self.open_time)
        self.close_time = _normalize_optional(self.close_time)
        self.lunch_break_start = _normalize_optional(self.lunch_break_start)
        self.lunch_break_end = _normalize_optional(self.lunch_break_end)

        if (self.lunch_break_start is None) != (self.lunch_break_end is None):
            raise ValueError("lunchBreakStart and lunchBreakEnd must be set together")

        open_m = to_minutes(self.open_time) if self.open_time else None
        close_m = to_minutes(self.close_time) if self.close_time else None
        if open_m is not None and close_m is not None and open_m >= close_m:
            raise ValueError(f"openTime {self.open_time} must be before closeTime {self.close_time}")

        if self.lunch_break_start and self.lunch_break_end:
            lunch = Interval.parse(self.lunch_break_start, self.lunch_break_end)
            if lunch.start >= lunch.end:
                raise ValueError("lunchBreakStart must be before lunchBreakEnd")
            if open_m is not None and lunch.start < open_m:
                raise ValueError("Lunch break cannot start before the clinic opens")
            if close_m is not None and lunch.end > close_m:
                raise ValueError("Lunch break cannot end after the clinic closes")
        return self

    def lunch_interval(self) -> Optional[Interval]:
        if self.is_open and self.lunch_break_start and self.lunch_break_end:
            return Interval.parse(self.lunch_break_start, self.lunch_break_end)
        return None


def _default_hours() -> list[DayHours]:
    hours = [DayHours(day_of_week=0, is_open=False)]
    for day in range(1, 6):
        hours.append(
            DayHours(
                day_of_week=day,
                is_open=True,
                open_time="08:00",
                close_time="17:00" if day == 5 else "18:00",
                lunch_break_start="12:00",
                lunch_break_end="13:00",
            )
        )
    hours.append(DayHours(day_of_week=6, is_open=False))
    return hours


class ClinicSettings(CamelModel):
    """Clinic-wide booking policy. One per deployment."""

    name: str = "Clínica Essencial"
    hours: list[DayHours] = Field(default_factory=_default_hours)
    allow_weekend_bookings: bool = False
    advance_booking_days: int = Field(default=30, ge=1)
    min_booking_hours: int = Field(default=2, ge=0)
    max_booking_days: int = Field(default=60, ge=1)
    allow_cancelled_movement: bool = False
    allow_completed_movement: bool = False
    updated_at: Optional[datetime] = None

    @field_validator("hours")
    @classmethod
    def _unique_weekdays(cls, hours: list[DayHours]) -> list[DayHours]:
        seen: set[int] = set()
        for entry in hours:
            if entry.day_of_week in seen:
                raise ValueError(f"Duplicate hours for dayOfWeek={entry.day_of_week}")
            seen.add(entry.day_of_week)
        return sorted(hours, key=lambda h: h.day_of_week)

    @classmethod
    def default(cls) -> "ClinicSettings":
        return cls()

    def hours_for(self, day_of_week: int) -> Optional[DayHours]:
        return next((h for h in self.hours if h.day_of_week == day_of_week), None)


class ClinicSettingsPatch(CamelModel):
    """Partial update; unset fields keep their current value."""

    name: Optional[str] = None
    hours: Optional[list[DayHours]] = None
    allow_weekend_bookings: Optional[bool] = None
    advance_booking_days: Optional[int] = Field(default=None, ge=1)
    min_booking_hours: Optional[int] = Field(default=None, ge=0)
    max_booking_days: Optional[int] = Field(default=None, ge=1)
    allow_cancelled_movement: Optional[bool] = None
    allow_completed_movement: Optional[bool] = None


# ---------------------------------------------------------------------------
# Read-only references (patients, partners, rooms, services)
# ---------------------------------------------------------------------------


class Reference(CamelModel):
    """Minimal view of an entity the booking core refers to but does not own."""

    id: str
    name: str
    active: bool = True


class ProductServiceRef(Reference):
    duration_minutes: Optional[int] = None
    available_for_booking: bool = True


# ---------------------------------------------------------------------------
# Partner availability
# ---------------------------------------------------------------------------


class AvailabilityWindow(CamelModel):
    """A weekly working window on one weekday, as submitted by an admin."""

    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    break_start: Optional[str] = None
    break_end: Optional[str] = None
    active: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_time(v)

    @field_validator("break_start", "break_end")
    @classmethod
    def _normalize_break(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_optional(v)

    @model_validator(mode="after")
    def _check_window(self) -> "AvailabilityWindow":
        if to_minutes(self.start_time) >= to_minutes(self.end_time):
            raise ValueError("startTime must be before endTime")
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("breakStart and breakEnd must be set together")
        if self.break_start and self.break_end:
            if to_minutes(self.break_start) >= to_minutes(self.break_end):
                raise ValueError("breakStart must be before breakEnd")
        return self

    def window(self) -> Interval:
        return Interval.parse(self.start_time, self.end_time)

    def break_interval(self) -> Optional[Interval]:
        if self.break_start and self.break_end:
            return Interval.parse(self.break_start, self.break_end)
        return None


class PartnerAvailability(AvailabilityWindow):
    """A stored working window belonging to a partner."""

    id: Optional[str] = None
    partner_id: str


class BlockedPeriod(CamelModel):
    """All or part of one calendar day removed from a partner's schedule."""

    blocked_date: date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    reason: Optional[str] = None
    active: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_optional(v)

    @model_validator(mode="after")
    def _check_window(self) -> "BlockedPeriod":
        if self.start_time and self.end_time:
            if to_minutes(self.start_time) >= to_minutes(self.end_time):
                raise ValueError("startTime must be before endTime")
        return self

    @property
    def is_full_day(self) -> bool:
        return not (self.start_time and self.end_time)

    def interval(self) -> Optional[Interval]:
        if self.is_full_day:
            return None
        return Interval.parse(self.start_time, self.end_time)


class PartnerBlockedDate(BlockedPeriod):
    id: Optional[str] = None
    partner_id: str


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------


class Appointment(CamelModel):
    """A booked appointment."""

    id: str
    patient_id: str
    partner_id: str
    product_service_id: str
    room_id: Optional[str] = None
    date: date
    start_time: str
    end_time: str
    type: AppointmentType = AppointmentType.CONSULTATION
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    is_encaixe: bool = False
    observations: Optional[str] = None
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    pre_check_in_status: Optional[AppointmentStatus] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def interval(self) -> Interval:
        return Interval.parse(self.start_time, self.end_time)

    def summary(self) -> "AppointmentSummary":
        return AppointmentSummary(
            id=self.id,
            patient_id=self.patient_id,
            partner_id=self.partner_id,
            room_id=self.room_id,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            status=self.status,
            is_encaixe=self.is_encaixe,
        )


class AppointmentSummary(CamelModel):
    """The slice of an appointment a conflict message needs to render."""

    id: str
    patient_id: str
    partner_id: str
    room_id: Optional[str] = None
    date: date
    start_time: str
    end_time: str
    status: AppointmentStatus
    is_encaixe: bool = False


class AppointmentDraft(CamelModel):
    """Request to create an appointment.

    ``end_time`` may be omitted, in which case it is derived from the
    service duration.
    """

    patient_id: str
    partner_id: str
    product_service_id: str
    room_id: Optional[str] = None
    date: date
    start_time: str
    end_time: Optional[str] = None
    type: AppointmentType = AppointmentType.CONSULTATION
    is_encaixe: bool = False
    observations: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def _normalize_start(cls, v: str) -> str:
        return normalize_time(v)

    @field_validator("end_time")
    @classmethod
    def _normalize_end(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_optional(v)


class AppointmentPatch(CamelModel):
    """Partial update. Only explicitly provided fields are applied."""

    patient_id: Optional[str] = None
    partner_id: Optional[str] = None
    product_service_id: Optional[str] = None
    room_id: Optional[str] = None
    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    type: Optional[AppointmentType] = None
    status: Optional[AppointmentStatus] = None
    observations: Optional[str] = None
    cancellation_reason: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_optional(v)

    def touched(self) -> set[str]:
        return set(self.model_fields_set)


class RescheduleRequest(CamelModel):
    new_date: date
    new_start_time: str
    new_end_time: str
    new_room_id: Optional[str] = None
    reason: Optional[str] = None

    @field_validator("new_start_time", "new_end_time")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_time(v)


class CancelRequest(CamelModel):
    reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Conflict reporting
# ---------------------------------------------------------------------------


class ConflictType(str, Enum):
    APPOINTMENT = "appointment"
    AVAILABILITY = "availability"
    BLOCKED = "blocked"
    BREAK = "break"


class TimeWindow(CamelModel):
    start_time: str
    end_time: str


class ConflictDetail(CamelModel):
    """One reason a requested slot cannot be booked."""

    type: ConflictType
    message: str
    appointment: Optional[AppointmentSummary] = None
    time_slot: Optional[TimeWindow] = None


class AvailabilityResult(CamelModel):
    available: bool
    conflicts: list[ConflictDetail] = []
    suggested_times: list[TimeWindow] = []


class BookingOutcome(CamelModel):
    """A committed appointment plus any conflicts the encaixe flag overrode."""

    appointment: Appointment
    overridden_conflicts: list[ConflictDetail] = []


# ---------------------------------------------------------------------------
# Partner day view
# ---------------------------------------------------------------------------


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    BLOCKED = "blocked"
    UNAVAILABLE = "unavailable"


class DaySlot(CamelModel):
    start_time: str
    end_time: str
    status: SlotStatus
    appointment_ids: list[str] = []


# ---------------------------------------------------------------------------
# Policy check requests
# ---------------------------------------------------------------------------


class BusinessHoursCheck(CamelModel):
    date: date
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_time(v)


class MovementCheck(CamelModel):
    status: AppointmentStatus
