"""Clinic business-hours and booking-policy validation.

Pure functions over a ``ClinicSettings`` value. Each validator reports only
the first rule a request breaks.
"""

import logging
from datetime import date, datetime
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from clinic_os.scheduling.errors import ValidationError
from clinic_os.scheduling.models import AppointmentStatus, ClinicSettings, ClinicSettingsPatch, ValidationResult
from clinic_os.scheduling.timeutil import DAY_NAMES, Interval, day_of_week, is_weekend, to_minutes

logger = logging.getLogger(__name__)


def settings_or_default(raw: Optional[dict[str, Any]]) -> ClinicSettings:
    """Parse persisted settings, falling back to defaults if they are corrupt."""
    if raw is None:
        return ClinicSettings.default()
    try:
        return ClinicSettings.model_validate(raw)
    except PydanticValidationError as e:
        logger.warning(f"Stored clinic settings are invalid, using defaults: {e}")
        return ClinicSettings.default()


def merge_settings(current: ClinicSettings, patch: ClinicSettingsPatch) -> ClinicSettings:
    """Apply the fields set on *patch* and revalidate the result as a whole."""
    data = current.model_dump(exclude={"updated_at"})
    data.update(patch.model_dump(exclude_unset=True))
    try:
        return ClinicSettings.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid clinic settings: {e}") from e


def validate_business_hours(
    settings: ClinicSettings,
    day: date,
    start_time: str,
    end_time: str,
) -> ValidationResult:
    """Check that ``[start_time, end_time)`` on *day* falls inside clinic hours."""
    weekday = day_of_week(day)
    hours = settings.hours_for(weekday)
    if hours is None or not hours.is_open:
        return ValidationResult.fail(f"Clinic is closed on {DAY_NAMES[weekday]}")

    requested = Interval.parse(start_time, end_time)

    if hours.open_time and requested.start < to_minutes(hours.open_time):
        return ValidationResult.fail(f"Clinic opens at {hours.open_time}")

    if hours.close_time and requested.end > to_minutes(hours.close_time):
        return ValidationResult.fail(f"Clinic closes at {hours.close_time}")

    lunch = hours.lunch_interval()
    if lunch is not None and requested.overlaps(lunch):
        return ValidationResult.fail(
            f"Lunch break: {hours.lunch_break_start} to {hours.lunch_break_end}"
        )

    return ValidationResult.ok()


def validate_booking_advance(
    settings: ClinicSettings,
    appointment_at: datetime,
    now: datetime,
) -> ValidationResult:
    """Check minimum/maximum lead time and the weekend policy."""
    diff_hours = (appointment_at - now).total_seconds() / 3600

    if diff_hours < settings.min_booking_hours:
        return ValidationResult.fail(
            f"Appointments must be booked at least {settings.min_booking_hours} hours in advance"
        )

    if diff_hours / 24 > settings.max_booking_days:
        return ValidationResult.fail(
            f"Appointments cannot be booked more than {settings.max_booking_days} days in advance"
        )

    if not settings.allow_weekend_bookings and is_weekend(appointment_at.date()):
        return ValidationResult.fail("Weekend bookings are not allowed")

    return ValidationResult.ok()


def validate_appointment_movement(
    settings: ClinicSettings,
    status: AppointmentStatus,
) -> ValidationResult:
    """Whether an appointment in *status* may still be edited, moved or deleted."""
    if status == AppointmentStatus.CANCELLED and not settings.allow_cancelled_movement:
        return ValidationResult.fail("Changes to cancelled appointments are not allowed")
    if status == AppointmentStatus.COMPLETED and not settings.allow_completed_movement:
        return ValidationResult.fail("Changes to completed appointments are not allowed")
    return ValidationResult.ok()
