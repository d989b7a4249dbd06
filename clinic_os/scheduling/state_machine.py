"""Appointment status state machine.

All legal transitions live in ``TRANSITIONS``; anything missing from it is
rejected with a ``StateError``. The table says nothing about the clinic's
movement policy; callers consult it before mutating a CANCELLED or COMPLETED
appointment.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from clinic_os.scheduling.errors import StateError, ValidationError
from clinic_os.scheduling.models import Appointment, AppointmentStatus

S = AppointmentStatus


class Event(str, Enum):
    CONFIRM = "confirm"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    UNDO_CHECK_IN = "undo_check_in"
    UNDO_CHECK_OUT = "undo_check_out"
    CANCEL = "cancel"
    NO_SHOW = "no_show"
    EDIT = "edit"
    DELETE = "delete"


TRANSITIONS: dict[tuple[AppointmentStatus, Event], AppointmentStatus] = {
    (S.SCHEDULED, Event.CONFIRM): S.CONFIRMED,
    (S.SCHEDULED, Event.CHECK_IN): S.IN_PROGRESS,
    (S.CONFIRMED, Event.CHECK_IN): S.IN_PROGRESS,
    (S.IN_PROGRESS, Event.CHECK_OUT): S.COMPLETED,
    # Restores the pre-check-in status; SCHEDULED when it was not recorded.
    (S.IN_PROGRESS, Event.UNDO_CHECK_IN): S.SCHEDULED,
    (S.COMPLETED, Event.UNDO_CHECK_OUT): S.IN_PROGRESS,
    (S.SCHEDULED, Event.CANCEL): S.CANCELLED,
    (S.CONFIRMED, Event.CANCEL): S.CANCELLED,
    (S.SCHEDULED, Event.NO_SHOW): S.NO_SHOW,
    (S.CONFIRMED, Event.NO_SHOW): S.NO_SHOW,
    (S.SCHEDULED, Event.EDIT): S.SCHEDULED,
    (S.CONFIRMED, Event.EDIT): S.CONFIRMED,
    (S.CANCELLED, Event.EDIT): S.CANCELLED,
    (S.COMPLETED, Event.EDIT): S.COMPLETED,
    (S.SCHEDULED, Event.DELETE): S.SCHEDULED,
    (S.CANCELLED, Event.DELETE): S.CANCELLED,
    (S.COMPLETED, Event.DELETE): S.COMPLETED,
}

# Statuses whose mutations must pass validate_appointment_movement first.
MOVEMENT_GATED = frozenset({S.CANCELLED, S.COMPLETED})

# Events that change status; edit/delete are not reachable through a status patch.
_STATUS_EVENTS = [
    Event.CONFIRM,
    Event.CHECK_IN,
    Event.CHECK_OUT,
    Event.UNDO_CHECK_IN,
    Event.UNDO_CHECK_OUT,
    Event.CANCEL,
    Event.NO_SHOW,
]


def allowed_events(status: AppointmentStatus) -> set[Event]:
    """Events that are legal from *status*."""
    return {event for (source, event) in TRANSITIONS if source == status}


def ensure_allowed(status: AppointmentStatus, event: Event) -> AppointmentStatus:
    """Return the target status for ``(status, event)`` or raise ``StateError``."""
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise StateError(status, event.value) from None


def target_status(appointment: Appointment, event: Event) -> AppointmentStatus:
    """Status *appointment* would end in after *event*."""
    target = ensure_allowed(appointment.status, event)
    if event == Event.UNDO_CHECK_IN and appointment.pre_check_in_status is not None:
        return appointment.pre_check_in_status
    return target


def event_for_status(appointment: Appointment, status: AppointmentStatus) -> Optional[Event]:
    """Map a requested status change onto the event that produces it.

    Returns ``None`` when *status* is already current.
    """
    if status == appointment.status:
        return None
    for event in _STATUS_EVENTS:
        if (appointment.status, event) in TRANSITIONS and target_status(appointment, event) == status:
            return event
    raise StateError(
        appointment.status,
        f"set_status_{status.value.lower()}",
        f"Cannot change status from {appointment.status.value} to {status.value}",
    )


def apply_event(
    appointment: Appointment,
    event: Event,
    now: datetime,
    reason: Optional[str] = None,
) -> Appointment:
    """Return a copy of *appointment* with *event* applied and its timestamps updated."""
    target = target_status(appointment, event)
    update: dict[str, Any] = {"status": target}

    if event == Event.CHECK_IN:
        update["check_in"] = now
        update["pre_check_in_status"] = appointment.status
    elif event == Event.CHECK_OUT:
        update["check_out"] = now
    elif event == Event.UNDO_CHECK_IN:
        if appointment.check_in is None:
            raise StateError(appointment.status, event.value, "This appointment has no check-in to undo")
        update["check_in"] = None
        update["pre_check_in_status"] = None
    elif event == Event.UNDO_CHECK_OUT:
        if appointment.check_out is None:
            raise StateError(appointment.status, event.value, "This appointment has no check-out to undo")
        update["check_out"] = None
    elif event == Event.CANCEL:
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")
        update["cancellation_reason"] = reason.strip()

    return appointment.model_copy(update=update)
