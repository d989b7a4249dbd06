"""Scheduling error taxonomy.

Domain code raises these; the API layer maps each to an HTTP status. None of
them are retried automatically.
"""

from typing import Any, Optional

from clinic_os.scheduling.models import AppointmentStatus, ConflictDetail, TimeWindow


class SchedulingError(Exception):
    """Base class for errors the booking core reports to callers."""

    code: str = "scheduling_error"
    status_code: int = 400

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.details}


class ValidationError(SchedulingError):
    """Structurally invalid request: malformed times, end <= start, missing ids."""

    code = "validation_error"
    status_code = 422


class PolicyViolation(SchedulingError):
    """Clinic policy forbids the request (lead time, weekend, movement)."""

    code = "policy_violation"
    status_code = 422


class ConflictError(SchedulingError):
    """The requested slot collides with bookings, availability or blocks."""

    code = "conflict"
    status_code = 409

    def __init__(
        self,
        conflicts: list[ConflictDetail],
        message: Optional[str] = None,
        suggested_times: Optional[list[TimeWindow]] = None,
    ) -> None:
        self.conflicts = conflicts
        self.suggested_times = suggested_times or []
        super().__init__(
            message or "; ".join(c.message for c in conflicts) or "Scheduling conflict",
            details={
                "conflicts": [c.model_dump(mode="json", by_alias=True) for c in conflicts],
                "suggestedTimes": [t.model_dump(by_alias=True) for t in self.suggested_times],
            },
        )


class StateError(SchedulingError):
    """Illegal status transition for the appointment's current status."""

    code = "illegal_transition"
    status_code = 409

    def __init__(self, status: AppointmentStatus, event: str, message: Optional[str] = None) -> None:
        self.status = status
        self.event = event
        super().__init__(
            message or f"Cannot {event.replace('_', ' ')} an appointment in status {status.value}",
            details={"status": status.value, "event": event},
        )


class NotFoundError(SchedulingError):
    code = "not_found"
    status_code = 404
