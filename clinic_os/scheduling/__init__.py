"""Scheduling core: business hours, availability, conflicts and status rules.

``clinic_os.scheduling.booking`` depends on the persistence layer and is
imported directly rather than re-exported here.
"""

from clinic_os.scheduling.business_hours import (
    validate_appointment_movement,
    validate_booking_advance,
    validate_business_hours,
)
from clinic_os.scheduling.conflicts import ConflictDetector, detect_conflicts, split_overridable
from clinic_os.scheduling.errors import (
    ConflictError,
    NotFoundError,
    PolicyViolation,
    SchedulingError,
    StateError,
    ValidationError,
)
from clinic_os.scheduling.models import (
    Appointment,
    AppointmentStatus,
    ClinicSettings,
    ConflictDetail,
    ConflictType,
)
from clinic_os.scheduling.state_machine import Event, allowed_events, apply_event

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "ClinicSettings",
    "ConflictDetail",
    "ConflictDetector",
    "ConflictError",
    "ConflictType",
    "Event",
    "NotFoundError",
    "PolicyViolation",
    "SchedulingError",
    "StateError",
    "ValidationError",
    "allowed_events",
    "apply_event",
    "detect_conflicts",
    "split_overridable",
    "validate_appointment_movement",
    "validate_booking_advance",
    "validate_business_hours",
]
