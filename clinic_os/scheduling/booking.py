"""Booking orchestrator: validate, detect conflicts, then persist.

Every write runs read-existing -> validate -> write -> commit while holding
the lock of each partner involved, so two overlapping requests for the same
partner cannot both observe an empty slot.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from typing import AsyncIterator, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_os.core.repository import (
    AppointmentRepository,
    AuditRepository,
    ClinicSettingsRepository,
    PartnerRepository,
    ReferenceRepository,
)
from clinic_os.scheduling.business_hours import validate_appointment_movement, validate_booking_advance
from clinic_os.scheduling.conflicts import ConflictDetector, OverrideScope, ensure_range, split_overridable
from clinic_os.scheduling.errors import (
    ConflictError,
    NotFoundError,
    PolicyViolation,
    ValidationError,
)
from clinic_os.scheduling.models import (
    Appointment,
    AppointmentDraft,
    AppointmentPatch,
    AppointmentStatus,
    AvailabilityResult,
    BookingOutcome,
    ClinicSettings,
    ConflictDetail,
    Reference,
    RescheduleRequest,
)
from clinic_os.scheduling.state_machine import (
    MOVEMENT_GATED,
    Event,
    allowed_events,
    apply_event,
    ensure_allowed,
    event_for_status,
)
from clinic_os.scheduling.timeutil import add_minutes, to_minutes

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Patch fields that move the appointment to a different slot.
SLOT_FIELDS = frozenset({"date", "start_time", "end_time", "partner_id", "room_id"})
# Patch fields that count as an edit and require the edit event to be legal.
EDIT_FIELDS = SLOT_FIELDS | {"patient_id", "product_service_id", "type"}


class PartnerLocks:
    """Per-partner ``asyncio.Lock`` registry shared by all requests in a process.

    Rooms are locked through the same registry under ``room:<id>`` keys.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, partner_id: str) -> asyncio.Lock:
        lock = self._locks.get(partner_id)
        if lock is None:
            lock = self._locks[partner_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, *partner_ids: str) -> AsyncIterator[None]:
        """Acquire the locks for *partner_ids* in a stable order."""
        acquired: list[asyncio.Lock] = []
        try:
            for partner_id in sorted(set(partner_ids)):
                lock = self.get(partner_id)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


def room_keys(*room_ids: Optional[str]) -> list[str]:
    """Lock keys for rooms; they share the registry with partner ids."""
    return [f"room:{r}" for r in room_ids if r]


def _at(day: date, start_time: str) -> datetime:
    minutes = to_minutes(start_time)
    return datetime.combine(day, time(minutes // 60, minutes % 60))


def _require(value: Optional[str], field: str) -> None:
    if not value or not value.strip():
        raise ValidationError(f"{field} is required")


class BookingService:
    """Creates, moves and transitions appointments for one database session."""

    def __init__(
        self,
        session: AsyncSession,
        locks: PartnerLocks,
        *,
        clock: Optional[Clock] = None,
        override_scope: OverrideScope = "appointment",
        slot_minutes: int = 30,
        suggestion_count: int = 5,
    ) -> None:
        self.session = session
        self.locks = locks
        self.clock = clock or datetime.now
        self.override_scope = override_scope
        self.appointments = AppointmentRepository(session)
        self.partners = PartnerRepository(session)
        self.references = ReferenceRepository(session)
        self.clinic_settings = ClinicSettingsRepository(session)
        self.audit = AuditRepository(session)
        self.detector = ConflictDetector(self.partners, slot_minutes, suggestion_count)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: str, fresh: bool = False) -> Appointment:
        appointment = await self.appointments.get(appointment_id, fresh)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    @asynccontextmanager
    async def _locked(self, appointment_id: str, *extra_keys: str) -> AsyncIterator[Appointment]:
        """Hold the partner and room locks of an appointment and yield a fresh read of it.

        A write that moved the appointment to a partner or room outside the held
        keys while we waited forces a retry with the new keys.
        """
        current = await self.get_appointment(appointment_id)
        while True:
            keys = {current.partner_id, *room_keys(current.room_id), *extra_keys}
            async with self.locks.hold(*keys):
                fresh = await self.get_appointment(appointment_id, fresh=True)
                if {fresh.partner_id, *room_keys(fresh.room_id)} <= keys:
                    yield fresh
                    return
            current = fresh

    async def list_appointments(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        partner_id: Optional[str] = None,
        patient_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
    ) -> list[Appointment]:
        if date_from and date_to and date_to < date_from:
            raise ValidationError("date_to must not be before date_from")
        return await self.appointments.list(date_from, date_to, partner_id, patient_id, status)

    async def allowed_events(self, appointment_id: str) -> list[str]:
        appointment = await self.get_appointment(appointment_id)
        return sorted(e.value for e in allowed_events(appointment.status))

    async def check_availability(
        self,
        partner_id: str,
        day: date,
        start_time: str,
        end_time: str,
        *,
        room_id: Optional[str] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> AvailabilityResult:
        clinic = await self.clinic_settings.load_or_default()
        return await self.detector.check_availability(
            partner_id,
            day,
            start_time,
            end_time,
            clinic=clinic,
            room_id=room_id,
            exclude_appointment_id=exclude_appointment_id,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_appointment(self, draft: AppointmentDraft) -> BookingOutcome:
        """Book *draft* with status SCHEDULED, or raise without writing anything."""
        _require(draft.patient_id, "patientId")
        _require(draft.partner_id, "partnerId")
        _require(draft.product_service_id, "productServiceId")
        if draft.end_time is not None:
            ensure_range(draft.start_time, draft.end_time)

        partner, end_time = await self._check_references(
            draft.patient_id,
            draft.partner_id,
            draft.product_service_id,
            draft.room_id,
            start_time=draft.start_time,
            end_time=draft.end_time,
        )

        clinic = await self.clinic_settings.load_or_default()
        self._check_advance(clinic, draft.date, draft.start_time)

        async with self.locks.hold(draft.partner_id, *room_keys(draft.room_id)):
            overridden = await self._check_slot(
                clinic,
                partner,
                draft.date,
                draft.start_time,
                end_time,
                room_id=draft.room_id,
                is_encaixe=draft.is_encaixe,
            )
            appointment = await self.appointments.create(
                patient_id=draft.patient_id,
                partner_id=draft.partner_id,
                product_service_id=draft.product_service_id,
                room_id=draft.room_id,
                date=draft.date,
                start_time=draft.start_time,
                end_time=end_time,
                type=draft.type.value,
                status=AppointmentStatus.SCHEDULED.value,
                is_encaixe=draft.is_encaixe,
                observations=draft.observations,
            )
            await self.audit.log_action(
                "create",
                "appointment",
                appointment.id,
                details={
                    "date": appointment.date.isoformat(),
                    "startTime": appointment.start_time,
                    "endTime": appointment.end_time,
                    "isEncaixe": appointment.is_encaixe,
                    "overriddenConflicts": len(overridden),
                },
            )
            await self.session.commit()

        if overridden:
            logger.info(
                f"Encaixe booking {appointment.id} overrode {len(overridden)} conflict(s) "
                f"for partner {appointment.partner_id}"
            )
        logger.info(
            f"Created appointment {appointment.id} partner={appointment.partner_id} "
            f"{appointment.date} {appointment.start_time}-{appointment.end_time}"
        )
        return BookingOutcome(appointment=appointment, overridden_conflicts=overridden)

    # ------------------------------------------------------------------
    # Update / reschedule / delete
    # ------------------------------------------------------------------

    async def update_appointment(self, appointment_id: str, patch: AppointmentPatch) -> BookingOutcome:
        touched = patch.touched()
        updates = {
            field: getattr(patch, field)
            for field in touched
            if field not in ("status", "cancellation_reason")
        }
        for field in ("patient_id", "partner_id", "product_service_id", "date", "start_time", "end_time", "type"):
            if field in updates and updates[field] is None:
                raise ValidationError(f"{field} cannot be cleared")

        target_keys: list[str] = []
        if "partner_id" in updates:
            target_keys.append(updates["partner_id"])
        if "room_id" in updates:
            target_keys.extend(room_keys(updates["room_id"]))

        moved = bool(touched & SLOT_FIELDS)
        overridden: list[ConflictDetail] = []
        async with self._locked(appointment_id, *target_keys) as current:
            clinic = await self.clinic_settings.load_or_default()
            self._check_movement(clinic, current.status)
            if touched & EDIT_FIELDS:
                ensure_allowed(current.status, Event.EDIT)
            candidate = current.model_copy(update=updates)

            if touched & EDIT_FIELDS:
                ensure_range(candidate.start_time, candidate.end_time)
                partner, _ = await self._check_references(
                    candidate.patient_id,
                    candidate.partner_id,
                    candidate.product_service_id,
                    candidate.room_id,
                    start_time=candidate.start_time,
                    end_time=candidate.end_time,
                )
                if moved:
                    self._check_advance(clinic, candidate.date, candidate.start_time)
                    overridden = await self._check_slot(
                        clinic,
                        partner,
                        candidate.date,
                        candidate.start_time,
                        candidate.end_time,
                        room_id=candidate.room_id,
                        is_encaixe=candidate.is_encaixe,
                        exclude_appointment_id=candidate.id,
                    )

            event: Optional[Event] = None
            if "status" in touched and patch.status is not None:
                event = event_for_status(candidate, patch.status)
                if event is not None:
                    candidate = apply_event(candidate, event, self.clock(), patch.cancellation_reason)
            elif "cancellation_reason" in touched and candidate.status == AppointmentStatus.CANCELLED:
                candidate = candidate.model_copy(update={"cancellation_reason": patch.cancellation_reason})

            saved = await self.appointments.save(candidate)
            await self.audit.log_action(
                event.value if event else "update",
                "appointment",
                saved.id,
                details={"fields": sorted(touched), "from": current.status.value, "to": saved.status.value},
            )
            await self.session.commit()

        logger.info(f"Updated appointment {saved.id} fields={sorted(touched)} status={saved.status.value}")
        return BookingOutcome(appointment=saved, overridden_conflicts=overridden)

    async def reschedule_appointment(self, appointment_id: str, request: RescheduleRequest) -> BookingOutcome:
        """Move an appointment to a new date/time and note the reason in observations."""
        current = await self.get_appointment(appointment_id)
        observations = current.observations
        if request.reason:
            note = f"Reagendado: {request.reason}"
            observations = f"{observations}\n\n{note}" if observations else note

        fields = {
            "date": request.new_date,
            "start_time": request.new_start_time,
            "end_time": request.new_end_time,
            "observations": observations,
        }
        if request.new_room_id is not None:
            fields["room_id"] = request.new_room_id
        return await self.update_appointment(appointment_id, AppointmentPatch(**fields))

    async def delete_appointment(self, appointment_id: str) -> None:
        async with self._locked(appointment_id) as current:
            clinic = await self.clinic_settings.load_or_default()
            self._check_movement(clinic, current.status)
            ensure_allowed(current.status, Event.DELETE)

            await self.appointments.delete(appointment_id)
            await self.audit.log_action(
                "delete",
                "appointment",
                appointment_id,
                details={"status": current.status.value, "date": current.date.isoformat()},
            )
            await self.session.commit()
        logger.info(f"Deleted appointment {appointment_id} (was {current.status.value})")

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def transition(self, appointment_id: str, event: Event, reason: Optional[str] = None) -> Appointment:
        """Apply *event*; undoing a check-out is exempt from the movement policy."""
        async with self._locked(appointment_id) as current:
            if event != Event.UNDO_CHECK_OUT:
                clinic = await self.clinic_settings.load_or_default()
                self._check_movement(clinic, current.status)
            updated = apply_event(current, event, self.clock(), reason)
            saved = await self.appointments.save(updated)
            await self.audit.log_action(
                event.value,
                "appointment",
                saved.id,
                details={"from": current.status.value, "to": saved.status.value, "reason": reason},
            )
            await self.session.commit()
        logger.info(f"Appointment {saved.id}: {event.value} {current.status.value} -> {saved.status.value}")
        return saved

    async def confirm(self, appointment_id: str) -> Appointment:
        return await self.transition(appointment_id, Event.CONFIRM)

    async def check_in(self, appointment_id: str) -> Appointment:
        return await self.transition(appointment_id, Event.CHECK_IN)

    async def check_out(self, appointment_id: str) -> Appointment:
        return await self.transition(appointment_id, Event.CHECK_OUT)

    async def undo_check_in(self, appointment_id: str) -> Appointment:
        return await self.transition(appointment_id, Event.UNDO_CHECK_IN)

    async def undo_check_out(self, appointment_id: str) -> Appointment:
        return await self.transition(appointment_id, Event.UNDO_CHECK_OUT)

    async def no_show(self, appointment_id: str) -> Appointment:
        return await self.transition(appointment_id, Event.NO_SHOW)

    async def cancel(self, appointment_id: str, reason: Optional[str]) -> Appointment:
        return await self.transition(appointment_id, Event.CANCEL, reason)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _check_references(
        self,
        patient_id: str,
        partner_id: str,
        service_id: str,
        room_id: Optional[str],
        *,
        start_time: str,
        end_time: Optional[str],
    ) -> tuple[Reference, str]:
        """Verify referenced entities and return the partner plus the effective end time."""
        patient = await self.references.get_patient(patient_id)
        if patient is None:
            raise NotFoundError(f"Patient {patient_id} not found")
        if not patient.active:
            raise ValidationError(f"Patient {patient.name} is inactive")

        partner = await self.references.get_partner(partner_id)
        if partner is None:
            raise NotFoundError(f"Partner {partner_id} not found")
        if not partner.active:
            raise ValidationError(f"Partner {partner.name} is inactive")

        service = await self.references.get_service(service_id)
        if service is None:
            raise NotFoundError(f"Product/service {service_id} not found")
        if not service.active:
            raise ValidationError(f"{service.name} is inactive")
        if not service.available_for_booking:
            raise ValidationError(f"{service.name} is not available for booking")

        if room_id:
            room = await self.references.get_room(room_id)
            if room is None:
                raise NotFoundError(f"Room {room_id} not found")
            if not room.active:
                raise ValidationError(f"Room {room.name} is inactive")

        if end_time is None:
            if not service.duration_minutes:
                raise ValidationError("endTime is required when the service has no duration")
            try:
                end_time = add_minutes(start_time, service.duration_minutes)
            except ValueError as e:
                raise ValidationError(f"Appointment would run past midnight: {e}") from e
            ensure_range(start_time, end_time)
        return partner, end_time

    def _check_advance(self, clinic: ClinicSettings, day: date, start_time: str) -> None:
        result = validate_booking_advance(clinic, _at(day, start_time), self.clock())
        if not result.valid:
            raise PolicyViolation(result.reason or "Booking advance rules not met")

    def _check_movement(self, clinic: ClinicSettings, status: AppointmentStatus) -> None:
        if status not in MOVEMENT_GATED:
            return
        result = validate_appointment_movement(clinic, status)
        if not result.valid:
            raise PolicyViolation(result.reason or "Changes to this appointment are not allowed")

    async def _check_slot(
        self,
        clinic: ClinicSettings,
        partner: Reference,
        day: date,
        start_time: str,
        end_time: str,
        *,
        room_id: Optional[str],
        is_encaixe: bool,
        exclude_appointment_id: Optional[str] = None,
    ) -> list[ConflictDetail]:
        """Raise ``ConflictError`` unless the encaixe policy clears every conflict."""
        result = await self.detector.check_availability(
            partner.id,
            day,
            start_time,
            end_time,
            clinic=clinic,
            room_id=room_id,
            exclude_appointment_id=exclude_appointment_id,
        )
        blocking, overridden = split_overridable(result.conflicts, is_encaixe, self.override_scope)
        if blocking:
            logger.warning(
                f"Rejected booking for partner {partner.id} on {day} {start_time}-{end_time}: "
                f"{len(result.conflicts)} conflict(s)"
            )
            raise ConflictError(result.conflicts, suggested_times=result.suggested_times)
        return overridden
