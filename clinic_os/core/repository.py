"""Async repositories mapping ORM rows to scheduling domain models."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_os.core.models import (
    AppointmentRow,
    AuditLog,
    ClinicSettingsRow,
    Partner,
    PartnerAvailabilityRow,
    PartnerBlockedDateRow,
    Patient,
    ProductService,
    Room,
)
from clinic_os.scheduling.business_hours import settings_or_default
from clinic_os.scheduling.models import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    AvailabilityWindow,
    BlockedPeriod,
    ClinicSettings,
    PartnerAvailability,
    PartnerBlockedDate,
    ProductServiceRef,
    Reference,
)

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = "default"


def appointment_from_row(row: AppointmentRow) -> Appointment:
    return Appointment(
        id=row.id,
        patient_id=row.patient_id,
        partner_id=row.partner_id,
        product_service_id=row.product_service_id,
        room_id=row.room_id,
        date=row.date,
        start_time=row.start_time,
        end_time=row.end_time,
        type=AppointmentType(row.type),
        status=AppointmentStatus(row.status),
        is_encaixe=row.is_encaixe,
        observations=row.observations,
        check_in=row.check_in,
        check_out=row.check_out,
        pre_check_in_status=AppointmentStatus(row.pre_check_in_status) if row.pre_check_in_status else None,
        cancellation_reason=row.cancellation_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs: Any) -> Appointment:
        row = AppointmentRow(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return appointment_from_row(row)

    async def get_row(self, appointment_id: str, fresh: bool = False) -> Optional[AppointmentRow]:
        return await self.session.get(AppointmentRow, appointment_id, populate_existing=fresh)

    async def get(self, appointment_id: str, fresh: bool = False) -> Optional[Appointment]:
        """Load an appointment; *fresh* re-reads a row this session already holds."""
        row = await self.get_row(appointment_id, fresh)
        return appointment_from_row(row) if row else None

    async def list(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        partner_id: Optional[str] = None,
        patient_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
        limit: int = 500,
    ) -> list[Appointment]:
        stmt = select(AppointmentRow)
        if date_from is not None:
            stmt = stmt.where(AppointmentRow.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(AppointmentRow.date <= date_to)
        if partner_id:
            stmt = stmt.where(AppointmentRow.partner_id == partner_id)
        if patient_id:
            stmt = stmt.where(AppointmentRow.patient_id == patient_id)
        if status is not None:
            stmt = stmt.where(AppointmentRow.status == status.value)
        stmt = stmt.order_by(AppointmentRow.date, AppointmentRow.start_time).limit(limit)
        result = await self.session.execute(stmt)
        return [appointment_from_row(r) for r in result.scalars().all()]

    async def list_day(self, day: date, partner_id: str, room_id: Optional[str] = None) -> list[Appointment]:
        """Non-cancelled appointments on *day* for the partner or, if given, the room."""
        owner = AppointmentRow.partner_id == partner_id
        if room_id:
            owner = or_(owner, AppointmentRow.room_id == room_id)
        stmt = (
            select(AppointmentRow)
            .where(
                AppointmentRow.date == day,
                AppointmentRow.status != AppointmentStatus.CANCELLED.value,
                owner,
            )
            .order_by(AppointmentRow.start_time)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [appointment_from_row(r) for r in result.scalars().all()]

    async def save(self, appointment: Appointment) -> Appointment:
        """Write every mutable field of *appointment* back to its row."""
        row = await self.get_row(appointment.id)
        if row is None:
            raise LookupError(f"Appointment {appointment.id} disappeared during update")
        row.patient_id = appointment.patient_id
        row.partner_id = appointment.partner_id
        row.product_service_id = appointment.product_service_id
        row.room_id = appointment.room_id
        row.date = appointment.date
        row.start_time = appointment.start_time
        row.end_time = appointment.end_time
        row.type = appointment.type.value
        row.status = appointment.status.value
        row.observations = appointment.observations
        row.check_in = appointment.check_in
        row.check_out = appointment.check_out
        row.pre_check_in_status = appointment.pre_check_in_status.value if appointment.pre_check_in_status else None
        row.cancellation_reason = appointment.cancellation_reason
        row.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return appointment_from_row(row)

    async def delete(self, appointment_id: str) -> bool:
        row = await self.get_row(appointment_id)
        if row is None:
            return False
        await self.session.delete(row)
        await self.session.flush()
        return True


class PartnerRepository:
    """Partner schedule data: weekly availability and blocked dates.

    Also serves as the ``ScheduleSource`` for the conflict detector.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.appointments = AppointmentRepository(session)

    async def create(self, **kwargs: Any) -> Partner:
        partner = Partner(**kwargs)
        self.session.add(partner)
        await self.session.flush()
        return partner

    async def get_partner(self, partner_id: str) -> Optional[Reference]:
        partner = await self.session.get(Partner, partner_id)
        if partner is None:
            return None
        return Reference(id=partner.id, name=partner.name, active=partner.active)

    async def list_day_appointments(
        self, day: date, partner_id: str, room_id: Optional[str] = None
    ) -> list[Appointment]:
        return await self.appointments.list_day(day, partner_id, room_id)

    async def list_availability(self, partner_id: str) -> list[PartnerAvailability]:
        stmt = (
            select(PartnerAvailabilityRow)
            .where(PartnerAvailabilityRow.partner_id == partner_id)
            .order_by(PartnerAvailabilityRow.day_of_week, PartnerAvailabilityRow.start_time)
        )
        result = await self.session.execute(stmt)
        return [
            PartnerAvailability(
                id=r.id,
                partner_id=r.partner_id,
                day_of_week=r.day_of_week,
                start_time=r.start_time,
                end_time=r.end_time,
                break_start=r.break_start,
                break_end=r.break_end,
                active=r.active,
            )
            for r in result.scalars().all()
        ]

    async def replace_availability(
        self, partner_id: str, rules: Sequence[AvailabilityWindow]
    ) -> list[PartnerAvailability]:
        """Swap the partner's weekly rules for *rules* in one flush."""
        await self.session.execute(
            delete(PartnerAvailabilityRow).where(PartnerAvailabilityRow.partner_id == partner_id)
        )
        for rule in rules:
            self.session.add(
                PartnerAvailabilityRow(
                    partner_id=partner_id,
                    day_of_week=rule.day_of_week,
                    start_time=rule.start_time,
                    end_time=rule.end_time,
                    break_start=rule.break_start,
                    break_end=rule.break_end,
                    active=rule.active,
                )
            )
        await self.session.flush()
        return await self.list_availability(partner_id)

    async def list_blocked_dates(
        self, partner_id: str, day: Optional[date] = None
    ) -> list[PartnerBlockedDate]:
        stmt = select(PartnerBlockedDateRow).where(PartnerBlockedDateRow.partner_id == partner_id)
        if day is not None:
            stmt = stmt.where(PartnerBlockedDateRow.blocked_date == day)
        stmt = stmt.order_by(PartnerBlockedDateRow.blocked_date, PartnerBlockedDateRow.start_time)
        result = await self.session.execute(stmt)
        return [_blocked_from_row(r) for r in result.scalars().all()]

    async def add_blocked_date(self, partner_id: str, block: BlockedPeriod) -> PartnerBlockedDate:
        row = PartnerBlockedDateRow(
            partner_id=partner_id,
            blocked_date=block.blocked_date,
            start_time=block.start_time,
            end_time=block.end_time,
            reason=block.reason,
            active=block.active,
        )
        self.session.add(row)
        await self.session.flush()
        return _blocked_from_row(row)

    async def remove_blocked_date(self, partner_id: str, blocked_id: str) -> bool:
        row = await self.session.get(PartnerBlockedDateRow, blocked_id)
        if row is None or row.partner_id != partner_id:
            return False
        await self.session.delete(row)
        await self.session.flush()
        return True


def _blocked_from_row(row: PartnerBlockedDateRow) -> PartnerBlockedDate:
    return PartnerBlockedDate(
        id=row.id,
        partner_id=row.partner_id,
        blocked_date=row.blocked_date,
        start_time=row.start_time,
        end_time=row.end_time,
        reason=row.reason,
        active=row.active,
    )


class ReferenceRepository:
    """Lookups for entities appointments point at but do not own."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_patient(self, patient_id: str) -> Optional[Reference]:
        row = await self.session.get(Patient, patient_id)
        return Reference(id=row.id, name=row.name, active=row.active) if row else None

    async def get_partner(self, partner_id: str) -> Optional[Reference]:
        row = await self.session.get(Partner, partner_id)
        return Reference(id=row.id, name=row.name, active=row.active) if row else None

    async def get_service(self, service_id: str) -> Optional[ProductServiceRef]:
        row = await self.session.get(ProductService, service_id)
        if row is None:
            return None
        return ProductServiceRef(
            id=row.id,
            name=row.name,
            active=row.active,
            duration_minutes=row.duration_minutes,
            available_for_booking=row.available_for_booking,
        )

    async def get_room(self, room_id: str) -> Optional[Reference]:
        row = await self.session.get(Room, room_id)
        return Reference(id=row.id, name=row.name, active=row.active) if row else None


class ClinicSettingsRepository:
    """Load-or-default access to the single clinic settings row."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_or_default(self) -> ClinicSettings:
        """Return the stored settings, creating the default row on first read."""
        row = await self.session.get(ClinicSettingsRow, SETTINGS_ROW_ID)
        if row is None:
            settings = ClinicSettings.default()
            row = self._write(ClinicSettingsRow(id=SETTINGS_ROW_ID), settings)
            self.session.add(row)
            await self.session.flush()
            logger.info("Created default clinic settings")
            return settings.model_copy(update={"updated_at": row.updated_at})

        raw = {
            "name": row.name,
            "hours": row.hours,
            "allow_weekend_bookings": row.allow_weekend_bookings,
            "advance_booking_days": row.advance_booking_days,
            "min_booking_hours": row.min_booking_hours,
            "max_booking_days": row.max_booking_days,
            "allow_cancelled_movement": row.allow_cancelled_movement,
            "allow_completed_movement": row.allow_completed_movement,
            "updated_at": row.updated_at,
        }
        return settings_or_default(raw)

    async def replace(self, settings: ClinicSettings) -> ClinicSettings:
        row = await self.session.get(ClinicSettingsRow, SETTINGS_ROW_ID)
        if row is None:
            row = ClinicSettingsRow(id=SETTINGS_ROW_ID)
            self.session.add(row)
        self._write(row, settings)
        row.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        logger.info(f"Clinic settings replaced ({settings.name})")
        return settings.model_copy(update={"updated_at": row.updated_at})

    @staticmethod
    def _write(row: ClinicSettingsRow, settings: ClinicSettings) -> ClinicSettingsRow:
        row.name = settings.name
        row.hours = [h.model_dump(mode="json", by_alias=True) for h in settings.hours]
        row.allow_weekend_bookings = settings.allow_weekend_bookings
        row.advance_booking_days = settings.advance_booking_days
        row.min_booking_hours = settings.min_booking_hours
        row.max_booking_days = settings.max_booking_days
        row.allow_cancelled_movement = settings.allow_cancelled_movement
        row.allow_completed_movement = settings.allow_completed_movement
        return row


class AuditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_action(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            details=details,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_by_resource(self, resource_type: str, resource_id: str, limit: int = 50) -> Sequence[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.resource_type == resource_type, AuditLog.resource_id == resource_id)
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
