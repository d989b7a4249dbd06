"""SQLAlchemy 2.0 async models for the clinic scheduling schema."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.types import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class ClinicSettingsRow(Base):
    """Single-row table holding the clinic's booking policy."""

    __tablename__ = "clinic_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default="default")
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    hours: Mapped[list | None] = mapped_column(JSON)  # list of DayHours, keyed by dayOfWeek
    allow_weekend_bookings: Mapped[bool] = mapped_column(Boolean, default=False)
    advance_booking_days: Mapped[int] = mapped_column(Integer, default=30)
    min_booking_hours: Mapped[int] = mapped_column(Integer, default=2)
    max_booking_days: Mapped[int] = mapped_column(Integer, default=60)
    allow_cancelled_movement: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_completed_movement: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20))
    email: Mapped[str | None] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    appointments: Mapped[list[AppointmentRow]] = relationship(back_populates="patient")

    __table_args__ = (
        Index("ix_patients_name", "name"),
        Index("ix_patients_active", "active"),
    )


class Partner(Base):
    """A practitioner who sees patients."""

    __tablename__ = "partners"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    specialty: Mapped[str | None] = mapped_column(String(100))
    email: Mapped[str | None] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    appointments: Mapped[list[AppointmentRow]] = relationship(back_populates="partner")
    availability_rules: Mapped[list[PartnerAvailabilityRow]] = relationship(
        back_populates="partner", cascade="all, delete-orphan"
    )
    blocked_dates: Mapped[list[PartnerBlockedDateRow]] = relationship(
        back_populates="partner", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_partners_active", "active"),
    )


class PartnerAvailabilityRow(Base):
    __tablename__ = "partner_availability"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    partner_id: Mapped[str] = mapped_column(String(36), ForeignKey("partners.id", ondelete="CASCADE"), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Sun..6=Sat
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    break_start: Mapped[str | None] = mapped_column(String(5))
    break_end: Mapped[str | None] = mapped_column(String(5))
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    partner: Mapped[Partner] = relationship(back_populates="availability_rules")

    __table_args__ = (
        Index("ix_partner_availability_partner", "partner_id"),
        Index("ix_partner_availability_day", "partner_id", "day_of_week"),
    )


class PartnerBlockedDateRow(Base):
    __tablename__ = "partner_blocked_dates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    partner_id: Mapped[str] = mapped_column(String(36), ForeignKey("partners.id", ondelete="CASCADE"), nullable=False)
    blocked_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(5))  # both null => whole day
    end_time: Mapped[str | None] = mapped_column(String(5))
    reason: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    partner: Mapped[Partner] = relationship(back_populates="blocked_dates")

    __table_args__ = (
        Index("ix_partner_blocked_dates_partner_date", "partner_id", "blocked_date"),
    )


class ProductService(Base):
    """A bookable service; its duration fills in a missing end time."""

    __tablename__ = "product_services"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    duration_minutes: Mapped[int | None] = mapped_column(Integer)
    available_for_booking: Mapped[bool] = mapped_column(Boolean, default=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class AppointmentRow(Base):
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    patient_id: Mapped[str] = mapped_column(String(36), ForeignKey("patients.id"), nullable=False)
    partner_id: Mapped[str] = mapped_column(String(36), ForeignKey("partners.id"), nullable=False)
    product_service_id: Mapped[str] = mapped_column(String(36), ForeignKey("product_services.id"), nullable=False)
    room_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("rooms.id", ondelete="SET NULL"))
    date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    type: Mapped[str] = mapped_column(String(20), default="CONSULTATION")
    status: Mapped[str] = mapped_column(String(20), default="SCHEDULED")
    is_encaixe: Mapped[bool] = mapped_column(Boolean, default=False)
    observations: Mapped[str | None] = mapped_column(Text)
    check_in: Mapped[datetime | None] = mapped_column(DateTime)
    check_out: Mapped[datetime | None] = mapped_column(DateTime)
    pre_check_in_status: Mapped[str | None] = mapped_column(String(20))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    patient: Mapped[Patient] = relationship(back_populates="appointments")
    partner: Mapped[Partner] = relationship(back_populates="appointments")

    __table_args__ = (
        Index("ix_appointments_partner_date", "partner_id", "date"),
        Index("ix_appointments_room_date", "room_id", "date"),
        Index("ix_appointments_patient_id", "patient_id"),
        Index("ix_appointments_status", "status"),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str | None] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_audit_resource", "resource_type", "resource_id"),
        Index("ix_audit_timestamp", "timestamp"),
    )
