"""Pytest configuration and fixtures."""

from datetime import date, datetime
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clinic_os.core.models import (
    Base,
    Partner,
    PartnerAvailabilityRow,
    Patient,
    ProductService,
    Room,
)
from clinic_os.scheduling.booking import BookingService, PartnerLocks
from clinic_os.scheduling.models import (
    Appointment,
    AppointmentDraft,
    AppointmentStatus,
    ClinicSettings,
    DayHours,
    PartnerAvailability,
)

# 2026-11-02 is a Monday; the fixed clock sits one week earlier.
MONDAY = date(2026, 11, 2)
SATURDAY = date(2026, 11, 7)
NOW = datetime(2026, 10, 26, 8, 0)

PATIENT_ID = "patient-1"
PARTNER_ID = "partner-1"
OTHER_PARTNER_ID = "partner-2"
SERVICE_ID = "service-1"
ROOM_ID = "room-1"


async def seed_clinic(session: AsyncSession) -> None:
    """Patients, partners working Mon 08:00-17:00, a 30-minute service and a room."""
    session.add_all(
        [
            Patient(id=PATIENT_ID, name="Maria Silva"),
            Patient(id="patient-2", name="João Souza"),
            Patient(id="patient-inactive", name="Old Patient", active=False),
            Partner(id=PARTNER_ID, name="Dr. Ana"),
            Partner(id=OTHER_PARTNER_ID, name="Dr. Bruno"),
            Partner(id="partner-inactive", name="Dr. Gone", active=False),
            ProductService(id=SERVICE_ID, name="Physiotherapy", duration_minutes=30),
            ProductService(id="service-off", name="Retired service", available_for_booking=False),
            ProductService(id="service-no-duration", name="Open-ended", duration_minutes=None),
            Room(id=ROOM_ID, name="Room 1"),
            PartnerAvailabilityRow(partner_id=PARTNER_ID, day_of_week=1, start_time="08:00", end_time="17:00"),
            PartnerAvailabilityRow(partner_id=OTHER_PARTNER_ID, day_of_week=1, start_time="08:00", end_time="17:00"),
        ]
    )
    await session.commit()


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as sess:
        yield sess


@pytest_asyncio.fixture
async def seeded(session: AsyncSession) -> AsyncSession:
    await seed_clinic(session)
    return session


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def locks() -> PartnerLocks:
    return PartnerLocks()


@pytest.fixture
def booking(seeded: AsyncSession, locks: PartnerLocks, clock) -> BookingService:
    return BookingService(seeded, locks, clock=clock)


@pytest.fixture
def make_draft():
    """Factory for appointment drafts on MONDAY for the seeded partner."""

    def _make(**overrides: Any) -> AppointmentDraft:
        fields: dict[str, Any] = {
            "patient_id": PATIENT_ID,
            "partner_id": PARTNER_ID,
            "product_service_id": SERVICE_ID,
            "date": MONDAY,
            "start_time": "09:00",
            "end_time": "09:30",
        }
        fields.update(overrides)
        return AppointmentDraft(**fields)

    return _make


@pytest.fixture
def make_appointment():
    """Factory for in-memory appointments used by the pure-function tests."""
    counter = {"n": 0}

    def _make(start: str, end: str, **overrides: Any) -> Appointment:
        counter["n"] += 1
        fields: dict[str, Any] = {
            "id": f"appt-{counter['n']}",
            "patient_id": PATIENT_ID,
            "partner_id": PARTNER_ID,
            "product_service_id": SERVICE_ID,
            "date": MONDAY,
            "start_time": start,
            "end_time": end,
            "status": AppointmentStatus.SCHEDULED,
        }
        fields.update(overrides)
        return Appointment(**fields)

    return _make


@pytest.fixture
def clinic() -> ClinicSettings:
    """Clinic open Monday 08:00-18:00 with lunch 12:00-13:00 (the defaults)."""
    return ClinicSettings.default()


@pytest.fixture
def monday_rules() -> list[PartnerAvailability]:
    return [PartnerAvailability(partner_id=PARTNER_ID, day_of_week=1, start_time="08:00", end_time="17:00")]


@pytest.fixture
def lunch_day() -> DayHours:
    return DayHours(
        day_of_week=1,
        is_open=True,
        open_time="08:00",
        close_time="18:00",
        lunch_break_start="12:00",
        lunch_break_end="13:00",
    )
