"""Tests for the async repositories backing the booking core."""

from datetime import date

from clinic_os.core.models import ClinicSettingsRow
from clinic_os.core.repository import (
    SETTINGS_ROW_ID,
    AppointmentRepository,
    AuditRepository,
    ClinicSettingsRepository,
    PartnerRepository,
    ReferenceRepository,
)
from clinic_os.scheduling.models import (
    AppointmentStatus,
    AvailabilityWindow,
    BlockedPeriod,
    ClinicSettings,
)
from tests.conftest import MONDAY, OTHER_PARTNER_ID, PARTNER_ID, PATIENT_ID, ROOM_ID, SERVICE_ID


def _appointment(start: str, end: str, **overrides):
    fields = {
        "patient_id": PATIENT_ID,
        "partner_id": PARTNER_ID,
        "product_service_id": SERVICE_ID,
        "date": MONDAY,
        "start_time": start,
        "end_time": end,
        "type": "CONSULTATION",
        "status": "SCHEDULED",
    }
    fields.update(overrides)
    return fields


class TestClinicSettingsRepository:
    async def test_first_read_creates_default_row(self, session):
        repo = ClinicSettingsRepository(session)
        settings = await repo.load_or_default()
        assert settings.name == ClinicSettings.default().name

        row = await session.get(ClinicSettingsRow, SETTINGS_ROW_ID)
        assert row is not None
        assert row.hours[1]["lunchBreakStart"] == "12:00"

    async def test_replace_round_trip(self, session):
        repo = ClinicSettingsRepository(session)
        changed = ClinicSettings.default().model_copy(update={"min_booking_hours": 6, "allow_weekend_bookings": True})
        saved = await repo.replace(changed)
        assert saved.updated_at is not None

        loaded = await repo.load_or_default()
        assert loaded.min_booking_hours == 6
        assert loaded.allow_weekend_bookings
        assert loaded.hours == changed.hours

    async def test_corrupt_row_falls_back_to_defaults(self, session):
        repo = ClinicSettingsRepository(session)
        await repo.load_or_default()
        row = await session.get(ClinicSettingsRow, SETTINGS_ROW_ID)
        row.hours = [{"dayOfWeek": 1, "isOpen": True, "openTime": "18:00", "closeTime": "08:00"}]
        row.min_booking_hours = 9
        await session.flush()

        loaded = await repo.load_or_default()
        assert loaded.min_booking_hours == ClinicSettings.default().min_booking_hours
        assert loaded.hours == ClinicSettings.default().hours


class TestAppointmentRepository:
    async def test_list_day_filters(self, seeded):
        repo = AppointmentRepository(seeded)
        mine = await repo.create(**_appointment("09:00", "09:30"))
        await repo.create(**_appointment("10:00", "10:30", status="CANCELLED"))
        in_room = await repo.create(**_appointment("11:00", "11:30", partner_id=OTHER_PARTNER_ID, room_id=ROOM_ID))
        await repo.create(**_appointment("12:00", "12:30", partner_id=OTHER_PARTNER_ID))
        await repo.create(**_appointment("09:00", "09:30", date=date(2026, 11, 3)))

        assert [a.id for a in await repo.list_day(MONDAY, PARTNER_ID)] == [mine.id]
        assert [a.id for a in await repo.list_day(MONDAY, PARTNER_ID, ROOM_ID)] == [mine.id, in_room.id]

    async def test_list_filters(self, seeded):
        repo = AppointmentRepository(seeded)
        await repo.create(**_appointment("09:00", "09:30"))
        await repo.create(**_appointment("10:00", "10:30", status="CONFIRMED"))
        await repo.create(**_appointment("09:00", "09:30", date=date(2026, 11, 10)))

        assert len(await repo.list()) == 3
        assert len(await repo.list(date_from=MONDAY, date_to=MONDAY)) == 2
        confirmed = await repo.list(status=AppointmentStatus.CONFIRMED)
        assert [a.start_time for a in confirmed] == ["10:00"]

    async def test_save_and_delete(self, seeded):
        repo = AppointmentRepository(seeded)
        created = await repo.create(**_appointment("09:00", "09:30"))
        saved = await repo.save(created.model_copy(update={"observations": "Updated", "start_time": "09:15"}))
        assert saved.observations == "Updated"
        assert saved.start_time == "09:15"
        assert saved.updated_at is not None

        assert await repo.delete(created.id)
        assert not await repo.delete(created.id)
        assert await repo.get(created.id) is None


class TestPartnerRepository:
    async def test_replace_availability(self, seeded):
        repo = PartnerRepository(seeded)
        rules = await repo.replace_availability(
            PARTNER_ID,
            [
                AvailabilityWindow(day_of_week=2, start_time="13:00", end_time="17:00"),
                AvailabilityWindow(
                    day_of_week=2, start_time="08:00", end_time="12:00", break_start="10:00", break_end="10:15"
                ),
            ],
        )
        assert [(r.day_of_week, r.start_time) for r in rules] == [(2, "08:00"), (2, "13:00")]
        assert rules[0].break_start == "10:00"
        assert all(r.partner_id == PARTNER_ID for r in rules)

        # The other partner's rules are untouched.
        assert len(await repo.list_availability(OTHER_PARTNER_ID)) == 1

    async def test_blocked_dates(self, seeded):
        repo = PartnerRepository(seeded)
        full = await repo.add_blocked_date(PARTNER_ID, BlockedPeriod(blocked_date=MONDAY, reason="Holiday"))
        await repo.add_blocked_date(
            PARTNER_ID, BlockedPeriod(blocked_date=date(2026, 11, 3), start_time="14:00", end_time="15:00")
        )

        assert full.id is not None
        assert full.is_full_day
        assert len(await repo.list_blocked_dates(PARTNER_ID)) == 2
        assert [b.reason for b in await repo.list_blocked_dates(PARTNER_ID, MONDAY)] == ["Holiday"]

        assert not await repo.remove_blocked_date(OTHER_PARTNER_ID, full.id)
        assert await repo.remove_blocked_date(PARTNER_ID, full.id)
        assert await repo.list_blocked_dates(PARTNER_ID, MONDAY) == []

    async def test_get_partner(self, seeded):
        repo = PartnerRepository(seeded)
        partner = await repo.get_partner(PARTNER_ID)
        assert partner.name == "Dr. Ana"
        assert await repo.get_partner("missing") is None


class TestReferenceRepository:
    async def test_lookups(self, seeded):
        repo = ReferenceRepository(seeded)
        service = await repo.get_service(SERVICE_ID)
        assert service.duration_minutes == 30
        assert service.available_for_booking
        assert not (await repo.get_service("service-off")).available_for_booking
        assert not (await repo.get_patient("patient-inactive")).active
        assert (await repo.get_room(ROOM_ID)).name == "Room 1"
        assert await repo.get_room("missing") is None


class TestAuditRepository:
    async def test_log_and_query(self, session):
        repo = AuditRepository(session)
        await repo.log_action("create", "appointment", "appt-1", details={"startTime": "09:00"})
        await repo.log_action("cancel", "appointment", "appt-1")
        await repo.log_action("create", "appointment", "appt-2")

        entries = await repo.get_by_resource("appointment", "appt-1")
        assert {e.action for e in entries} == {"create", "cancel"}
        assert all(e.resource_id == "appt-1" for e in entries)
