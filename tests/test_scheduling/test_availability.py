"""Tests for the partner availability index and day view."""

from datetime import date

from clinic_os.scheduling.availability import (
    day_view,
    free_windows,
    is_interval_available,
    is_time_available,
    is_time_blocked,
    merge_intervals,
)
from clinic_os.scheduling.models import (
    AppointmentStatus,
    PartnerAvailability,
    PartnerBlockedDate,
    SlotStatus,
)
from clinic_os.scheduling.timeutil import Interval

MONDAY = date(2026, 11, 2)
TUESDAY = date(2026, 11, 3)
PARTNER = "partner-1"


def _rule(start: str, end: str, **kwargs) -> PartnerAvailability:
    kwargs.setdefault("day_of_week", 1)
    return PartnerAvailability(partner_id=PARTNER, start_time=start, end_time=end, **kwargs)


def _block(day: date = MONDAY, start=None, end=None, **kwargs) -> PartnerBlockedDate:
    return PartnerBlockedDate(partner_id=PARTNER, blocked_date=day, start_time=start, end_time=end, **kwargs)


class TestTimeAvailable:
    def test_inside_window(self):
        rules = [_rule("08:00", "17:00")]
        assert is_time_available("08:00", rules, MONDAY)
        assert is_time_available("16:59", rules, MONDAY)
        assert not is_time_available("17:00", rules, MONDAY)

    def test_other_weekday(self):
        assert not is_time_available("09:00", [_rule("08:00", "17:00")], TUESDAY)

    def test_break_excluded(self):
        rules = [_rule("08:00", "17:00", break_start="12:00", break_end="13:00")]
        assert not is_time_available("12:30", rules, MONDAY)
        assert is_time_available("13:00", rules, MONDAY)

    def test_inactive_rule_ignored(self):
        assert not is_time_available("09:00", [_rule("08:00", "17:00", active=False)], MONDAY)


class TestTimeBlocked:
    def test_full_day_block(self):
        assert is_time_blocked("06:00", MONDAY, [_block()])

    def test_partial_block(self):
        blocked = [_block(start="14:00", end="15:00")]
        assert is_time_blocked("14:30", MONDAY, blocked)
        assert not is_time_blocked("15:00", MONDAY, blocked)

    def test_other_date_and_inactive(self):
        assert not is_time_blocked("09:00", MONDAY, [_block(day=TUESDAY)])
        assert not is_time_blocked("09:00", MONDAY, [_block(active=False)])


class TestFreeWindows:
    def test_union_of_rules(self):
        rules = [_rule("13:00", "17:00"), _rule("08:00", "12:00")]
        assert free_windows(rules, [], MONDAY) == [Interval(480, 720), Interval(780, 1020)]

    def test_overlapping_rules_merge(self):
        rules = [_rule("08:00", "12:00"), _rule("11:00", "14:00")]
        assert free_windows(rules, [], MONDAY) == [Interval(480, 840)]

    def test_breaks_and_blocks_cut_out(self):
        rules = [_rule("08:00", "17:00", break_start="12:00", break_end="13:00")]
        blocked = [_block(start="15:00", end="16:00")]
        assert free_windows(rules, blocked, MONDAY) == [
            Interval(480, 720),
            Interval(780, 900),
            Interval(960, 1020),
        ]

    def test_full_day_block_removes_everything(self):
        assert free_windows([_rule("08:00", "17:00")], [_block()], MONDAY) == []

    def test_interval_available(self):
        rules = [_rule("08:00", "12:00"), _rule("12:00", "17:00")]
        assert is_interval_available(Interval.parse("11:30", "12:30"), rules, [], MONDAY)
        assert not is_interval_available(Interval.parse("16:30", "17:30"), rules, [], MONDAY)

    def test_merge_intervals_touching(self):
        assert merge_intervals([Interval(60, 120), Interval(0, 60)]) == [Interval(0, 120)]


class TestDayView:
    def test_slot_statuses(self, make_appointment):
        rules = [_rule("08:00", "12:00")]
        blocked = [_block(start="10:00", end="11:00")]
        appointments = [
            make_appointment("09:00", "09:30"),
            make_appointment("11:00", "11:30", status=AppointmentStatus.CANCELLED),
        ]
        slots = {s.start_time: s for s in day_view(MONDAY, rules, blocked, appointments, 30, 7 * 60, 13 * 60)}

        assert slots["07:30"].status == SlotStatus.UNAVAILABLE
        assert slots["08:00"].status == SlotStatus.AVAILABLE
        assert slots["09:00"].status == SlotStatus.BUSY
        assert slots["09:00"].appointment_ids == [appointments[0].id]
        assert slots["10:30"].status == SlotStatus.BLOCKED
        assert slots["11:00"].status == SlotStatus.AVAILABLE
        assert slots["12:00"].status == SlotStatus.UNAVAILABLE
        assert "13:00" not in slots

    def test_slot_width(self):
        slots = day_view(MONDAY, [], [], [], slot_minutes=60, first_minute=8 * 60, last_minute=12 * 60)
        assert [(s.start_time, s.end_time) for s in slots] == [
            ("08:00", "09:00"),
            ("09:00", "10:00"),
            ("10:00", "11:00"),
            ("11:00", "12:00"),
        ]
