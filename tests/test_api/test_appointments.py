"""API tests for appointment booking and status transitions."""

import pytest

BASE = "/api/v1/appointments"


def _body(**overrides):
    body = {
        "patientId": "patient-1",
        "partnerId": "partner-1",
        "productServiceId": "service-1",
        "date": "2026-11-02",
        "startTime": "09:00",
        "endTime": "09:30",
    }
    body.update(overrides)
    return body


@pytest.fixture
def book(client):
    async def _book(**overrides):
        response = await client.post(BASE, json=_body(**overrides))
        assert response.status_code == 201, response.text
        return response.json()["appointment"]

    return _book


class TestCreate:
    async def test_created(self, client):
        response = await client.post(BASE, json=_body())

        assert response.status_code == 201
        data = response.json()
        assert data["appointment"]["status"] == "SCHEDULED"
        assert data["appointment"]["startTime"] == "09:00"
        assert data["appointment"]["isEncaixe"] is False
        assert data["overriddenConflicts"] == []

    async def test_double_booking_returns_conflicts(self, client, book):
        await book()
        response = await client.post(BASE, json=_body(patientId="patient-2"))

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "conflict"
        assert [c["type"] for c in data["conflicts"]] == ["appointment"]
        assert data["conflicts"][0]["timeSlot"] == {"startTime": "09:00", "endTime": "09:30"}
        assert data["conflicts"][0]["appointment"]["isEncaixe"] is False
        assert data["suggestedTimes"][0] == {"startTime": "08:00", "endTime": "08:30"}

    async def test_list_filters_use_camel_case(self, client, book):
        await book()
        await book(partnerId="partner-2")

        listed = await client.get(BASE, params={"partnerId": "partner-2", "patientId": "patient-1"})
        assert [a["partnerId"] for a in listed.json()] == ["partner-2"]

    async def test_availability_check_requires_camel_case(self, client):
        response = await client.get(
            f"{BASE}/availability-check",
            params={"partner_id": "partner-1", "date": "2026-11-02", "start_time": "09:00", "end_time": "09:30"},
        )
        assert response.status_code == 422

    async def test_encaixe_squeezes_in(self, client, book):
        await book()
        response = await client.post(BASE, json=_body(patientId="patient-2", isEncaixe=True))

        assert response.status_code == 201
        assert response.json()["overriddenConflicts"][0]["type"] == "appointment"

        listed = await client.get(BASE, params={"dateFrom": "2026-11-02", "dateTo": "2026-11-02"})
        assert len(listed.json()) == 2

    async def test_lunch_break(self, client):
        response = await client.post(BASE, json=_body(startTime="12:15", endTime="12:45"))
        assert response.status_code == 409
        assert "break" in [c["type"] for c in response.json()["conflicts"]]

    async def test_malformed_time(self, client):
        response = await client.post(BASE, json=_body(startTime="25:00"))
        assert response.status_code == 422

    async def test_end_before_start(self, client):
        response = await client.post(BASE, json=_body(startTime="10:00", endTime="09:00"))
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    async def test_weekend_policy(self, client):
        response = await client.post(BASE, json=_body(date="2026-11-07"))
        assert response.status_code == 422
        assert response.json()["error"] == "policy_violation"

    async def test_unknown_partner(self, client):
        response = await client.post(BASE, json=_body(partnerId="nobody"))
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestReadAndEdit:
    async def test_get_and_missing(self, client, book):
        appt = await book()
        assert (await client.get(f"{BASE}/{appt['id']}")).json()["id"] == appt["id"]

        missing = await client.get(f"{BASE}/missing")
        assert missing.status_code == 404

    async def test_list_rejects_inverted_range(self, client):
        response = await client.get(BASE, params={"dateFrom": "2026-11-03", "dateTo": "2026-11-02"})
        assert response.status_code == 422

    async def test_update(self, client, book):
        appt = await book()
        response = await client.put(f"{BASE}/{appt['id']}", json={"startTime": "10:00", "endTime": "10:30"})
        assert response.status_code == 200
        assert response.json()["appointment"]["startTime"] == "10:00"

    async def test_reschedule(self, client, book):
        appt = await book()
        response = await client.post(
            f"{BASE}/{appt['id']}/reschedule",
            json={"newDate": "2026-11-02", "newStartTime": "15:00", "newEndTime": "15:30", "reason": "Traffic"},
        )
        assert response.status_code == 200
        moved = response.json()["appointment"]
        assert moved["startTime"] == "15:00"
        assert moved["observations"] == "Reagendado: Traffic"

    async def test_delete(self, client, book):
        appt = await book()
        response = await client.delete(f"{BASE}/{appt['id']}")
        assert response.status_code == 204
        assert (await client.get(f"{BASE}/{appt['id']}")).status_code == 404

    async def test_availability_check(self, client):
        response = await client.get(
            f"{BASE}/availability-check",
            params={"partnerId": "partner-1", "date": "2026-11-02", "startTime": "12:15", "endTime": "12:45"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["available"] is False
        assert data["suggestedTimes"]


class TestTransitions:
    async def test_check_in_and_undo(self, client, book):
        appt = await book()

        checked_in = await client.post(f"{BASE}/{appt['id']}/checkin")
        assert checked_in.status_code == 200
        assert checked_in.json()["status"] == "IN_PROGRESS"
        assert checked_in.json()["checkIn"].startswith("2026-10-26T08:00")

        undone = await client.post(f"{BASE}/{appt['id']}/undo-checkin")
        assert undone.json()["status"] == "SCHEDULED"
        assert undone.json()["checkIn"] is None

    async def test_full_visit(self, client, book):
        appt = await book()
        for action, status in [("confirm", "CONFIRMED"), ("checkin", "IN_PROGRESS"), ("checkout", "COMPLETED")]:
            response = await client.post(f"{BASE}/{appt['id']}/{action}")
            assert response.json()["status"] == status

        reopened = await client.post(f"{BASE}/{appt['id']}/undo-checkout")
        assert reopened.json()["status"] == "IN_PROGRESS"

    async def test_illegal_transition(self, client, book):
        appt = await book()
        await client.post(f"{BASE}/{appt['id']}/no-show")

        response = await client.post(f"{BASE}/{appt['id']}/checkin")
        assert response.status_code == 409
        assert response.json()["error"] == "illegal_transition"
        assert response.json()["status"] == "NO_SHOW"

    async def test_cancel_needs_reason(self, client, book):
        appt = await book()
        assert (await client.post(f"{BASE}/{appt['id']}/cancel")).status_code == 422

        response = await client.post(f"{BASE}/{appt['id']}/cancel", json={"reason": "Patient sick"})
        assert response.status_code == 200
        assert response.json()["cancellationReason"] == "Patient sick"

    async def test_cancelled_is_locked(self, client, book):
        appt = await book()
        await client.post(f"{BASE}/{appt['id']}/cancel", json={"reason": "Patient sick"})

        response = await client.put(f"{BASE}/{appt['id']}", json={"startTime": "10:00", "endTime": "10:30"})
        assert response.status_code == 422
        assert response.json()["error"] == "policy_violation"

    async def test_allowed_events(self, client, book):
        appt = await book()
        response = await client.get(f"{BASE}/{appt['id']}/allowed-events")
        assert response.json() == {
            "status": "SCHEDULED",
            "events": ["cancel", "check_in", "confirm", "delete", "edit", "no_show"],
        }
