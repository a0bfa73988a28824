"""Tests for the scheduling API routes.

Runs the app in-process against the in-memory service fixture.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from clinicbook.api import STATUS_CODES, create_app
from clinicbook.models import FailureKind
from clinicbook.service import SchedulingService
from clinicbook.storage import DependencyFailureError

MONDAY_10AM = "2024-01-15T10:00:00"


@pytest.fixture
def client_for(service):
    """Factory for an AsyncClient bound to an app around a service."""

    def _client(svc=None) -> AsyncClient:
        app = create_app(svc or service)
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    return _client


async def post_booking(client, date_time=MONDAY_10AM, patient_id="PAT001", **extra):
    body = {"patient_id": patient_id, "doctor_id": "DOC001", "date_time": date_time, **extra}
    return await client.post("/appointments", json=body)


class TestStatusCodes:
    def test_every_failure_kind_mapped(self):
        assert set(STATUS_CODES) == set(FailureKind)


class TestBooking:
    """Tests for POST /appointments."""

    @pytest.mark.asyncio
    async def test_book_created(self, client_for):
        async with client_for() as client:
            response = await post_booking(client, reason_for_visit="Checkup")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending_approval"
        assert data["appointment_id"].startswith("APT")
        assert data["consultation_fee"] == 120.0
        assert data["history"][0]["action"] == "created"

    @pytest.mark.asyncio
    async def test_conflict_is_409(self, client_for):
        async with client_for() as client:
            await post_booking(client)
            response = await post_booking(client, "2024-01-15T10:15:00", patient_id="PAT002")

        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "slot_conflict"

    @pytest.mark.asyncio
    async def test_unknown_patient_is_404(self, client_for):
        async with client_for() as client:
            response = await post_booking(client, patient_id="PAT404")

        assert response.status_code == 404
        assert response.json()["detail"]["details"] == {"entity": "patient", "id": "PAT404"}

    @pytest.mark.asyncio
    async def test_bad_duration_is_422(self, client_for):
        async with client_for() as client:
            response = await post_booking(client, duration=20)

        assert response.status_code == 422
        assert response.json()["detail"]["kind"] == "invalid_request"

    @pytest.mark.asyncio
    async def test_outside_availability_is_409(self, client_for):
        async with client_for() as client:
            response = await post_booking(client, "2024-01-16T10:00:00")

        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "outside_availability"

    @pytest.mark.asyncio
    async def test_missing_field_rejected_by_validation(self, client_for):
        async with client_for() as client:
            response = await client.post("/appointments", json={"patient_id": "PAT001"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_utc_offset_stored_as_local(self, client_for):
        utc = datetime(2024, 1, 15, 10, 0).astimezone(timezone.utc)

        async with client_for() as client:
            response = await post_booking(client, utc.isoformat().replace("+00:00", "Z"))

        assert response.status_code == 201
        assert response.json()["date_time"] == MONDAY_10AM

    @pytest.mark.asyncio
    async def test_zulu_time_never_500(self, client_for):
        async with client_for() as client:
            response = await post_booking(client, "2024-01-15T10:00:00Z")

        assert response.status_code in (201, 409)
        if response.status_code == 201:
            assert "+" not in response.json()["date_time"]
            assert not response.json()["date_time"].endswith("Z")

    @pytest.mark.asyncio
    async def test_store_outage_is_503(self, directory, outbox, settings, clock, client_for):
        store = AsyncMock()
        store.find_conflicting.side_effect = DependencyFailureError.for_store("down")
        service = SchedulingService(
            store=store, directory=directory, dispatcher=outbox, settings=settings, clock=clock
        )

        async with client_for(service) as client:
            response = await post_booking(client)

        assert response.status_code == 503
        assert response.json()["detail"]["kind"] == "dependency_failure"


class TestSlots:
    @pytest.mark.asyncio
    async def test_slots_reflect_bookings(self, client_for):
        async with client_for() as client:
            await post_booking(client)
            response = await client.get("/doctors/DOC001/slots", params={"day": "2024-01-15"})
            free = await client.get(
                "/doctors/DOC001/slots", params={"day": "2024-01-15", "available": "false"}
            )

        assert response.status_code == 200
        assert len(response.json()) == 16
        taken = [s["start_time"] for s in free.json()]
        assert taken == ["10:00:00"]

    @pytest.mark.asyncio
    async def test_unknown_doctor(self, client_for):
        async with client_for() as client:
            response = await client.get("/doctors/DOC404/slots", params={"day": "2024-01-15"})
        assert response.status_code == 404


    @pytest.mark.asyncio
    async def test_slot_range(self, client_for):
        async with client_for() as client:
            await post_booking(client)
            response = await client.get(
                "/doctors/DOC001/slots/range", params={"start": "2024-01-15", "days": 3}
            )

        assert response.status_code == 200
        data = response.json()
        assert list(data) == ["2024-01-15", "2024-01-16", "2024-01-17"]
        assert len(data["2024-01-15"]) == 16
        assert data["2024-01-16"] == []
        assert len(data["2024-01-17"]) == 6
        taken = [s["start_time"] for s in data["2024-01-15"] if not s["available"]]
        assert taken == ["10:00:00"]

    @pytest.mark.asyncio
    async def test_slot_range_defaults_to_a_week(self, client_for):
        async with client_for() as client:
            response = await client.get(
                "/doctors/DOC001/slots/range", params={"start": "2024-01-15"}
            )
        assert len(response.json()) == 7

    @pytest.mark.asyncio
    async def test_slot_range_too_long_is_422(self, client_for):
        async with client_for() as client:
            response = await client.get(
                "/doctors/DOC001/slots/range", params={"start": "2024-01-15", "days": 32}
            )

        assert response.status_code == 422
        assert response.json()["detail"]["details"]["field"] == "days"


class TestCheckSlot:
    """Tests for POST /appointments/check."""

    @pytest.mark.asyncio
    async def test_free_slot(self, client_for, store):
        body = {"patient_id": "PAT001", "doctor_id": "DOC001", "date_time": MONDAY_10AM}
        async with client_for() as client:
            response = await client.post("/appointments/check", json=body)

        assert response.status_code == 200
        assert response.json()["date"] == "2024-01-15"
        assert response.json()["start_time"] == "10:00:00"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_taken_slot_is_409(self, client_for):
        body = {"patient_id": "PAT002", "doctor_id": "DOC001", "date_time": MONDAY_10AM}
        async with client_for() as client:
            await post_booking(client)
            response = await client.post("/appointments/check", json=body)

        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "slot_conflict"

    @pytest.mark.asyncio
    async def test_unknown_patient_is_404(self, client_for):
        body = {"patient_id": "PAT404", "doctor_id": "DOC001", "date_time": MONDAY_10AM}
        async with client_for() as client:
            response = await client.post("/appointments/check", json=body)

        assert response.status_code == 404


class TestWorkflowRoutes:
    """Approval, confirmation and terminal transitions over HTTP."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, client_for, outbox):
        async with client_for() as client:
            appointment_id = (await post_booking(client)).json()["appointment_id"]
            base = f"/appointments/{appointment_id}"

            approved = await client.post(f"{base}/approve", json={"actor": "MGR001", "notes": "ok"})
            confirmed = await client.post(f"{base}/confirm", json={"actor": "PAT001"})
            started = await client.post(f"{base}/start", json={"actor": "DOC001"})
            completed = await client.post(
                f"{base}/complete",
                json={"actor": "DOC001", "diagnosis": "Healthy", "follow_up_required": True},
            )

        assert approved.json()["status"] == "approved"
        assert approved.json()["approval_workflow"]["reviewed_by"] == "MGR001"
        assert confirmed.json()["status"] == "confirmed"
        assert started.json()["started_at"] is not None
        body = completed.json()
        assert body["status"] == "completed"
        assert body["completion"]["diagnosis"] == "Healthy"
        assert [h["action"] for h in body["history"]] == [
            "created",
            "approved",
            "confirmed",
            "started",
            "completed",
        ]
        assert outbox.for_recipient("DOC001")[0].kind == "appointment_confirmed"

    @pytest.mark.asyncio
    async def test_confirm_pending_is_409(self, client_for):
        async with client_for() as client:
            appointment_id = (await post_booking(client)).json()["appointment_id"]
            response = await client.post(
                f"/appointments/{appointment_id}/confirm", json={"actor": "PAT001"}
            )

        assert response.status_code == 409
        assert response.json()["detail"]["details"] == {
            "from": "pending_approval",
            "to": "confirmed",
        }

    @pytest.mark.asyncio
    async def test_decline_requires_reason(self, client_for):
        async with client_for() as client:
            appointment_id = (await post_booking(client)).json()["appointment_id"]
            blank = await client.post(
                f"/appointments/{appointment_id}/decline", json={"actor": "MGR001", "reason": " "}
            )
            declined = await client.post(
                f"/appointments/{appointment_id}/decline",
                json={"actor": "MGR001", "reason": "Doctor away"},
            )

        assert blank.status_code == 422
        assert declined.json()["status"] == "declined"

    @pytest.mark.asyncio
    async def test_no_show(self, client_for):
        async with client_for() as client:
            appointment_id = (await post_booking(client)).json()["appointment_id"]
            base = f"/appointments/{appointment_id}"
            await client.post(f"{base}/approve", json={"actor": "MGR001"})
            await client.post(f"{base}/confirm", json={"actor": "PAT001"})
            response = await client.post(
                f"{base}/no-show", json={"actor": "DOC001", "reason": "Did not arrive"}
            )

        assert response.json()["status"] == "no_show"
        assert response.json()["no_show_reason"] == "Did not arrive"

    @pytest.mark.asyncio
    async def test_unknown_appointment_is_404(self, client_for):
        async with client_for() as client:
            response = await client.post("/appointments/APT404/approve", json={"actor": "MGR001"})
            fetched = await client.get("/appointments/APT404")

        assert response.status_code == 404
        assert fetched.status_code == 404


class TestPolicyRoutes:
    @pytest.mark.asyncio
    async def test_reschedule_and_summary(self, client_for):
        async with client_for() as client:
            appointment_id = (await post_booking(client)).json()["appointment_id"]
            moved = await client.post(
                f"/appointments/{appointment_id}/reschedule",
                json={"actor": "PAT001", "new_date_time": "2024-01-15T14:00:00", "reason": "Work"},
            )
            summary = await client.get(f"/appointments/{appointment_id}/summary")

        assert moved.status_code == 200
        assert moved.json()["date_time"] == "2024-01-15T14:00:00"
        assert moved.json()["rescheduling"]["original_date_time"] == MONDAY_10AM
        data = summary.json()
        assert data["reschedule_count"] == 1
        assert data["reschedules_remaining"] == 2
        assert "reschedule" in data["allowed_actions"]

    @pytest.mark.asyncio
    async def test_reschedule_with_offset(self, client_for):
        new_time = datetime(2024, 1, 15, 14, 0).astimezone()

        async with client_for() as client:
            appointment_id = (await post_booking(client)).json()["appointment_id"]
            moved = await client.post(
                f"/appointments/{appointment_id}/reschedule",
                json={"actor": "PAT001", "new_date_time": new_time.isoformat()},
            )

        assert moved.status_code == 200
        assert moved.json()["date_time"] == "2024-01-15T14:00:00"

    @pytest.mark.asyncio
    async def test_cancel_receipt(self, client_for):
        async with client_for() as client:
            appointment_id = (await post_booking(client)).json()["appointment_id"]
            await client.post(f"/appointments/{appointment_id}/approve", json={"actor": "MGR001"})
            response = await client.post(
                f"/appointments/{appointment_id}/cancel",
                json={"actor": "PAT001", "reason": "Feeling better"},
            )

        assert response.status_code == 200
        receipt = response.json()
        assert receipt["refund_eligible"] is True
        assert receipt["appointment"]["status"] == "cancelled"
        assert receipt["appointment"]["cancellation"]["reason"] == "Feeling better"


class TestQueries:
    @pytest.mark.asyncio
    async def test_bulk_approve_and_queues(self, client_for):
        async with client_for() as client:
            first = (await post_booking(client)).json()["appointment_id"]
            second = (await post_booking(client, "2024-01-15T11:00:00")).json()["appointment_id"]
            pending = await client.get("/appointments/pending")

            bulk = await client.post(
                "/appointments/bulk-approve",
                json={"actor": "MGR001", "appointment_ids": [first, second, "APT404"]},
            )
            upcoming = await client.get("/appointments/upcoming", params={"days": 7})
            by_patient = await client.get("/patients/PAT001/appointments")
            by_doctor = await client.get(
                "/doctors/DOC001/appointments", params={"day": "2024-01-15"}
            )
            stats = await client.get("/statistics", params={"doctor_id": "DOC001"})

        assert [a["appointment_id"] for a in pending.json()] == [first, second]
        assert [item["success"] for item in bulk.json()] == [True, True, False]
        assert bulk.json()[2]["error"]["kind"] == "not_found"
        assert len(upcoming.json()) == 2
        assert [a["appointment_id"] for a in by_patient.json()] == [second, first]
        assert len(by_doctor.json()) == 2
        assert stats.json()["total"] == 2
        assert stats.json()["by_status"]["approved"] == 2

    @pytest.mark.asyncio
    async def test_bulk_approve_rejects_empty_list(self, client_for):
        async with client_for() as client:
            response = await client.post(
                "/appointments/bulk-approve", json={"actor": "MGR001", "appointment_ids": []}
            )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_health(self, client_for):
        async with client_for() as client:
            response = await client.get("/health")
        assert response.json() == {"status": "ok"}


def test_parse_datetime_from_json():
    """Sanity check on the request model used by POST /appointments."""
    from clinicbook.api.models import BookRequest

    request = BookRequest(patient_id="PAT001", doctor_id="DOC001", date_time=MONDAY_10AM)
    assert request.date_time == datetime(2024, 1, 15, 10, 0)
    assert request.duration is None
