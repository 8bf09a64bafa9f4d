"""Tests for appointment endpoints."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from httpx import AsyncClient

from app.api.v1.endpoints import health
from app.core.time_policy import WEEKDAY_MESSAGE
from app.schemas.appointments import AppointmentStatus
from tests.fakes import local

BASE = "/api/v1/appointments"


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_detailed_health_degraded(client: AsyncClient, monkeypatch) -> None:
    """Database outage degrades the detailed health check."""
    monkeypatch.setattr(health, "check_database_connection", AsyncMock(return_value=False))

    response = await client.get("/api/v1/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["database"] == "unhealthy"
    assert data["timezone"] == "America/Argentina/Buenos_Aires"


@pytest.mark.asyncio
async def test_ping_and_root(client: AsyncClient) -> None:
    assert (await client.get("/api/v1/ping")).json() == {"message": "pong"}
    assert (await client.get("/")).status_code == 200


@pytest.mark.asyncio
async def test_request_id_header(client: AsyncClient) -> None:
    """Responses carry the request id and processing time."""
    response = await client.get("/api/v1/ping", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"
    assert "X-Process-Time" in response.headers


@pytest.mark.asyncio
async def test_create_appointment(client: AsyncClient, booking: dict) -> None:
    """Booking returns the appointment and the confirmation outcome."""
    response = await client.post(f"{BASE}/", json=booking)

    assert response.status_code == 201
    data = response.json()
    assert data["appointment"]["status"] == "scheduled"
    assert data["appointment"]["notes"] == "Control anual"
    assert data["appointment"]["sequence"] == 0
    assert data["notification"]["kind"] == "confirmation"
    assert data["notification"]["error"] is None
    assert len(data["notification"]["records"]) == 2


@pytest.mark.asyncio
async def test_create_overlapping_appointment(client: AsyncClient, booking: dict) -> None:
    """Double booking is a 409 listing the conflicting slot."""
    first = (await client.post(f"{BASE}/", json=booking)).json()

    overlapping = {
        **booking,
        "starts_at": local(2026, 3, 17, 10, 15).isoformat(),
        "ends_at": local(2026, 3, 17, 10, 45).isoformat(),
    }
    response = await client.post(f"{BASE}/", json=overlapping)

    assert response.status_code == 409
    data = response.json()
    assert data["error"] == "OverlapConflictException"
    assert data["message"] == "Conflicto detectado: 1 cita(s) en ese horario"
    assert [c["id"] for c in data["conflicts"]] == [first["appointment"]["id"]]


@pytest.mark.asyncio
async def test_create_with_naive_times(client: AsyncClient, booking: dict) -> None:
    """Timestamps without offset are clinic-local."""
    naive = {**booking, "starts_at": "2026-03-17T10:00:00", "ends_at": "2026-03-17T10:30:00"}

    response = await client.post(f"{BASE}/", json=naive)

    assert response.status_code == 201
    assert response.json()["appointment"]["starts_at"] == "2026-03-17T10:00:00-03:00"


@pytest.mark.asyncio
async def test_create_with_mixed_offsets_inverted(client: AsyncClient, booking: dict) -> None:
    """Mixed naive and UTC input is a validation error, not a server error."""
    mixed = {**booking, "starts_at": "2026-03-17T10:30:00", "ends_at": "2026-03-17T13:00:00Z"}

    response = await client.post(f"{BASE}/", json=mixed)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_on_weekend(client: AsyncClient, booking: dict) -> None:
    saturday = {
        **booking,
        "starts_at": local(2026, 3, 21, 10).isoformat(),
        "ends_at": local(2026, 3, 21, 10, 30).isoformat(),
    }

    response = await client.post(f"{BASE}/", json=saturday)

    assert response.status_code == 422
    assert response.json()["message"] == WEEKDAY_MESSAGE


@pytest.mark.asyncio
async def test_create_with_inverted_range(client: AsyncClient, booking: dict) -> None:
    """Request validation rejects an end before the start."""
    inverted = {**booking, "ends_at": local(2026, 3, 17, 9).isoformat()}

    response = await client.post(f"{BASE}/", json=inverted)

    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_create_with_unknown_doctor(client: AsyncClient, booking: dict) -> None:
    response = await client.post(f"{BASE}/", json={**booking, "doctor_id": str(uuid4())})

    assert response.status_code == 404
    assert response.json()["message"] == "Médico no encontrado"


@pytest.mark.asyncio
async def test_check_overlap(client: AsyncClient, booking: dict) -> None:
    """Pre-check reports conflicts without booking anything."""
    await client.post(f"{BASE}/", json=booking)

    response = await client.post(
        f"{BASE}/check-overlap",
        json={
            "doctor_id": booking["doctor_id"],
            "starts_at": local(2026, 3, 17, 10, 30).isoformat(),
            "ends_at": local(2026, 3, 17, 11).isoformat(),
        },
    )

    assert response.status_code == 200
    assert response.json()["has_overlap"] is False

    response = await client.post(
        f"{BASE}/check-overlap",
        json={
            "doctor_id": booking["doctor_id"],
            "starts_at": local(2026, 3, 17, 10, 29).isoformat(),
            "ends_at": local(2026, 3, 17, 11).isoformat(),
        },
    )
    assert response.json()["has_overlap"] is True


@pytest.mark.asyncio
async def test_list_appointments(client: AsyncClient, booking: dict, doctor, repository) -> None:
    """Listing filters by doctor and status."""
    await client.post(f"{BASE}/", json=booking)
    repository.add(
        patient_id=uuid4(),
        doctor_id=uuid4(),
        starts_at=local(2026, 3, 18, 10),
        ends_at=local(2026, 3, 18, 10, 30),
        status=AppointmentStatus.CONFIRMED,
    )

    response = await client.get(f"{BASE}/")
    assert response.status_code == 200
    assert response.json()["total"] == 2

    response = await client.get(f"{BASE}/", params={"doctor_id": str(doctor.id)})
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["doctor_id"] == str(doctor.id)

    response = await client.get(f"{BASE}/", params={"status": ["confirmed", "cancelled"]})
    assert response.json()["total"] == 1

    response = await client.get(
        f"{BASE}/", params={"date_from": local(2026, 3, 18, 0).isoformat()}
    )
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_get_appointment(client: AsyncClient, booking: dict) -> None:
    created = (await client.post(f"{BASE}/", json=booking)).json()["appointment"]

    response = await client.get(f"{BASE}/{created['id']}")

    assert response.status_code == 200
    assert response.json()["id"] == created["id"]


@pytest.mark.asyncio
async def test_get_unknown_appointment(client: AsyncClient) -> None:
    response = await client.get(f"{BASE}/{uuid4()}")

    assert response.status_code == 404
    assert response.json() == {
        "error": "NotFoundException",
        "message": "Cita no encontrada",
        "path": response.json()["path"],
    }


@pytest.mark.asyncio
async def test_lifecycle_flow(client: AsyncClient, booking: dict) -> None:
    """Confirm, reschedule and cancel through the API."""
    appointment_id = (await client.post(f"{BASE}/", json=booking)).json()["appointment"]["id"]

    confirmed = (await client.post(f"{BASE}/{appointment_id}/confirm")).json()
    assert confirmed["appointment"]["status"] == "confirmed"
    assert confirmed["appointment"]["sequence"] == 1

    rescheduled = await client.post(
        f"{BASE}/{appointment_id}/reschedule",
        json={
            "starts_at": local(2026, 3, 19, 16).isoformat(),
            "ends_at": local(2026, 3, 19, 16, 30).isoformat(),
        },
    )
    assert rescheduled.status_code == 200
    data = rescheduled.json()
    assert data["appointment"]["status"] == "scheduled"
    assert data["appointment"]["sequence"] == 2
    assert data["notification"]["kind"] == "reschedule"

    cancelled = await client.post(f"{BASE}/{appointment_id}/cancel", json={"reason": "Viaje"})
    assert cancelled.status_code == 200
    data = cancelled.json()
    assert data["appointment"]["status"] == "cancelled"
    assert data["appointment"]["notes"] == "Cancelada: Viaje"
    assert data["notification"]["kind"] == "cancellation"

    again = await client.post(f"{BASE}/{appointment_id}/cancel")
    assert again.status_code == 409
    assert again.json()["error"] == "InvalidTransitionException"


@pytest.mark.asyncio
async def test_clinical_flow(client: AsyncClient, booking: dict, clock) -> None:
    """Start and complete once the appointment time arrives."""
    appointment_id = (await client.post(f"{BASE}/", json=booking)).json()["appointment"]["id"]
    await client.post(f"{BASE}/{appointment_id}/confirm")

    early = await client.post(f"{BASE}/{appointment_id}/start")
    assert early.status_code == 409

    clock.current = local(2026, 3, 17, 10, 2)
    started = await client.post(f"{BASE}/{appointment_id}/start")
    assert started.json()["appointment"]["status"] == "in-progress"

    completed = await client.post(
        f"{BASE}/{appointment_id}/complete", json={"notes": "Control sin novedades"}
    )
    assert completed.status_code == 200
    assert completed.json()["appointment"]["status"] == "completed"
    assert completed.json()["appointment"]["notes"] == "Control sin novedades"


@pytest.mark.asyncio
async def test_no_show(client: AsyncClient, booking: dict, clock) -> None:
    appointment_id = (await client.post(f"{BASE}/", json=booking)).json()["appointment"]["id"]
    await client.post(f"{BASE}/{appointment_id}/confirm")
    clock.current = local(2026, 3, 17, 11)

    response = await client.post(f"{BASE}/{appointment_id}/no-show")

    assert response.status_code == 200
    assert response.json()["appointment"]["status"] == "no-show"


@pytest.mark.asyncio
async def test_update_notes(client: AsyncClient, booking: dict) -> None:
    appointment_id = (await client.post(f"{BASE}/", json=booking)).json()["appointment"]["id"]

    response = await client.patch(f"{BASE}/{appointment_id}", json={"notes": "Traer estudios"})

    assert response.status_code == 200
    data = response.json()
    assert data["appointment"]["notes"] == "Traer estudios"
    assert data["notification"] is None


@pytest.mark.asyncio
async def test_update_without_changes(client: AsyncClient, booking: dict) -> None:
    appointment_id = (await client.post(f"{BASE}/", json=booking)).json()["appointment"]["id"]

    response = await client.patch(f"{BASE}/{appointment_id}", json={})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_download_calendar(client: AsyncClient, booking: dict) -> None:
    appointment_id = (await client.post(f"{BASE}/", json=booking)).json()["appointment"]["id"]

    response = await client.get(f"{BASE}/{appointment_id}/calendar.ics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/calendar")
    assert f'filename="cita_{appointment_id}.ics"' in response.headers["content-disposition"]
    assert response.text.startswith("BEGIN:VCALENDAR\r\n")
    assert "METHOD:REQUEST" in response.text


@pytest.mark.asyncio
async def test_consult_summary(client: AsyncClient, repository, doctor, patient) -> None:
    completed = repository.add(
        patient_id=patient.id,
        doctor_id=doctor.id,
        starts_at=local(2026, 3, 13, 10),
        ends_at=local(2026, 3, 13, 10, 30),
        status=AppointmentStatus.COMPLETED,
    )

    response = await client.post(
        f"{BASE}/{completed.id}/consult-summary",
        json={"diagnosis": "Faringitis", "prescription": "Ibuprofeno 400 mg"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert f"consulta_{completed.id}.pdf" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_doctor_schedule(client: AsyncClient, booking: dict, doctor) -> None:
    await client.post(f"{BASE}/", json=booking)

    response = await client.get(
        f"{BASE}/doctors/{doctor.id}/schedule", params={"date": "2026-03-17"}
    )
    assert response.status_code == 200
    assert len(response.json()) == 1

    response = await client.get(
        f"{BASE}/doctors/{doctor.id}/schedule", params={"date": "2026-03-18"}
    )
    assert response.json() == []


@pytest.mark.asyncio
async def test_patient_upcoming(client: AsyncClient, booking: dict, patient) -> None:
    await client.post(f"{BASE}/", json=booking)

    response = await client.get(f"{BASE}/patients/{patient.id}/upcoming")

    assert response.status_code == 200
    assert [a["patient_id"] for a in response.json()] == [str(patient.id)]


@pytest.mark.asyncio
async def test_stats(client: AsyncClient, booking: dict, doctor) -> None:
    appointment_id = (await client.post(f"{BASE}/", json=booking)).json()["appointment"]["id"]
    await client.post(f"{BASE}/{appointment_id}/cancel")

    response = await client.get(f"{BASE}/stats", params={"doctor_id": str(doctor.id)})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["cancelled"] == 1
    assert data["scheduled"] == 0
