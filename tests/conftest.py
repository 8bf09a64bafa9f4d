from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.retry import RetryPolicy
from app.dependencies import get_appointment_service
from app.main import app
from app.notifications.calendar import CalendarArtifactGenerator
from app.notifications.dispatcher import NotificationDispatcher
from app.notifications.email_service import EmailService
from app.notifications.rendering import RenderResult
from app.schemas.notifications import NotificationContext, ParticipantContact
from app.services.appointment_service import AppointmentService
from tests.fakes import (
    NOW,
    FakeClock,
    InMemoryAppointmentRepository,
    InMemoryContactDirectory,
    RecordingSleep,
    RecordingTransport,
    local,
)


class StubRenderer:
    """Renderer returning the template source untouched."""

    def __init__(self) -> None:
        self.sources: list[str] = []

    def render(self, source: str) -> RenderResult:
        self.sources.append(source)
        return RenderResult(html=source)


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at Monday 09:00 local time."""
    return FakeClock(NOW)


@pytest.fixture
def doctor() -> ParticipantContact:
    """Doctor participant."""
    return ParticipantContact(
        id=uuid4(),
        full_name="Dra. Ana García",
        email="ana.garcia@clinica.example.com",
        role="doctor",
    )


@pytest.fixture
def patient() -> ParticipantContact:
    """Patient participant."""
    return ParticipantContact(
        id=uuid4(),
        full_name="Juan Pérez",
        email="juan.perez@example.com",
        role="patient",
    )


@pytest.fixture
def repository() -> InMemoryAppointmentRepository:
    """Empty in-memory appointment store."""
    return InMemoryAppointmentRepository()


@pytest.fixture
def contacts(doctor: ParticipantContact, patient: ParticipantContact) -> InMemoryContactDirectory:
    """Directory knowing the doctor and the patient."""
    return InMemoryContactDirectory(doctor, patient)


@pytest.fixture
def transport() -> RecordingTransport:
    """Transport recording every delivered message."""
    return RecordingTransport()


@pytest.fixture
def sleep() -> RecordingSleep:
    """Sleep that returns immediately."""
    return RecordingSleep()


@pytest.fixture
def renderer() -> StubRenderer:
    """Renderer passing MJML source through."""
    return StubRenderer()


@pytest.fixture
def calendar(clock: FakeClock) -> CalendarArtifactGenerator:
    """Calendar generator stamped with the test clock."""
    return CalendarArtifactGenerator(clock=clock)


@pytest.fixture
def dispatcher(
    transport: RecordingTransport,
    sleep: RecordingSleep,
    renderer: StubRenderer,
    calendar: CalendarArtifactGenerator,
) -> NotificationDispatcher:
    """Dispatcher over the recording transport with a 3-attempt retry policy."""
    email_service = EmailService(
        transport=transport,
        default_from="AutaMedica <no-reply@autamedica.com>",
        policy=RetryPolicy(max_attempts=3, base_delay_ms=1000),
        sleep=sleep,
    )
    return NotificationDispatcher(
        email_service=email_service,
        calendar=calendar,
        renderer=renderer,
        context=NotificationContext(clinic_name="AutaMedica", clinic_address="Av. Siempre Viva 742"),
    )


@pytest.fixture
def service(
    repository: InMemoryAppointmentRepository,
    contacts: InMemoryContactDirectory,
    dispatcher: NotificationDispatcher,
    clock: FakeClock,
) -> AppointmentService:
    """Appointment service over in-memory collaborators."""
    return AppointmentService(repository, contacts, dispatcher, clock=clock)


@pytest_asyncio.fixture
async def client(service: AppointmentService) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client backed by the in-memory service."""
    app.dependency_overrides[get_appointment_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def booking(doctor: ParticipantContact, patient: ParticipantContact) -> dict:
    """Valid booking payload: Tuesday 10:00-10:30 local time."""
    return {
        "patient_id": str(patient.id),
        "doctor_id": str(doctor.id),
        "starts_at": local(2026, 3, 17, 10).isoformat(),
        "ends_at": local(2026, 3, 17, 10, 30).isoformat(),
        "notes": "Control anual",
    }
