"""Tests for the notification dispatcher."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from app.core.exceptions import NotificationDeliveryError, ValidationException
from app.notifications.dispatcher import NotificationDispatcher, ReminderTarget, validate_recipient
from app.schemas.appointments import Appointment, AppointmentStatus
from app.schemas.notifications import (
    DeliveryStatus,
    EmailRecipient,
    NotificationContext,
    NotificationKind,
)
from tests.fakes import local


@pytest.fixture
def appointment() -> Appointment:
    now = datetime.now(UTC)
    return Appointment(
        id=uuid4(),
        patient_id=uuid4(),
        doctor_id=uuid4(),
        starts_at=local(2026, 3, 17, 10),
        ends_at=local(2026, 3, 17, 10, 30),
        status=AppointmentStatus.SCHEDULED,
        notes="Control anual",
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def doctor_recipient(doctor) -> EmailRecipient:
    return doctor.as_recipient()


@pytest.fixture
def patient_recipient(patient) -> EmailRecipient:
    return patient.as_recipient()


async def test_confirmation_goes_to_patient_and_doctor(
    dispatcher, transport, appointment, doctor_recipient, patient_recipient
):
    """Patient gets the confirmation; the doctor gets a tagged copy."""
    outcome = await dispatcher.send_confirmation(appointment, doctor_recipient, patient_recipient)

    assert outcome.kind == NotificationKind.CONFIRMATION
    assert outcome.delivered
    assert [r.recipient for r in outcome.records] == [
        str(patient_recipient.email),
        str(doctor_recipient.email),
    ]

    patient_message, doctor_message = transport.sent
    assert patient_message.subject == "✅ Cita confirmada - AutaMedica"
    assert patient_message.sender == "AutaMedica <no-reply@autamedica.com>"
    assert patient_message.headers == {
        "X-Appointment-ID": str(appointment.id),
        "X-Appointment-Type": "confirmation",
    }
    assert patient_message.tags == ["appointment", "confirmation"]
    assert patient_message.attachments[0].content_type.endswith("method=REQUEST")

    assert doctor_message.subject == "📋 Cita confirmada con Juan Pérez - AutaMedica"
    assert doctor_message.headers["X-Appointment-Type"] == "confirmation-doctor"
    assert "doctor-copy" in doctor_message.tags


async def test_templates_go_through_renderer(
    dispatcher, renderer, appointment, doctor_recipient, patient_recipient
):
    """Both audiences are rendered from MJML."""
    await dispatcher.send_confirmation(appointment, doctor_recipient, patient_recipient)

    assert len(renderer.sources) == 2
    assert all(source.lstrip().startswith("<mjml") for source in renderer.sources)


async def test_fallback_html_without_renderer(
    dispatcher, transport, appointment, doctor_recipient, patient_recipient
):
    """Without a renderer the message still carries plain HTML."""
    dispatcher.renderer = None

    await dispatcher.send_confirmation(appointment, doctor_recipient, patient_recipient)

    html = transport.sent[0].html
    assert "<html>" in html
    assert "<mj-" not in html
    assert "Juan Pérez" in html


async def test_doctor_copy_skipped_for_same_address(dispatcher, transport, appointment, doctor_recipient):
    """Same address for both roles gets a single message."""
    same = EmailRecipient(name="Ana", email=str(doctor_recipient.email).upper())

    outcome = await dispatcher.send_confirmation(appointment, doctor_recipient, same)

    assert len(transport.sent) == 1
    assert len(outcome.records) == 1


async def test_doctor_copy_failure_is_warning(
    dispatcher, transport, sleep, appointment, doctor_recipient, patient_recipient
):
    """A failed doctor copy is retried, then recorded as a warning."""
    transport.fail_for.add(str(doctor_recipient.email))

    outcome = await dispatcher.send_cancellation(
        appointment, doctor_recipient, patient_recipient, "Viaje"
    )

    assert outcome.delivered
    assert outcome.warnings == [
        f"Doctor copy to {doctor_recipient.email} failed: "
        "Failed to send cancellation after 3 attempts: mailbox unavailable"
    ]
    assert [r.status for r in outcome.records] == [DeliveryStatus.SENT, DeliveryStatus.FAILED]
    assert sleep.delays == [1.0, 2.0]


async def test_patient_failure_propagates(
    dispatcher, transport, appointment, doctor_recipient, patient_recipient
):
    """Primary delivery failure raises and the doctor copy is not attempted."""
    transport.fail_for.add(str(patient_recipient.email))

    with pytest.raises(NotificationDeliveryError) as exc_info:
        await dispatcher.send_confirmation(appointment, doctor_recipient, patient_recipient)

    assert exc_info.value.message == (
        "Failed to send confirmation after 3 attempts: mailbox unavailable"
    )
    assert exc_info.value.attempts == 3
    assert transport.attempts == 3


async def test_transient_failures_recover(
    dispatcher, transport, sleep, appointment, doctor_recipient, patient_recipient
):
    """Two transient failures still deliver on the third attempt."""
    transport.fail_times = 2

    outcome = await dispatcher.send_reminder(appointment, doctor_recipient, patient_recipient, 24)

    assert outcome.delivered
    assert transport.attempts == 3
    assert sleep.delays == [1.0, 2.0]


async def test_cancellation_headers(dispatcher, transport, appointment, doctor_recipient, patient_recipient):
    """Missing reason is reported as not specified."""
    await dispatcher.send_cancellation(appointment, doctor_recipient, patient_recipient)

    patient_message, doctor_message = transport.sent
    assert patient_message.subject == "❌ Cita cancelada - AutaMedica"
    assert patient_message.headers["X-Cancellation-Reason"] == "Not specified"
    assert patient_message.attachments[0].content_type.endswith("method=CANCEL")
    assert doctor_message.subject == "📋 Cita cancelada - Juan Pérez - AutaMedica"
    assert doctor_message.headers["X-Appointment-Type"] == "cancellation-doctor"


@pytest.mark.parametrize(
    ("hours", "subject", "priority", "kind"),
    [
        (2, "⏰ Recordatorio: Tu cita es en 2 horas - AutaMedica", "high", "reminder-2h"),
        (24, "📅 Recordatorio: Tu cita es mañana - AutaMedica", "normal", "reminder-24h"),
    ],
)
async def test_reminder(
    dispatcher, transport, appointment, doctor_recipient, patient_recipient, hours, subject, priority, kind
):
    """Reminders go to the patient only, with urgency metadata."""
    outcome = await dispatcher.send_reminder(appointment, doctor_recipient, patient_recipient, hours)

    assert outcome.kind.value == kind
    (message,) = transport.sent
    assert message.subject == subject
    assert message.headers["X-Reminder-Hours"] == str(hours)
    assert message.headers["X-Priority"] == priority
    assert message.tags == ["appointment", "reminder", kind]
    assert message.attachments[0].content_type.endswith("method=PUBLISH")


async def test_reminder_rejects_other_lead_times(dispatcher, appointment, doctor_recipient, patient_recipient):
    with pytest.raises(ValidationException):
        await dispatcher.send_reminder(appointment, doctor_recipient, patient_recipient, 12)


async def test_reschedule_metadata(dispatcher, transport, appointment, doctor_recipient, patient_recipient):
    """Reschedule notice carries both starts and goes to the patient only."""
    previous_start = local(2026, 3, 16, 15)

    await dispatcher.send_reschedule(
        appointment, doctor_recipient, patient_recipient, previous_start, local(2026, 3, 16, 15, 30)
    )

    (message,) = transport.sent
    assert message.subject == "🔄 Cita reprogramada - AutaMedica"
    assert message.headers["X-Original-Start"] == previous_start.isoformat()
    assert message.headers["X-New-Start"] == appointment.starts_at.isoformat()


async def test_context_override(dispatcher, transport, appointment, doctor_recipient, patient_recipient):
    """A per-call context replaces the clinic name."""
    await dispatcher.send_reminder(
        appointment,
        doctor_recipient,
        patient_recipient,
        24,
        NotificationContext(clinic_name="Clínica Norte"),
    )

    assert transport.sent[0].subject.endswith("- Clínica Norte")


async def test_invalid_recipient_sends_nothing(dispatcher, transport, appointment, doctor_recipient):
    """A recipient without a name is rejected before any attempt."""
    nameless = EmailRecipient.model_construct(name=" ", email="juan.perez@example.com")

    with pytest.raises(ValidationException) as exc_info:
        await dispatcher.send_confirmation(appointment, doctor_recipient, nameless)

    assert exc_info.value.message == "Invalid patient: name and email are required"
    assert transport.attempts == 0


def test_validate_recipient_email_format():
    bad = EmailRecipient.model_construct(name="Juan", email="not-an-email")

    with pytest.raises(ValidationException) as exc_info:
        validate_recipient(bad, "patient")
    assert exc_info.value.message == "Invalid patient email format"


async def test_batch_reminders(
    dispatcher: NotificationDispatcher, transport, appointment, doctor_recipient, patient_recipient
):
    """Failures are counted per item without stopping the batch."""
    failing = EmailRecipient(name="María López", email="maria.lopez@example.com")
    transport.fail_for.add("maria.lopez@example.com")
    second = appointment.model_copy(update={"id": uuid4()})
    third = appointment.model_copy(update={"id": uuid4()})

    result = await dispatcher.send_batch_reminders(
        [
            ReminderTarget(appointment, doctor_recipient, patient_recipient),
            ReminderTarget(second, doctor_recipient, failing),
            ReminderTarget(third, doctor_recipient, patient_recipient, hours_before=2),
        ]
    )

    assert result.successful == 2
    assert result.failed == 1
    assert result.errors == [
        f"{second.id}: Failed to send reminder-24h after 3 attempts: mailbox unavailable"
    ]


async def test_batch_reminders_survive_adapter_errors(
    dispatcher: NotificationDispatcher, transport, appointment, doctor_recipient, patient_recipient
):
    """A non-library transport error is retried and reported per item."""
    transport.fail_times = 10
    transport.error = ConnectionError("socket closed")
    second = appointment.model_copy(update={"id": uuid4()})

    result = await dispatcher.send_batch_reminders(
        [
            ReminderTarget(appointment, doctor_recipient, patient_recipient),
            ReminderTarget(second, doctor_recipient, patient_recipient),
        ]
    )

    assert transport.attempts == 6
    assert result.successful == 0
    assert result.failed == 2
    assert result.errors == [
        f"{appointment.id}: Failed to send reminder-24h after 3 attempts: socket closed",
        f"{second.id}: Failed to send reminder-24h after 3 attempts: socket closed",
    ]


async def test_batch_reminders_continue_after_unexpected_error(
    dispatcher: NotificationDispatcher,
    transport,
    appointment,
    doctor_recipient,
    patient_recipient,
    monkeypatch,
):
    """Errors raised before delivery are recorded with their text."""
    second = appointment.model_copy(update={"id": uuid4()})
    build_reminder = dispatcher.calendar.reminder

    def reminder(target, doctor, patient):
        if target.id == appointment.id:
            raise RuntimeError("calendar unavailable")
        return build_reminder(target, doctor, patient)

    monkeypatch.setattr(dispatcher.calendar, "reminder", reminder)

    result = await dispatcher.send_batch_reminders(
        [
            ReminderTarget(appointment, doctor_recipient, patient_recipient),
            ReminderTarget(second, doctor_recipient, patient_recipient),
        ]
    )

    assert result.successful == 1
    assert result.failed == 1
    assert result.errors == [f"{appointment.id}: calendar unavailable"]
    assert len(transport.sent) == 1
