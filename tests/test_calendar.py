"""Tests for iCalendar artifact generation."""

import base64
from datetime import UTC, datetime
from uuid import uuid4

import pytest

from app.notifications.calendar import (
    CalendarArtifactGenerator,
    CalendarMethod,
    escape_text,
    fold_line,
)
from app.schemas.appointments import Appointment, AppointmentStatus
from app.schemas.notifications import EmailRecipient, NotificationKind
from tests.fakes import NOW, local

DOCTOR = EmailRecipient(name="Dra. Ana García", email="ana.garcia@clinica.example.com")
PATIENT = EmailRecipient(name="Juan Pérez", email="juan.perez@example.com")


def make_appointment(
    status: AppointmentStatus = AppointmentStatus.SCHEDULED,
    sequence: int = 0,
    notes: str | None = None,
) -> Appointment:
    now = datetime.now(UTC)
    return Appointment(
        id=uuid4(),
        patient_id=uuid4(),
        doctor_id=uuid4(),
        starts_at=local(2026, 3, 17, 10),
        ends_at=local(2026, 3, 17, 10, 30),
        status=status,
        sequence=sequence,
        notes=notes,
        created_at=now,
        updated_at=now,
    )


def unfold(content: str) -> str:
    return content.replace("\r\n ", "")


@pytest.fixture
def generator() -> CalendarArtifactGenerator:
    return CalendarArtifactGenerator(clock=lambda: NOW)


def test_confirmation_structure(generator):
    """Request carries the local times, a VTIMEZONE and a two hour alarm."""
    appointment = make_appointment()

    artifact = generator.confirmation(appointment, DOCTOR, PATIENT)
    lines = unfold(artifact.content).split("\r\n")

    assert artifact.method == CalendarMethod.REQUEST
    assert artifact.filename == f"cita_{appointment.id}.ics"
    assert lines[0] == "BEGIN:VCALENDAR"
    assert lines[-2] == "END:VCALENDAR"
    assert lines[-1] == ""
    assert "METHOD:REQUEST" in lines
    assert f"UID:{appointment.id}@autamedica.com" in lines
    assert "DTSTAMP:20260316T120000Z" in lines
    assert "DTSTART;TZID=America/Argentina/Buenos_Aires:20260317T100000" in lines
    assert "DTEND;TZID=America/Argentina/Buenos_Aires:20260317T103000" in lines
    assert "TZOFFSETTO:-0300" in lines
    assert "STATUS:TENTATIVE" in lines
    assert "SEQUENCE:0" in lines
    assert "TRIGGER:-PT120M" in lines
    assert 'ORGANIZER;CN="Dra. Ana García":mailto:ana.garcia@clinica.example.com' in lines


def test_confirmed_status(generator):
    """Confirmed appointments are CONFIRMED events at their current sequence."""
    artifact = generator.confirmation(
        make_appointment(AppointmentStatus.CONFIRMED, sequence=1), DOCTOR, PATIENT
    )

    assert "STATUS:CONFIRMED" in artifact.content
    assert "SEQUENCE:1" in artifact.content
    assert artifact.sequence == 1


def test_line_endings_and_length(generator):
    """Every physical line ends in CRLF and fits in 75 octets."""
    notes = "Traer estudios previos de laboratorio, radiografía de tórax y ecografía abdominal. " * 3
    content = generator.confirmation(make_appointment(notes=notes), DOCTOR, PATIENT).content

    assert content.endswith("\r\n")
    assert "\n" not in content.replace("\r\n", "")
    for line in content.split("\r\n"):
        assert len(line.encode("utf-8")) <= 75


def test_text_values_are_escaped(generator):
    """Notes become an escaped single-line description."""
    artifact = generator.confirmation(
        make_appointment(notes="Ayuno; traer orden, estudios\nPiso 2"), DOCTOR, PATIENT
    )

    assert "DESCRIPTION:Ayuno\\; traer orden\\, estudios\\nPiso 2" in unfold(artifact.content)


def test_reminder_is_published_with_same_uid(generator):
    """Reminder refreshes the same event."""
    appointment = make_appointment(AppointmentStatus.CONFIRMED, sequence=1)

    reminder = generator.reminder(appointment, DOCTOR, PATIENT)
    confirmation = generator.confirmation(appointment, DOCTOR, PATIENT)

    assert reminder.method == CalendarMethod.PUBLISH
    assert reminder.uid == confirmation.uid
    assert reminder.sequence == confirmation.sequence
    assert reminder.filename == f"recordatorio_{appointment.id}.ics"


def test_cancellation_supersedes(generator):
    """Cancellation bumps the sequence and has no alarm."""
    appointment = make_appointment(AppointmentStatus.CANCELLED, sequence=1)

    artifact = generator.cancellation(appointment, DOCTOR, PATIENT, "Viaje")
    content = unfold(artifact.content)

    assert artifact.method == CalendarMethod.CANCEL
    assert artifact.sequence == 2
    assert artifact.uid == generator.uid_for(appointment.id)
    assert "STATUS:CANCELLED" in content
    assert "SUMMARY:CANCELADA: Cita médica con Dra. Ana García" in content
    assert "Motivo: Viaje" in content
    assert "BEGIN:VALARM" not in content


@pytest.mark.parametrize(("sequence", "expected"), [(0, 1), (1, 1), (3, 3)])
def test_reschedule_sequence_is_at_least_one(generator, sequence, expected):
    """A moved event always supersedes the original request."""
    artifact = generator.reschedule(
        make_appointment(sequence=sequence),
        DOCTOR,
        PATIENT,
        local(2026, 3, 16, 15),
        local(2026, 3, 16, 15, 30),
    )

    assert artifact.sequence == expected
    assert f"SEQUENCE:{expected}" in artifact.content


def test_reschedule_describes_both_slots(generator):
    """Description names the previous and the new slot."""
    artifact = generator.reschedule(
        make_appointment(sequence=1),
        DOCTOR,
        PATIENT,
        local(2026, 3, 16, 15),
        local(2026, 3, 16, 15, 30),
    )
    content = unfold(artifact.content)

    assert "Horario anterior: 16 de marzo de 2026\\, 15:00 - 15:30" in content
    assert "Nuevo horario: 17 de marzo de 2026\\, 10:00 - 10:30" in content
    assert "STATUS:CONFIRMED" in content
    assert artifact.filename.startswith("reprogramacion_")


def test_for_kind(generator):
    """Each notification kind maps to its method."""
    appointment = make_appointment()

    assert generator.for_kind(NotificationKind.CONFIRMATION, appointment, DOCTOR, PATIENT).method == CalendarMethod.REQUEST
    assert generator.for_kind(NotificationKind.REMINDER_2H, appointment, DOCTOR, PATIENT).method == CalendarMethod.PUBLISH
    assert generator.for_kind(NotificationKind.CANCELLATION, appointment, DOCTOR, PATIENT).method == CalendarMethod.CANCEL

    with pytest.raises(ValueError):
        generator.for_kind(NotificationKind.RESCHEDULE, appointment, DOCTOR, PATIENT)


def test_attachment_is_base64(generator):
    """Attachment decodes back to the calendar text and names its method."""
    artifact = generator.confirmation(make_appointment(), DOCTOR, PATIENT)

    attachment = artifact.to_attachment()

    assert attachment.filename == artifact.filename
    assert attachment.content_type == "text/calendar; charset=utf-8; method=REQUEST"
    assert base64.b64decode(attachment.content).decode("utf-8") == artifact.content


def test_escape_text():
    assert escape_text("a\\b;c,d\ne\r\nf") == "a\\\\b\\;c\\,d\\ne\\nf"


def test_fold_line_short_untouched():
    assert fold_line("SUMMARY:Cita") == "SUMMARY:Cita"


def test_fold_line_ascii():
    """Continuation lines start with a space and the line unfolds to the original."""
    line = "DESCRIPTION:" + "x" * 200

    folded = fold_line(line)
    physical = folded.split("\r\n")

    assert len(physical) == 3
    assert all(len(p.encode("utf-8")) <= 75 for p in physical)
    assert all(p.startswith(" ") for p in physical[1:])
    assert unfold(folded) == line


def test_fold_line_never_splits_characters():
    """Multi-octet characters stay whole across folds."""
    line = "SUMMARY:" + "ñ" * 60

    folded = fold_line(line)

    for physical in folded.split("\r\n"):
        assert len(physical.encode("utf-8")) <= 75
    assert unfold(folded) == line
