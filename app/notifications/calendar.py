"""iCalendar (RFC 5545) artifacts for appointment notifications."""

import base64
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

from app.core.time_policy import format_slot, get_timezone, to_local
from app.schemas.appointments import Appointment, AppointmentStatus
from app.schemas.notifications import EmailAttachment, EmailRecipient, NotificationKind

PRODID = "-//AutaMedica//Medical Appointments//ES"
DEFAULT_LOCATION = "Consultorio médico - AutaMedica"
MAX_LINE_OCTETS = 75


class CalendarMethod(str, Enum):
    """iTIP method of a calendar object."""

    REQUEST = "REQUEST"
    CANCEL = "CANCEL"
    PUBLISH = "PUBLISH"


@dataclass
class CalendarEvent:
    """Single VEVENT with its scheduling metadata."""

    uid: str
    summary: str
    starts_at: datetime
    ends_at: datetime
    sequence: int
    status: str
    description: str | None = None
    location: str | None = None
    organizer: EmailRecipient | None = None
    attendee: EmailRecipient | None = None
    alarm_minutes: int | None = None


@dataclass
class CalendarArtifact:
    """Serialized calendar object ready to attach to an e-mail."""

    uid: str
    method: CalendarMethod
    sequence: int
    filename: str
    content: str

    @property
    def content_type(self) -> str:
        """MIME type including the iTIP method."""
        return f"text/calendar; charset=utf-8; method={self.method.value}"

    def to_attachment(self) -> EmailAttachment:
        """Base64 encoded e-mail attachment."""
        return EmailAttachment(
            filename=self.filename,
            content=base64.b64encode(self.content.encode("utf-8")).decode("ascii"),
            content_type=self.content_type,
        )


def escape_text(text: str) -> str:
    """Escape a TEXT value: backslash, semicolon, comma and newline."""
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
        .replace("\r", "")
    )


def fold_line(line: str) -> str:
    """Fold a content line to at most 75 octets per physical line."""
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line

    parts: list[str] = []
    current = ""
    limit = MAX_LINE_OCTETS
    for char in line:
        if len((current + char).encode("utf-8")) > limit:
            parts.append(current)
            current = char
            # continuation lines start with a space that counts toward the limit
            limit = MAX_LINE_OCTETS - 1
        else:
            current += char
    parts.append(current)
    return "\r\n ".join(parts)


def _format_local(t: datetime) -> str:
    return to_local(t).strftime("%Y%m%dT%H%M%S")


def _format_utc(t: datetime) -> str:
    return t.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")


def _format_offset(t: datetime) -> str:
    return to_local(t).strftime("%z")


class CalendarArtifactGenerator:
    """Builds calendar objects for each notification kind.

    Every artifact of an appointment shares the same UID; the SEQUENCE grows
    with each revision so calendar clients replace the earlier version.
    """

    def __init__(
        self,
        uid_domain: str = "autamedica.com",
        location: str = DEFAULT_LOCATION,
        reminder_minutes: int = 120,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize generator with UID domain, default location and alarm lead time."""
        self.uid_domain = uid_domain
        self.location = location
        self.reminder_minutes = reminder_minutes
        self.clock = clock or (lambda: datetime.now(UTC))

    def uid_for(self, appointment_id: UUID) -> str:
        """Stable UID derived from the appointment id."""
        return f"{appointment_id}@{self.uid_domain}"

    def confirmation(
        self,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
    ) -> CalendarArtifact:
        """New or confirmed appointment."""
        event = self._base_event(appointment, doctor, patient)
        return self._artifact(event, CalendarMethod.REQUEST, f"cita_{appointment.id}.ics")

    def reminder(
        self,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
    ) -> CalendarArtifact:
        """Same event as the confirmation, published to refresh the calendar."""
        event = self._base_event(appointment, doctor, patient)
        return self._artifact(event, CalendarMethod.PUBLISH, f"recordatorio_{appointment.id}.ics")

    def cancellation(
        self,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
        reason: str | None = None,
    ) -> CalendarArtifact:
        """Cancellation superseding any prior revision."""
        description = (
            f"Esta cita ha sido cancelada. Motivo: {reason}"
            if reason
            else "Esta cita ha sido cancelada."
        )
        event = CalendarEvent(
            uid=self.uid_for(appointment.id),
            summary=f"CANCELADA: Cita médica con {doctor.name}",
            description=description,
            location=self.location,
            starts_at=appointment.starts_at,
            ends_at=appointment.ends_at,
            organizer=doctor,
            attendee=patient,
            sequence=appointment.sequence + 1,
            status="CANCELLED",
        )
        return self._artifact(event, CalendarMethod.CANCEL, f"cancelacion_{appointment.id}.ics")

    def reschedule(
        self,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
        previous_start: datetime,
        previous_end: datetime,
    ) -> CalendarArtifact:
        """Moved appointment; the description carries both the old and new slot."""
        description = (
            "Esta cita ha sido reprogramada.\n\n"
            f"Horario anterior: {format_slot(previous_start, previous_end)}\n\n"
            f"Nuevo horario: {format_slot(appointment.starts_at, appointment.ends_at)}"
        )
        event = CalendarEvent(
            uid=self.uid_for(appointment.id),
            summary=f"REPROGRAMADA: Cita médica con {doctor.name}",
            description=description,
            location=self.location,
            starts_at=appointment.starts_at,
            ends_at=appointment.ends_at,
            organizer=doctor,
            attendee=patient,
            sequence=max(appointment.sequence, 1),
            status="CONFIRMED",
            alarm_minutes=self.reminder_minutes,
        )
        return self._artifact(
            event, CalendarMethod.REQUEST, f"reprogramacion_{appointment.id}.ics"
        )

    def for_kind(
        self,
        kind: NotificationKind,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
        reason: str | None = None,
        previous_start: datetime | None = None,
        previous_end: datetime | None = None,
    ) -> CalendarArtifact:
        """Dispatch to the builder of a notification kind."""
        if kind == NotificationKind.CONFIRMATION:
            return self.confirmation(appointment, doctor, patient)
        if kind == NotificationKind.CANCELLATION:
            return self.cancellation(appointment, doctor, patient, reason)
        if kind == NotificationKind.RESCHEDULE:
            if previous_start is None or previous_end is None:
                raise ValueError("previous_start and previous_end are required for reschedule")
            return self.reschedule(appointment, doctor, patient, previous_start, previous_end)
        return self.reminder(appointment, doctor, patient)

    def _base_event(
        self,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
    ) -> CalendarEvent:
        confirmed = appointment.status == AppointmentStatus.CONFIRMED
        return CalendarEvent(
            uid=self.uid_for(appointment.id),
            summary=f"Cita médica con {doctor.name}",
            description=appointment.notes or "Cita médica programada",
            location=self.location,
            starts_at=appointment.starts_at,
            ends_at=appointment.ends_at,
            organizer=doctor,
            attendee=patient,
            sequence=appointment.sequence,
            status="CONFIRMED" if confirmed else "TENTATIVE",
            alarm_minutes=self.reminder_minutes,
        )

    def _artifact(self, event: CalendarEvent, method: CalendarMethod, filename: str) -> CalendarArtifact:
        return CalendarArtifact(
            uid=event.uid,
            method=method,
            sequence=event.sequence,
            filename=filename,
            content=self.render(event, method),
        )

    def render(self, event: CalendarEvent, method: CalendarMethod) -> str:
        """Serialize an event as a VCALENDAR with CRLF line endings."""
        tzid = get_timezone().key
        offset = _format_offset(event.starts_at)
        tzname = to_local(event.starts_at).tzname() or offset

        lines = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            f"PRODID:{PRODID}",
            f"METHOD:{method.value}",
            "CALSCALE:GREGORIAN",
            "BEGIN:VTIMEZONE",
            f"TZID:{tzid}",
            f"X-LIC-LOCATION:{tzid}",
            "BEGIN:STANDARD",
            f"TZOFFSETFROM:{offset}",
            f"TZOFFSETTO:{offset}",
            f"TZNAME:{tzname}",
            "DTSTART:19700101T000000",
            "END:STANDARD",
            "END:VTIMEZONE",
            "BEGIN:VEVENT",
            f"UID:{event.uid}",
            f"DTSTAMP:{_format_utc(self.clock())}",
            f"DTSTART;TZID={tzid}:{_format_local(event.starts_at)}",
            f"DTEND;TZID={tzid}:{_format_local(event.ends_at)}",
            f"SUMMARY:{escape_text(event.summary)}",
        ]

        if event.description:
            lines.append(f"DESCRIPTION:{escape_text(event.description)}")

        if event.location:
            lines.append(f"LOCATION:{escape_text(event.location)}")

        if event.organizer:
            lines.append(
                f'ORGANIZER;CN="{event.organizer.name}":mailto:{event.organizer.email}'
            )

        if event.attendee:
            lines.append(
                f'ATTENDEE;CN="{event.attendee.name}";RSVP=TRUE:mailto:{event.attendee.email}'
            )

        lines.append(f"STATUS:{event.status}")
        lines.append(f"SEQUENCE:{event.sequence}")

        if event.alarm_minutes and method != CalendarMethod.CANCEL:
            lines.extend(
                [
                    "BEGIN:VALARM",
                    f"TRIGGER:-PT{event.alarm_minutes}M",
                    "ACTION:DISPLAY",
                    f"DESCRIPTION:Recordatorio: {escape_text(event.summary)}",
                    "END:VALARM",
                ]
            )

        lines.extend(["END:VEVENT", "END:VCALENDAR"])
        return "\r\n".join(fold_line(line) for line in lines) + "\r\n"
