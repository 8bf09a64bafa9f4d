"""Notification dispatcher: renders, attaches calendar artifacts and delivers."""

from dataclasses import dataclass
from datetime import datetime

import structlog
from email_validator import EmailNotValidError, validate_email

from app.core.exceptions import AppException, ValidationException
from app.notifications.calendar import CalendarArtifactGenerator
from app.notifications.email_service import EmailService
from app.notifications.rendering import TemplateRenderer, render_template
from app.notifications.templates import (
    cancellation_template,
    confirmation_template,
    reminder_template,
)
from app.schemas.appointments import Appointment
from app.schemas.notifications import (
    BatchReminderResult,
    DeliveryStatus,
    EmailMessage,
    EmailRecipient,
    NotificationContext,
    NotificationKind,
    NotificationOutcome,
    NotificationRecord,
)

logger = structlog.get_logger(__name__)


@dataclass
class ReminderTarget:
    """One appointment of a reminder batch with its resolved participants."""

    appointment: Appointment
    doctor: EmailRecipient
    patient: EmailRecipient
    hours_before: int = 24


def validate_recipient(recipient: EmailRecipient, role: str) -> None:
    """
    Check a participant has a name and a well-formed e-mail.

    Raises:
        ValidationException: If the name is blank or the e-mail is malformed
    """
    if not recipient.name or not recipient.name.strip() or not recipient.email:
        raise ValidationException(f"Invalid {role}: name and email are required")
    try:
        validate_email(str(recipient.email), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationException(f"Invalid {role} email format") from e


class NotificationDispatcher:
    """
    Sends appointment notifications.

    The patient delivery is the primary send: its failure propagates. The
    doctor copy is independent and only adds a warning to the outcome when
    it fails.
    """

    def __init__(
        self,
        email_service: EmailService,
        calendar: CalendarArtifactGenerator,
        renderer: TemplateRenderer | None = None,
        context: NotificationContext | None = None,
    ):
        """Initialize dispatcher; without a renderer the basic HTML fallback is used."""
        self.email_service = email_service
        self.calendar = calendar
        self.renderer = renderer
        self.context = context or NotificationContext()

    def _render(self, source: str) -> str:
        return render_template(self.renderer, source).html

    def _validate(self, doctor: EmailRecipient, patient: EmailRecipient) -> None:
        validate_recipient(doctor, "doctor")
        validate_recipient(patient, "patient")

    async def _deliver(
        self,
        appointment: Appointment,
        kind: NotificationKind,
        recipient: EmailRecipient,
        message: EmailMessage,
    ) -> NotificationRecord:
        response = await self.email_service.send(message, kind)
        return NotificationRecord(
            appointment_id=appointment.id,
            kind=kind,
            recipient=str(recipient.email),
            status=DeliveryStatus.SENT,
            message_id=response.message_id,
        )

    async def _deliver_doctor_copy(
        self,
        outcome: NotificationOutcome,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
        message: EmailMessage,
    ) -> None:
        if str(doctor.email).lower() == str(patient.email).lower():
            return

        try:
            record = await self._deliver(appointment, outcome.kind, doctor, message)
        except AppException as e:
            logger.warning(
                "doctor_copy_failed",
                appointment_id=str(appointment.id),
                kind=outcome.kind.value,
                error=e.message,
            )
            outcome.warnings.append(f"Doctor copy to {doctor.email} failed: {e.message}")
            outcome.records.append(
                NotificationRecord(
                    appointment_id=appointment.id,
                    kind=outcome.kind,
                    recipient=str(doctor.email),
                    status=DeliveryStatus.FAILED,
                    error=e.message,
                )
            )
            return

        outcome.records.append(record)

    async def send_confirmation(
        self,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
        context: NotificationContext | None = None,
    ) -> NotificationOutcome:
        """
        Send the booking confirmation with a REQUEST calendar artifact.

        Args:
            appointment: Booked or confirmed appointment
            doctor: Doctor recipient; receives a copy when the address differs
            patient: Patient recipient
            context: Clinic details; defaults to the dispatcher's

        Returns:
            Outcome with one record per attempted delivery

        Raises:
            ValidationException: If a recipient is invalid
            NotificationDeliveryError: If the patient delivery failed
        """
        self._validate(doctor, patient)
        ctx = context or self.context
        kind = NotificationKind.CONFIRMATION
        attachment = self.calendar.confirmation(appointment, doctor, patient).to_attachment()
        headers = {"X-Appointment-ID": str(appointment.id), "X-Appointment-Type": kind.value}

        patient_message = EmailMessage(
            to=[patient.formatted()],
            subject=f"✅ Cita confirmada - {ctx.clinic_name}",
            html=self._render(confirmation_template(appointment, doctor.name, patient.name, ctx)),
            attachments=[attachment],
            headers=headers,
            tags=["appointment", kind.value],
        )
        outcome = NotificationOutcome(kind=kind)
        outcome.records.append(await self._deliver(appointment, kind, patient, patient_message))

        doctor_message = EmailMessage(
            to=[doctor.formatted()],
            subject=f"📋 Cita confirmada con {patient.name} - {ctx.clinic_name}",
            html=self._render(
                confirmation_template(appointment, doctor.name, patient.name, ctx, audience="doctor")
            ),
            attachments=[attachment],
            headers={**headers, "X-Appointment-Type": "confirmation-doctor"},
            tags=["appointment", kind.value, "doctor-copy"],
        )
        await self._deliver_doctor_copy(outcome, appointment, doctor, patient, doctor_message)

        logger.info(
            "confirmation_dispatched",
            appointment_id=str(appointment.id),
            warnings=len(outcome.warnings),
        )
        return outcome

    async def send_cancellation(
        self,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
        reason: str | None = None,
        context: NotificationContext | None = None,
    ) -> NotificationOutcome:
        """Send the cancellation notice with a CANCEL calendar artifact."""
        self._validate(doctor, patient)
        ctx = context or self.context
        kind = NotificationKind.CANCELLATION
        attachment = self.calendar.cancellation(appointment, doctor, patient, reason).to_attachment()
        headers = {
            "X-Appointment-ID": str(appointment.id),
            "X-Appointment-Type": kind.value,
            "X-Cancellation-Reason": reason or "Not specified",
        }

        patient_message = EmailMessage(
            to=[patient.formatted()],
            subject=f"❌ Cita cancelada - {ctx.clinic_name}",
            html=self._render(
                cancellation_template(appointment, doctor.name, patient.name, ctx, reason)
            ),
            attachments=[attachment],
            headers=headers,
            tags=["appointment", kind.value],
        )
        outcome = NotificationOutcome(kind=kind)
        outcome.records.append(await self._deliver(appointment, kind, patient, patient_message))

        doctor_message = EmailMessage(
            to=[doctor.formatted()],
            subject=f"📋 Cita cancelada - {patient.name} - {ctx.clinic_name}",
            html=self._render(
                cancellation_template(
                    appointment, doctor.name, patient.name, ctx, reason, audience="doctor"
                )
            ),
            attachments=[attachment],
            headers={**headers, "X-Appointment-Type": "cancellation-doctor"},
            tags=["appointment", kind.value, "doctor-copy"],
        )
        await self._deliver_doctor_copy(outcome, appointment, doctor, patient, doctor_message)

        logger.info(
            "cancellation_dispatched",
            appointment_id=str(appointment.id),
            warnings=len(outcome.warnings),
        )
        return outcome

    async def send_reminder(
        self,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
        hours_before: int = 24,
        context: NotificationContext | None = None,
    ) -> NotificationOutcome:
        """Send a 24h or 2h reminder to the patient only."""
        if hours_before not in (24, 2):
            raise ValidationException("hours_before must be 24 or 2")

        self._validate(doctor, patient)
        ctx = context or self.context
        kind = NotificationKind.reminder(hours_before)
        urgent = hours_before == 2
        when = "en 2 horas" if urgent else "mañana"
        emoji = "⏰" if urgent else "📅"

        message = EmailMessage(
            to=[patient.formatted()],
            subject=f"{emoji} Recordatorio: Tu cita es {when} - {ctx.clinic_name}",
            html=self._render(
                reminder_template(appointment, doctor.name, patient.name, ctx, hours_before)
            ),
            attachments=[self.calendar.reminder(appointment, doctor, patient).to_attachment()],
            headers={
                "X-Appointment-ID": str(appointment.id),
                "X-Appointment-Type": "reminder",
                "X-Reminder-Hours": str(hours_before),
                "X-Priority": "high" if urgent else "normal",
            },
            tags=["appointment", "reminder", kind.value],
        )
        outcome = NotificationOutcome(kind=kind)
        outcome.records.append(await self._deliver(appointment, kind, patient, message))

        logger.info(
            "reminder_dispatched",
            appointment_id=str(appointment.id),
            hours_before=hours_before,
        )
        return outcome

    async def send_reschedule(
        self,
        appointment: Appointment,
        doctor: EmailRecipient,
        patient: EmailRecipient,
        previous_start: datetime,
        previous_end: datetime,
        context: NotificationContext | None = None,
    ) -> NotificationOutcome:
        """Send the reschedule notice; metadata carries the old and new start."""
        self._validate(doctor, patient)
        ctx = context or self.context
        kind = NotificationKind.RESCHEDULE
        artifact = self.calendar.reschedule(
            appointment, doctor, patient, previous_start, previous_end
        )

        message = EmailMessage(
            to=[patient.formatted()],
            subject=f"🔄 Cita reprogramada - {ctx.clinic_name}",
            html=self._render(
                confirmation_template(
                    appointment,
                    doctor.name,
                    patient.name,
                    ctx,
                    previous_start=previous_start,
                    previous_end=previous_end,
                )
            ),
            attachments=[artifact.to_attachment()],
            headers={
                "X-Appointment-ID": str(appointment.id),
                "X-Appointment-Type": kind.value,
                "X-Original-Start": previous_start.isoformat(),
                "X-New-Start": appointment.starts_at.isoformat(),
            },
            tags=["appointment", kind.value],
        )
        outcome = NotificationOutcome(kind=kind)
        outcome.records.append(await self._deliver(appointment, kind, patient, message))

        logger.info("reschedule_dispatched", appointment_id=str(appointment.id))
        return outcome

    async def send_batch_reminders(
        self,
        targets: list[ReminderTarget],
        context: NotificationContext | None = None,
    ) -> BatchReminderResult:
        """
        Send reminders one at a time, in input order.

        A failed item is recorded as ``"<id>: <message>"`` and does not stop
        the batch.
        """
        result = BatchReminderResult()

        for target in targets:
            try:
                await self.send_reminder(
                    target.appointment,
                    target.doctor,
                    target.patient,
                    target.hours_before,
                    context,
                )
            except Exception as e:
                result.failed += 1
                result.errors.append(f"{target.appointment.id}: {getattr(e, 'message', str(e))}")
                logger.warning(
                    "batch_reminder_failed",
                    appointment_id=str(target.appointment.id),
                    error=str(e),
                )
            else:
                result.successful += 1

        logger.info(
            "batch_reminders_completed",
            successful=result.successful,
            failed=result.failed,
        )
        return result
