"""Appointment service for scheduling and lifecycle business logic."""

from collections.abc import Callable
from datetime import date, datetime, time, timedelta
from uuid import UUID

import structlog

from app.core import time_policy
from app.core.exceptions import (
    AppException,
    BadRequestException,
    InvalidTransitionException,
    NotFoundException,
    OverlapConflictException,
)
from app.core.lifecycle import LifecycleEvent, ensure_transition
from app.notifications.calendar import CalendarArtifact, CalendarArtifactGenerator
from app.notifications.dispatcher import NotificationDispatcher, ReminderTarget
from app.repositories.appointment_repository import AppointmentRepository
from app.repositories.contact_repository import ContactDirectory
from app.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentStats,
    AppointmentStatus,
    AppointmentUpdate,
    LifecycleResult,
    OverlapValidationResult,
)
from app.schemas.consult import ConsultSummaryRequest, GeneratedPdf, PdfConsultData
from app.schemas.notifications import (
    BatchReminderResult,
    EmailRecipient,
    NotificationContext,
    NotificationKind,
    NotificationOutcome,
    ReminderItem,
)
from app.services.overlap_service import OverlapDetector
from app.services.pdf_service import generate_consult_pdf

logger = structlog.get_logger(__name__)

BOOKED_STATUSES = [AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED]


class AppointmentService:
    """Service for booking appointments and applying lifecycle transitions.

    Every mutation reads the current row, validates the transition and
    applies a conditional update. Notifications are best-effort: a failed
    dispatch is reported in the result and never undoes the committed write.
    """

    def __init__(
        self,
        repository: AppointmentRepository,
        contacts: ContactDirectory,
        dispatcher: NotificationDispatcher | None = None,
        calendar: CalendarArtifactGenerator | None = None,
        clock: Callable[[], datetime] = time_policy.now,
    ):
        """Initialize service with storage, contact lookup and notification capabilities."""
        self.repository = repository
        self.contacts = contacts
        self.dispatcher = dispatcher
        self.calendar = calendar or (dispatcher.calendar if dispatcher else CalendarArtifactGenerator())
        self.clock = clock
        self.overlap = OverlapDetector(repository)

    async def _ensure_no_overlap(
        self,
        doctor_id: UUID,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: UUID | None = None,
    ) -> None:
        result = await self.overlap.check_overlap(doctor_id, starts_at, ends_at, exclude_id)
        if result.has_overlap:
            raise OverlapConflictException(
                result.message or OverlapConflictException().message,
                conflicts=result.conflicting_appointments,
            )

    async def _participants(self, appointment: Appointment) -> tuple[EmailRecipient, EmailRecipient]:
        doctor = await self.contacts.get_contact(appointment.doctor_id)
        if doctor is None:
            raise NotFoundException("Médico no encontrado")

        patient = await self.contacts.get_contact(appointment.patient_id)
        if patient is None:
            raise NotFoundException("Paciente no encontrado")

        return doctor.as_recipient(), patient.as_recipient()

    async def _notify(
        self,
        appointment: Appointment,
        kind: NotificationKind,
        reason: str | None = None,
        previous: Appointment | None = None,
    ) -> NotificationOutcome | None:
        if self.dispatcher is None:
            return None

        try:
            doctor, patient = await self._participants(appointment)

            if kind == NotificationKind.CANCELLATION:
                return await self.dispatcher.send_cancellation(appointment, doctor, patient, reason)

            if kind == NotificationKind.RESCHEDULE and previous is not None:
                return await self.dispatcher.send_reschedule(
                    appointment, doctor, patient, previous.starts_at, previous.ends_at
                )

            return await self.dispatcher.send_confirmation(appointment, doctor, patient)
        except Exception as e:
            # Log error but don't fail the request
            message = e.message if isinstance(e, AppException) else str(e)
            logger.warning(
                "appointment_notification_failed",
                appointment_id=str(appointment.id),
                kind=kind.value,
                error=message,
            )
            return NotificationOutcome(kind=kind, error=message)

    async def check_overlap(
        self,
        doctor_id: UUID,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: UUID | None = None,
    ) -> OverlapValidationResult:
        """Run the read-only overlap pre-check."""
        return await self.overlap.check_overlap(doctor_id, starts_at, ends_at, exclude_id)

    async def create_appointment(self, data: AppointmentCreate) -> LifecycleResult:
        """
        Book a new appointment.

        Args:
            data: Appointment creation data

        Returns:
            Created appointment and the confirmation outcome

        Raises:
            ValidationException: If the slot breaks a time rule
            NotFoundException: If a participant does not exist
            BadRequestException: If the doctor id does not belong to a doctor
            OverlapConflictException: If the doctor is already booked
        """
        time_policy.ensure_schedulable(data.starts_at, data.ends_at, self.clock())

        doctor = await self.contacts.get_contact(data.doctor_id)
        if doctor is None:
            raise NotFoundException("Médico no encontrado")
        if doctor.role != "doctor":
            raise BadRequestException("El usuario indicado no es un médico")

        if await self.contacts.get_contact(data.patient_id) is None:
            raise NotFoundException("Paciente no encontrado")

        await self._ensure_no_overlap(data.doctor_id, data.starts_at, data.ends_at)

        appointment = await self.repository.insert_appointment(
            {
                "patient_id": data.patient_id,
                "doctor_id": data.doctor_id,
                "starts_at": data.starts_at,
                "ends_at": data.ends_at,
                "notes": data.notes,
                "status": AppointmentStatus.SCHEDULED.value,
                "sequence": 0,
            }
        )
        logger.info(
            "appointment_created",
            appointment_id=str(appointment.id),
            doctor_id=str(appointment.doctor_id),
        )

        notification = await self._notify(appointment, NotificationKind.CONFIRMATION)
        return LifecycleResult(appointment=appointment, notification=notification)

    async def get_appointment(self, appointment_id: UUID) -> Appointment:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        appointment = await self.repository.get_appointment(appointment_id)
        if appointment is None:
            raise NotFoundException("Cita no encontrada")
        return appointment

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """List appointments with filtering and pagination."""
        items = await self.repository.list_appointments(filters)
        total = await self.repository.count_appointments(filters)
        return AppointmentListResponse(
            total=total,
            limit=filters.limit,
            offset=filters.offset,
            items=[item.model_dump() for item in items],
        )

    async def update_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentUpdate,
    ) -> LifecycleResult:
        """
        Edit notes and/or time of an appointment.

        A time edit is validated like a reschedule, resets the status to
        ``scheduled`` and notifies as a reschedule. A notes-only edit is
        silent.

        Raises:
            BadRequestException: If the request changes nothing
            InvalidTransitionException: If the edit is not allowed in the current state
            ValidationException: If the new slot breaks a time rule
            OverlapConflictException: If the new slot is taken
        """
        current = await self.get_appointment(appointment_id)
        edits_notes = "notes" in data.model_fields_set

        if not data.changes_time and not edits_notes:
            raise BadRequestException("No hay cambios para aplicar")

        patch: dict = {}
        if edits_notes:
            ensure_transition(current.status, LifecycleEvent.EDIT_NOTES)
            patch["notes"] = data.notes

        if not data.changes_time:
            updated = await self.repository.update_appointment(
                appointment_id, patch, expected_updated_at=current.updated_at
            )
            logger.info("appointment_notes_updated", appointment_id=str(appointment_id))
            return LifecycleResult(appointment=updated)

        target = ensure_transition(current.status, LifecycleEvent.EDIT_TIME)
        if not time_policy.is_future(current.starts_at, self.clock()):
            raise InvalidTransitionException(
                current.status.value,
                LifecycleEvent.EDIT_TIME.value,
                "No se puede cambiar el horario de una cita pasada",
            )

        starts_at = data.starts_at or current.starts_at
        ends_at = data.ends_at or current.ends_at
        time_policy.ensure_schedulable(starts_at, ends_at, self.clock())
        await self._ensure_no_overlap(current.doctor_id, starts_at, ends_at, exclude_id=current.id)

        patch.update(
            {
                "starts_at": starts_at,
                "ends_at": ends_at,
                "status": target.value,
                "sequence": current.sequence + 1,
            }
        )
        updated = await self.repository.update_appointment(
            appointment_id, patch, expected_updated_at=current.updated_at
        )
        logger.info("appointment_time_updated", appointment_id=str(appointment_id))

        notification = await self._notify(updated, NotificationKind.RESCHEDULE, previous=current)
        return LifecycleResult(appointment=updated, notification=notification)

    async def confirm_appointment(self, appointment_id: UUID) -> LifecycleResult:
        """
        Confirm an appointment.

        Confirming an already confirmed appointment succeeds without changes
        and sends nothing.

        Raises:
            InvalidTransitionException: If the appointment is terminal or already past
        """
        current = await self.get_appointment(appointment_id)
        if current.status == AppointmentStatus.CONFIRMED:
            return LifecycleResult(appointment=current)

        target = ensure_transition(current.status, LifecycleEvent.CONFIRM)
        if not time_policy.is_future(current.starts_at, self.clock()):
            raise InvalidTransitionException(
                current.status.value,
                LifecycleEvent.CONFIRM.value,
                "No se puede confirmar una cita pasada",
            )

        updated = await self.repository.update_appointment(
            appointment_id,
            {"status": target.value, "sequence": current.sequence + 1},
            expected_updated_at=current.updated_at,
        )
        logger.info("appointment_confirmed", appointment_id=str(appointment_id))

        notification = await self._notify(updated, NotificationKind.CONFIRMATION)
        return LifecycleResult(appointment=updated, notification=notification)

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        reason: str | None = None,
    ) -> LifecycleResult:
        """
        Cancel an appointment, freeing its slot.

        Raises:
            InvalidTransitionException: If the appointment is already terminal
        """
        current = await self.get_appointment(appointment_id)
        target = ensure_transition(current.status, LifecycleEvent.CANCEL)

        patch = {
            "status": target.value,
            "cancelled_at": self.clock(),
            "cancellation_reason": reason,
        }
        if reason:
            patch["notes"] = f"Cancelada: {reason}"

        updated = await self.repository.update_appointment(
            appointment_id, patch, expected_updated_at=current.updated_at
        )
        logger.info("appointment_cancelled", appointment_id=str(appointment_id), reason=reason)

        notification = await self._notify(updated, NotificationKind.CANCELLATION, reason=reason)
        return LifecycleResult(appointment=updated, notification=notification)

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentReschedule,
    ) -> LifecycleResult:
        """
        Move an appointment to a new slot.

        The status returns to ``scheduled``; the previous slot is passed to
        the reschedule notification.

        Raises:
            InvalidTransitionException: If the appointment is terminal
            ValidationException: If the new slot breaks a time rule
            OverlapConflictException: If the new slot is taken
        """
        current = await self.get_appointment(appointment_id)
        target = ensure_transition(current.status, LifecycleEvent.RESCHEDULE)

        time_policy.ensure_schedulable(data.starts_at, data.ends_at, self.clock())
        await self._ensure_no_overlap(
            current.doctor_id, data.starts_at, data.ends_at, exclude_id=current.id
        )

        updated = await self.repository.update_appointment(
            appointment_id,
            {
                "starts_at": data.starts_at,
                "ends_at": data.ends_at,
                "status": target.value,
                "sequence": current.sequence + 1,
            },
            expected_updated_at=current.updated_at,
        )
        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            previous_start=current.starts_at.isoformat(),
            new_start=updated.starts_at.isoformat(),
        )

        notification = await self._notify(updated, NotificationKind.RESCHEDULE, previous=current)
        return LifecycleResult(appointment=updated, notification=notification)

    async def start_appointment(self, appointment_id: UUID) -> LifecycleResult:
        """
        Mark a confirmed appointment as in progress.

        Raises:
            InvalidTransitionException: If not confirmed or not yet started
        """
        current = await self.get_appointment(appointment_id)
        target = ensure_transition(current.status, LifecycleEvent.START)

        if self.clock() < current.starts_at:
            raise InvalidTransitionException(
                current.status.value,
                LifecycleEvent.START.value,
                "La cita aún no ha comenzado",
            )

        updated = await self.repository.update_appointment(
            appointment_id, {"status": target.value}, expected_updated_at=current.updated_at
        )
        logger.info("appointment_started", appointment_id=str(appointment_id))
        return LifecycleResult(appointment=updated)

    async def complete_appointment(
        self,
        appointment_id: UUID,
        notes: str | None = None,
    ) -> LifecycleResult:
        """
        Mark an appointment as completed.

        A confirmed appointment can only complete after its end; one in
        progress can complete at any time.

        Raises:
            InvalidTransitionException: If the transition or its timing is not allowed
        """
        current = await self.get_appointment(appointment_id)
        target = ensure_transition(current.status, LifecycleEvent.COMPLETE)

        if current.status != AppointmentStatus.IN_PROGRESS and self.clock() < current.ends_at:
            raise InvalidTransitionException(
                current.status.value,
                LifecycleEvent.COMPLETE.value,
                "La cita aún no ha finalizado",
            )

        patch: dict = {"status": target.value}
        if notes is not None:
            patch["notes"] = notes

        updated = await self.repository.update_appointment(
            appointment_id, patch, expected_updated_at=current.updated_at
        )
        logger.info("appointment_completed", appointment_id=str(appointment_id))
        return LifecycleResult(appointment=updated)

    async def mark_no_show(
        self,
        appointment_id: UUID,
        notes: str | None = None,
    ) -> LifecycleResult:
        """
        Mark that the patient did not attend.

        Raises:
            InvalidTransitionException: If the transition is not allowed or the slot has not ended
        """
        current = await self.get_appointment(appointment_id)
        target = ensure_transition(current.status, LifecycleEvent.NO_SHOW)

        if self.clock() < current.ends_at:
            raise InvalidTransitionException(
                current.status.value,
                LifecycleEvent.NO_SHOW.value,
                "La cita aún no ha finalizado",
            )

        patch: dict = {"status": target.value}
        if notes is not None:
            patch["notes"] = notes

        updated = await self.repository.update_appointment(
            appointment_id, patch, expected_updated_at=current.updated_at
        )
        logger.info("appointment_no_show", appointment_id=str(appointment_id))
        return LifecycleResult(appointment=updated)

    async def get_doctor_schedule(self, doctor_id: UUID, day: date) -> list[Appointment]:
        """Non-cancelled appointments of a doctor on a local calendar day."""
        tz = time_policy.get_timezone()
        day_start = datetime.combine(day, time.min, tzinfo=tz)
        day_end = day_start + timedelta(days=1) - timedelta(microseconds=1)

        filters = AppointmentFilters(
            doctor_id=doctor_id,
            statuses=[s for s in AppointmentStatus if s != AppointmentStatus.CANCELLED],
            date_from=day_start,
            date_to=day_end,
        )
        return await self.repository.list_appointments(filters)

    async def get_upcoming_for_patient(
        self,
        patient_id: UUID,
        limit: int = 10,
    ) -> list[Appointment]:
        """Booked future appointments of a patient, soonest first."""
        filters = AppointmentFilters(
            patient_id=patient_id,
            statuses=BOOKED_STATUSES,
            date_from=self.clock(),
            limit=limit,
        )
        return await self.repository.list_appointments(filters)

    async def get_stats(
        self,
        doctor_id: UUID | None = None,
        patient_id: UUID | None = None,
    ) -> AppointmentStats:
        """Per-status appointment counts."""
        base = AppointmentFilters(doctor_id=doctor_id, patient_id=patient_id)
        counts = {"total": await self.repository.count_appointments(base)}

        for status in AppointmentStatus:
            filters = base.model_copy(update={"statuses": [status]})
            counts[status.value.replace("-", "_")] = await self.repository.count_appointments(filters)

        return AppointmentStats(**counts)

    async def find_due_reminders(
        self,
        hours_before: int,
        window: timedelta = timedelta(hours=1),
    ) -> list[ReminderItem]:
        """Booked appointments starting in ``[now + hours_before, now + hours_before + window)``."""
        window_start = self.clock() + timedelta(hours=hours_before)
        filters = AppointmentFilters(
            statuses=BOOKED_STATUSES,
            date_from=window_start,
            date_to=window_start + window - timedelta(microseconds=1),
        )
        appointments = await self.repository.list_appointments(filters)
        return [
            ReminderItem(appointment_id=appointment.id, hours_before=hours_before)
            for appointment in appointments
        ]

    async def send_reminders(
        self,
        items: list[ReminderItem],
        context: NotificationContext | None = None,
    ) -> BatchReminderResult:
        """
        Resolve and send a reminder batch.

        Items that cannot be resolved (unknown appointment, no longer booked,
        missing contact) are reported first, followed by the dispatcher's
        per-item results in input order.

        Raises:
            BadRequestException: If notifications are not configured
        """
        if self.dispatcher is None:
            raise BadRequestException("Notifications are not configured")

        targets: list[ReminderTarget] = []
        unresolved: list[str] = []

        for item in items:
            try:
                appointment = await self.get_appointment(item.appointment_id)
                if appointment.status not in BOOKED_STATUSES:
                    raise BadRequestException(
                        f"Appointment in status '{appointment.status.value}' does not get reminders"
                    )
                doctor, patient = await self._participants(appointment)
            except AppException as e:
                unresolved.append(f"{item.appointment_id}: {e.message}")
                continue

            targets.append(ReminderTarget(appointment, doctor, patient, item.hours_before))

        result = await self.dispatcher.send_batch_reminders(targets, context)
        result.failed += len(unresolved)
        result.errors = unresolved + result.errors
        return result

    async def get_calendar_artifact(self, appointment_id: UUID) -> CalendarArtifact:
        """Current calendar object of an appointment: a cancellation once cancelled."""
        appointment = await self.get_appointment(appointment_id)
        doctor, patient = await self._participants(appointment)

        if appointment.status == AppointmentStatus.CANCELLED:
            return self.calendar.cancellation(
                appointment, doctor, patient, appointment.cancellation_reason
            )
        return self.calendar.confirmation(appointment, doctor, patient)

    async def generate_consult_summary(
        self,
        appointment_id: UUID,
        data: ConsultSummaryRequest,
    ) -> GeneratedPdf:
        """
        Build the consult summary PDF of an appointment.

        Raises:
            NotFoundException: If the appointment or a participant is unknown
            InvalidTransitionException: If the appointment was cancelled
        """
        appointment = await self.get_appointment(appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED:
            raise InvalidTransitionException(
                appointment.status.value,
                "summarize",
                "No se puede generar un informe de una cita cancelada",
            )

        doctor, patient = await self._participants(appointment)
        pdf_data = PdfConsultData(
            appointment=appointment,
            patient_name=patient.name,
            doctor_name=doctor.name,
            **data.model_dump(exclude_none=True),
        )
        return generate_consult_pdf(pdf_data)
