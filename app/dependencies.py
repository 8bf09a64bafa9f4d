"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.retry import RetryPolicy
from app.database import get_db
from app.notifications.calendar import CalendarArtifactGenerator
from app.notifications.dispatcher import NotificationDispatcher
from app.notifications.email_service import EmailService
from app.notifications.rendering import MjmlRenderer
from app.notifications.transport import build_transport
from app.repositories.appointment_repository import AppointmentRepository, SqlAppointmentRepository
from app.repositories.contact_repository import ContactDirectory, SqlContactDirectory
from app.schemas.notifications import NotificationContext
from app.services.appointment_service import AppointmentService


def get_notification_context() -> NotificationContext:
    """Clinic details from settings."""
    return NotificationContext(
        clinic_name=settings.clinic_name,
        clinic_address=settings.clinic_address,
        appointment_url=settings.patient_portal_url,
        reschedule_url=settings.patient_portal_url,
        contact_phone=settings.clinic_contact_phone,
    )


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    """
    Build the process-wide notification dispatcher.

    Raises:
        ValueError: If the configured e-mail provider is invalid
    """
    email_service = EmailService(
        transport=build_transport(settings),
        default_from=settings.email_from,
        policy=RetryPolicy(
            max_attempts=settings.email_retry_attempts,
            base_delay_ms=settings.email_retry_delay_ms,
        ),
    )
    calendar = CalendarArtifactGenerator(
        uid_domain=settings.calendar_uid_domain,
        location=f"{settings.clinic_address} - {settings.clinic_name}",
        reminder_minutes=settings.calendar_reminder_minutes,
    )
    return NotificationDispatcher(
        email_service=email_service,
        calendar=calendar,
        renderer=MjmlRenderer() if settings.mjml_enabled else None,
        context=get_notification_context(),
    )


def get_appointment_repository(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AppointmentRepository:
    """Appointment repository bound to the request session."""
    return SqlAppointmentRepository(db)


def get_contact_directory(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ContactDirectory:
    """Contact directory bound to the request session."""
    return SqlContactDirectory(db)


def get_appointment_service(
    repository: Annotated[AppointmentRepository, Depends(get_appointment_repository)],
    contacts: Annotated[ContactDirectory, Depends(get_contact_directory)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_dispatcher)],
) -> AppointmentService:
    """Appointment service wired with storage and notifications."""
    return AppointmentService(repository, contacts, dispatcher)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
