"""Appointment endpoints."""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from app.dependencies import AppointmentServiceDep
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentNotesUpdate,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStats,
    AppointmentStatus,
    AppointmentUpdate,
    LifecycleResult,
    OverlapCheckRequest,
    OverlapValidationResult,
)
from app.schemas.consult import ConsultSummaryRequest

router = APIRouter()


@router.post(
    "/",
    response_model=LifecycleResult,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    service: AppointmentServiceDep,
) -> LifecycleResult:
    """
    Book an appointment and send the confirmation.

    Args:
        data: Appointment creation data
        service: Appointment service

    Returns:
        Created appointment and notification outcome

    Raises:
        ValidationException: If the slot breaks a scheduling rule (422)
        OverlapConflictException: If the doctor is already booked (409)
    """
    return await service.create_appointment(data)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    service: AppointmentServiceDep,
    patient_id: UUID | None = Query(None),
    doctor_id: UUID | None = Query(None),
    status_filter: list[AppointmentStatus] | None = Query(None, alias="status"),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    limit: int | None = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> AppointmentListResponse:
    """
    List appointments ordered by start time.

    Args:
        service: Appointment service
        patient_id: Filter by patient
        doctor_id: Filter by doctor
        status_filter: Filter by one or more statuses
        date_from: Earliest start time
        date_to: Latest start time
        limit: Page size
        offset: Items to skip

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        patient_id=patient_id,
        doctor_id=doctor_id,
        statuses=status_filter,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return await service.list_appointments(filters)


@router.get(
    "/stats",
    response_model=AppointmentStats,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Appointment counts per status",
)
async def get_appointment_stats(
    service: AppointmentServiceDep,
    doctor_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
) -> AppointmentStats:
    """Count appointments per status, optionally for one doctor or patient."""
    return await service.get_stats(doctor_id=doctor_id, patient_id=patient_id)


@router.post(
    "/check-overlap",
    response_model=OverlapValidationResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check a slot for conflicts",
)
async def check_overlap(
    data: OverlapCheckRequest,
    service: AppointmentServiceDep,
) -> OverlapValidationResult:
    """
    Check whether a doctor already has appointments in a slot.

    Read-only; the booking itself is still guarded by the database.
    """
    return await service.check_overlap(data.doctor_id, data.starts_at, data.ends_at, data.exclude_id)


@router.get(
    "/doctors/{doctor_id}/schedule",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Doctor's schedule for a day",
)
async def get_doctor_schedule(
    doctor_id: UUID,
    service: AppointmentServiceDep,
    day: date = Query(..., alias="date"),
) -> list[AppointmentResponse]:
    """
    List a doctor's non-cancelled appointments on a local calendar day.

    Args:
        doctor_id: Doctor ID
        service: Appointment service
        day: Day in the clinic's timezone

    Returns:
        Appointments ordered by start time
    """
    appointments = await service.get_doctor_schedule(doctor_id, day)
    return [AppointmentResponse.model_validate(a.model_dump()) for a in appointments]


@router.get(
    "/patients/{patient_id}/upcoming",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Patient's upcoming appointments",
)
async def get_patient_upcoming(
    patient_id: UUID,
    service: AppointmentServiceDep,
    limit: int = Query(10, ge=1, le=100),
) -> list[AppointmentResponse]:
    """List a patient's scheduled or confirmed future appointments."""
    appointments = await service.get_upcoming_for_patient(patient_id, limit)
    return [AppointmentResponse.model_validate(a.model_dump()) for a in appointments]


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Raises:
        NotFoundException: If appointment not found
    """
    appointment = await service.get_appointment(appointment_id)
    return AppointmentResponse.model_validate(appointment.model_dump())


@router.patch(
    "/{appointment_id}",
    response_model=LifecycleResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Edit appointment notes or time",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    service: AppointmentServiceDep,
) -> LifecycleResult:
    """
    Edit notes and/or time.

    A time change is validated and notified like a reschedule.

    Args:
        appointment_id: Appointment ID
        data: Fields to change
        service: Appointment service

    Returns:
        Updated appointment and notification outcome
    """
    return await service.update_appointment(appointment_id, data)


@router.post(
    "/{appointment_id}/confirm",
    response_model=LifecycleResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: UUID,
    service: AppointmentServiceDep,
) -> LifecycleResult:
    """Confirm an appointment; confirming twice is a no-op."""
    return await service.confirm_appointment(appointment_id)


@router.post(
    "/{appointment_id}/cancel",
    response_model=LifecycleResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    service: AppointmentServiceDep,
    data: AppointmentCancel | None = None,
) -> LifecycleResult:
    """
    Cancel an appointment and notify the participants.

    Args:
        appointment_id: Appointment ID
        service: Appointment service
        data: Optional cancellation reason

    Returns:
        Cancelled appointment and notification outcome
    """
    reason = data.reason if data else None
    return await service.cancel_appointment(appointment_id, reason)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=LifecycleResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    service: AppointmentServiceDep,
) -> LifecycleResult:
    """Move an appointment to a new slot and notify the patient."""
    return await service.reschedule_appointment(appointment_id, data)


@router.post(
    "/{appointment_id}/start",
    response_model=LifecycleResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Start appointment",
)
async def start_appointment(
    appointment_id: UUID,
    service: AppointmentServiceDep,
) -> LifecycleResult:
    """Mark a confirmed appointment as in progress."""
    return await service.start_appointment(appointment_id)


@router.post(
    "/{appointment_id}/complete",
    response_model=LifecycleResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Complete appointment",
)
async def complete_appointment(
    appointment_id: UUID,
    service: AppointmentServiceDep,
    data: AppointmentNotesUpdate | None = None,
) -> LifecycleResult:
    """Mark an appointment as completed, optionally recording notes."""
    return await service.complete_appointment(appointment_id, data.notes if data else None)


@router.post(
    "/{appointment_id}/no-show",
    response_model=LifecycleResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark appointment as no-show",
)
async def mark_no_show(
    appointment_id: UUID,
    service: AppointmentServiceDep,
    data: AppointmentNotesUpdate | None = None,
) -> LifecycleResult:
    """Record that the patient did not attend."""
    return await service.mark_no_show(appointment_id, data.notes if data else None)


@router.get(
    "/{appointment_id}/calendar.ics",
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Download calendar file",
    response_class=Response,
)
async def download_calendar(
    appointment_id: UUID,
    service: AppointmentServiceDep,
) -> Response:
    """
    Download the current calendar object of an appointment.

    Returns:
        iCalendar file; a cancellation once the appointment is cancelled
    """
    artifact = await service.get_calendar_artifact(appointment_id)
    return Response(
        content=artifact.content,
        media_type=artifact.content_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.post(
    "/{appointment_id}/consult-summary",
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Generate consult summary PDF",
    response_class=Response,
)
async def generate_consult_summary(
    appointment_id: UUID,
    data: ConsultSummaryRequest,
    service: AppointmentServiceDep,
) -> Response:
    """
    Generate the consult summary PDF of an appointment.

    Args:
        appointment_id: Appointment ID
        data: Clinical content of the summary
        service: Appointment service

    Returns:
        PDF document
    """
    pdf = await service.generate_consult_summary(appointment_id, data)
    return Response(
        content=pdf.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{pdf.filename}"'},
    )
