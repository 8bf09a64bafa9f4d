"""Notification endpoints."""

from fastapi import APIRouter, status

from app.dependencies import AppointmentServiceDep
from app.schemas.notifications import BatchReminderRequest, BatchReminderResult

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post(
    "/reminders",
    response_model=BatchReminderResult,
    status_code=status.HTTP_200_OK,
    summary="Send appointment reminders",
)
async def send_reminders(
    data: BatchReminderRequest,
    service: AppointmentServiceDep,
) -> BatchReminderResult:
    """
    Send 24h or 2h reminders for a batch of appointments.

    Items are processed one at a time; a failed item is reported in
    ``errors`` and does not stop the rest of the batch.

    Args:
        data: Appointments to remind and optional clinic context
        service: Appointment service

    Returns:
        Counts of sent and failed reminders with per-item errors
    """
    return await service.send_reminders(data.items, data.context)
