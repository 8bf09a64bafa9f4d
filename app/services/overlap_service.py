"""Overlap detection for a doctor's schedule."""

from datetime import datetime
from uuid import UUID

import structlog

from app.core.time_policy import ensure_valid_range, to_local
from app.repositories.appointment_repository import AppointmentRepository
from app.schemas.appointments import ConflictingAppointment, OverlapValidationResult

logger = structlog.get_logger(__name__)


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """Half-open intersection: ranges touching at a boundary do not overlap."""
    return a_start < b_end and b_start < a_end


def overlap_message(count: int) -> str:
    """User-facing conflict summary."""
    return f"Conflicto detectado: {count} cita(s) en ese horario"


class OverlapDetector:
    """Read-only pre-check for double booking.

    The store's exclusion constraint remains the authority under concurrency;
    this check gives callers the conflicting set before they submit.
    """

    def __init__(self, repository: AppointmentRepository):
        """Initialize detector with an appointment repository."""
        self.repository = repository

    async def check_overlap(
        self,
        doctor_id: UUID,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: UUID | None = None,
    ) -> OverlapValidationResult:
        """
        Find non-cancelled appointments of a doctor intersecting a range.

        Args:
            doctor_id: Doctor whose schedule is checked
            starts_at: Candidate start (inclusive)
            ends_at: Candidate end (exclusive)
            exclude_id: Appointment to ignore, used when validating an edit

        Returns:
            Overlap validation result

        Raises:
            InvalidRangeError: If ends_at is not after starts_at
        """
        ensure_valid_range(starts_at, ends_at)
        starts_at, ends_at = to_local(starts_at), to_local(ends_at)

        found = await self.repository.find_overlapping(doctor_id, starts_at, ends_at, exclude_id)
        conflicts = [
            ConflictingAppointment.model_validate(appointment)
            for appointment in found
            if appointment.id != exclude_id
        ]

        if conflicts:
            logger.info(
                "appointment_overlap_detected",
                doctor_id=str(doctor_id),
                conflicts=[str(c.id) for c in conflicts],
            )

        return OverlapValidationResult(
            has_overlap=bool(conflicts),
            conflicting_appointments=conflicts,
            message=overlap_message(len(conflicts)) if conflicts else None,
        )
