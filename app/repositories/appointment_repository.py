"""Storage query surface for appointments."""

from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictException,
    OverlapConflictException,
    StorageException,
)
from app.models.appointments import OVERLAP_CONSTRAINT_NAME, appointments
from app.schemas.appointments import (
    Appointment,
    AppointmentFilters,
    AppointmentStatus,
    appointment_from_row,
)

logger = structlog.get_logger(__name__)

EXCLUSION_VIOLATION = "23P01"


class AppointmentRepository(Protocol):
    """Persistence operations the scheduling core depends on.

    Implementations must enforce the per-doctor half-open exclusion atomically
    on insert and update, raising ``OverlapConflictException`` when it fires.
    """

    async def list_appointments(self, filters: AppointmentFilters) -> list[Appointment]: ...

    async def count_appointments(self, filters: AppointmentFilters) -> int: ...

    async def get_appointment(self, appointment_id: UUID) -> Appointment | None: ...

    async def insert_appointment(self, fields: dict[str, Any]) -> Appointment: ...

    async def update_appointment(
        self,
        appointment_id: UUID,
        patch: dict[str, Any],
        expected_updated_at: datetime | None = None,
    ) -> Appointment: ...

    async def find_overlapping(
        self,
        doctor_id: UUID,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: UUID | None = None,
    ) -> list[Appointment]: ...


def is_overlap_violation(error: IntegrityError) -> bool:
    """Whether an integrity error comes from the anti-overlap exclusion constraint."""
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate == EXCLUSION_VIOLATION or OVERLAP_CONSTRAINT_NAME in str(orig)


class SqlAppointmentRepository:
    """Appointment repository over PostgreSQL using SQLAlchemy Core."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    @staticmethod
    def _conditions(filters: AppointmentFilters) -> list[Any]:
        conditions: list[Any] = []

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.doctor_id:
            conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.statuses:
            conditions.append(appointments.c.status.in_([s.value for s in filters.statuses]))

        if filters.date_from:
            conditions.append(appointments.c.starts_at >= filters.date_from)

        if filters.date_to:
            conditions.append(appointments.c.starts_at <= filters.date_to)

        return conditions

    async def list_appointments(self, filters: AppointmentFilters) -> list[Appointment]:
        """
        List appointments ordered by start time.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Matching appointments
        """
        stmt = (
            select(appointments)
            .where(*self._conditions(filters))
            .order_by(appointments.c.starts_at.asc())
            .offset(filters.offset)
        )
        if filters.limit:
            stmt = stmt.limit(filters.limit)

        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageException("listando citas", str(e)) from e

        return [appointment_from_row(row) for row in result.fetchall()]

    async def count_appointments(self, filters: AppointmentFilters) -> int:
        """Count appointments matching the filters, ignoring pagination."""
        stmt = (
            select(func.count())
            .select_from(appointments)
            .where(*self._conditions(filters))
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageException("contando citas", str(e)) from e
        return result.scalar() or 0

    async def get_appointment(self, appointment_id: UUID) -> Appointment | None:
        """Get appointment by ID, or None if it does not exist."""
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageException("obteniendo cita", str(e)) from e

        row = result.fetchone()
        return appointment_from_row(row) if row else None

    async def insert_appointment(self, fields: dict[str, Any]) -> Appointment:
        """
        Insert a new appointment.

        Raises:
            OverlapConflictException: If the exclusion constraint rejects the slot
            StorageException: On any other database failure
        """
        stmt = insert(appointments).values(**fields).returning(appointments)
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_overlap_violation(e):
                logger.info("overlap_constraint_rejected_insert", doctor_id=str(fields.get("doctor_id")))
                raise OverlapConflictException() from e
            raise StorageException("creando cita", str(e.orig)) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageException("creando cita", str(e)) from e

        return appointment_from_row(result.fetchone())

    async def update_appointment(
        self,
        appointment_id: UUID,
        patch: dict[str, Any],
        expected_updated_at: datetime | None = None,
    ) -> Appointment:
        """
        Apply a conditional update.

        When ``expected_updated_at`` is given, the update only applies if the
        row has not been modified since it was read.

        Raises:
            OverlapConflictException: If the exclusion constraint rejects the new slot
            ConflictException: If the row changed since it was read
            StorageException: On any other database failure
        """
        values = {**patch, "updated_at": datetime.now(UTC)}
        conditions = [appointments.c.id == appointment_id]
        if expected_updated_at is not None:
            conditions.append(appointments.c.updated_at == expected_updated_at)

        stmt = update(appointments).where(and_(*conditions)).values(**values).returning(appointments)
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_overlap_violation(e):
                logger.info("overlap_constraint_rejected_update", appointment_id=str(appointment_id))
                raise OverlapConflictException() from e
            raise StorageException("actualizando cita", str(e.orig)) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageException("actualizando cita", str(e)) from e

        row = result.fetchone()
        if row is None:
            raise ConflictException("La cita fue modificada por otra operación; reintente")
        return appointment_from_row(row)

    async def find_overlapping(
        self,
        doctor_id: UUID,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: UUID | None = None,
    ) -> list[Appointment]:
        """Non-cancelled appointments of the doctor intersecting ``[starts_at, ends_at)``."""
        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.status != AppointmentStatus.CANCELLED.value,
            appointments.c.starts_at < ends_at,
            appointments.c.ends_at > starts_at,
        ]
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        stmt = select(appointments).where(and_(*conditions)).order_by(appointments.c.starts_at)
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageException("verificando solapamiento", str(e)) from e

        return [appointment_from_row(row) for row in result.fetchall()]
