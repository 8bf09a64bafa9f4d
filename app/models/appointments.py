"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Table,
    Text,
    func,
    literal,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, ExcludeConstraint

from app.models.users import metadata

# Name of the storage-level anti-overlap guarantee; violations surface as SQLSTATE 23P01
OVERLAP_CONSTRAINT_NAME = "no_overlap_per_doctor"

appointments = Table(
    "appointments",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    # Participants (immutable after creation)
    Column(
        "patient_id",
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column(
        "doctor_id",
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    # Half-open slot [starts_at, ends_at)
    Column("starts_at", TIMESTAMP(timezone=True), nullable=False),
    Column("ends_at", TIMESTAMP(timezone=True), nullable=False),
    # Status management
    Column(
        "status",
        Text,
        nullable=False,
        server_default="scheduled",
    ),
    Column("notes", Text, nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    # Calendar revision, bumped on confirmation and on every time change; cancellation
    # leaves it as is and its calendar entry is emitted at sequence + 1
    Column("sequence", Integer, nullable=False, server_default=text("0")),
    # Audit fields
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("cancelled_at", TIMESTAMP(timezone=True), nullable=True),
    # Constraints
    CheckConstraint("ends_at > starts_at", name="appointments_range_check"),
    CheckConstraint(
        "status IN ('scheduled', 'confirmed', 'in-progress', 'completed', "
        "'cancelled', 'no-show', 'rescheduled')",
        name="appointments_status_check",
    ),
    Index("idx_appointments_doctor_starts", "doctor_id", "starts_at"),
    Index("idx_appointments_patient_starts", "patient_id", "starts_at"),
)

appointments.append_constraint(
    ExcludeConstraint(
        (appointments.c.doctor_id, "="),
        (
            func.tstzrange(appointments.c.starts_at, appointments.c.ends_at, literal("[)")),
            "&&",
        ),
        name=OVERLAP_CONSTRAINT_NAME,
        using="gist",
        where=appointments.c.status != "cancelled",
    )
)
