"""Appointment schemas for request/response validation."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.time_policy import to_local
from app.schemas.notifications import NotificationOutcome


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    RESCHEDULED = "rescheduled"


class TimeRange(BaseModel):
    """Half-open time range ``[starts_at, ends_at)``."""

    starts_at: datetime
    ends_at: datetime

    @field_validator("starts_at", "ends_at")
    @classmethod
    def localize(cls, v: datetime) -> datetime:
        """Read naive timestamps as clinic-local time."""
        return to_local(v)

    @model_validator(mode="after")
    def validate_range(self) -> "TimeRange":
        """Validate end time is after start time."""
        if self.ends_at <= self.starts_at:
            raise ValueError("End time must be after start time")
        return self


class AppointmentCreate(TimeRange):
    """Schema for booking a new appointment."""

    patient_id: UUID
    doctor_id: UUID
    notes: str | None = Field(None, max_length=1000)


class AppointmentUpdate(BaseModel):
    """Schema for editing notes and/or time of an appointment."""

    starts_at: datetime | None = None
    ends_at: datetime | None = None
    notes: str | None = Field(None, max_length=1000)

    @field_validator("starts_at", "ends_at")
    @classmethod
    def localize(cls, v: datetime | None) -> datetime | None:
        return to_local(v) if v is not None else None

    @property
    def changes_time(self) -> bool:
        """Whether the edit touches the time range."""
        return self.starts_at is not None or self.ends_at is not None


class AppointmentReschedule(TimeRange):
    """Schema for moving an appointment to a new slot."""


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class AppointmentNotesUpdate(BaseModel):
    """Optional notes sent with complete/no-show transitions."""

    notes: str | None = Field(None, max_length=1000)


class Appointment(BaseModel):
    """Appointment as stored."""

    id: UUID
    patient_id: UUID
    doctor_id: UUID
    starts_at: datetime
    ends_at: datetime
    status: AppointmentStatus
    notes: str | None = None
    cancellation_reason: str | None = None
    sequence: int = 0
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None

    model_config = {"from_attributes": True}


class AppointmentResponse(Appointment):
    """Schema for appointment response."""


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    limit: int | None
    offset: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    statuses: list[AppointmentStatus] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int | None = Field(default=None, ge=1, le=500)
    offset: int = Field(default=0, ge=0)

    @field_validator("date_from", "date_to")
    @classmethod
    def localize(cls, v: datetime | None) -> datetime | None:
        return to_local(v) if v is not None else None


class OverlapCheckRequest(TimeRange):
    """Schema for an overlap pre-check."""

    doctor_id: UUID
    exclude_id: UUID | None = None


class ConflictingAppointment(BaseModel):
    """Slot of an appointment that intersects a candidate range."""

    id: UUID
    starts_at: datetime
    ends_at: datetime
    doctor_id: UUID

    model_config = {"from_attributes": True}


class OverlapValidationResult(BaseModel):
    """Outcome of an overlap check; never persisted."""

    has_overlap: bool
    conflicting_appointments: list[ConflictingAppointment] = Field(default_factory=list)
    message: str | None = None


class AppointmentStats(BaseModel):
    """Per-status appointment counts."""

    total: int = 0
    scheduled: int = 0
    confirmed: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    no_show: int = 0
    rescheduled: int = 0


class LifecycleResult(BaseModel):
    """Committed appointment state plus the best-effort notification outcome."""

    appointment: Appointment
    notification: NotificationOutcome | None = None

    @property
    def notified(self) -> bool:
        """Whether a notification was attempted and the primary send succeeded."""
        return self.notification is not None and self.notification.delivered


def appointment_from_row(row: Any) -> Appointment:
    """Build an ``Appointment`` from a SQLAlchemy row or mapping."""
    mapping = row._mapping if hasattr(row, "_mapping") else row
    return Appointment.model_validate(dict(mapping))
