"""Notification schemas: e-mail messages, delivery records and batch results."""

from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class NotificationKind(str, Enum):
    """Kinds of appointment notifications."""

    CONFIRMATION = "confirmation"
    CANCELLATION = "cancellation"
    REMINDER_24H = "reminder-24h"
    REMINDER_2H = "reminder-2h"
    RESCHEDULE = "reschedule"

    @classmethod
    def reminder(cls, hours_before: int) -> "NotificationKind":
        """Reminder kind for a lead time."""
        return cls.REMINDER_2H if hours_before == 2 else cls.REMINDER_24H


class DeliveryStatus(str, Enum):
    """Outcome of one delivery."""

    SENT = "sent"
    FAILED = "failed"


class EmailRecipient(BaseModel):
    """Named e-mail participant."""

    name: str = Field(..., min_length=1)
    email: EmailStr
    role: Literal["doctor", "patient"] | None = None

    def formatted(self) -> str:
        """RFC 5322 style ``"Name" <address>``."""
        return f'"{self.name}" <{self.email}>'


class EmailAttachment(BaseModel):
    """Attachment with base64 encoded content."""

    filename: str
    content: str
    content_type: str = "application/octet-stream"


class EmailMessage(BaseModel):
    """Message handed to a notification transport."""

    to: list[str]
    subject: str
    html: str
    sender: str | None = None
    text: str | None = None
    attachments: list[EmailAttachment] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    reply_to: str | None = None


class TransportResponse(BaseModel):
    """Response of a transport ``send`` call."""

    message_id: str | None = None
    status: Literal["sent", "queued", "failed"] = "sent"
    error: str | None = None


class NotificationRecord(BaseModel):
    """One dispatch attempt to one recipient."""

    appointment_id: UUID
    kind: NotificationKind
    recipient: str
    status: DeliveryStatus
    message_id: str | None = None
    error: str | None = None


class NotificationOutcome(BaseModel):
    """Result of a dispatcher invocation.

    ``error`` is set when the primary (patient) delivery failed; doctor copy
    failures only add to ``warnings``.
    """

    kind: NotificationKind
    records: list[NotificationRecord] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None

    @property
    def delivered(self) -> bool:
        """Whether the primary delivery succeeded."""
        return self.error is None


class NotificationContext(BaseModel):
    """Clinic details rendered into notifications."""

    clinic_name: str = "AutaMedica"
    clinic_address: str = "Consultorio médico"
    appointment_url: str = "#"
    reschedule_url: str = "#"
    contact_phone: str | None = None


class ReminderItem(BaseModel):
    """One appointment in a reminder batch."""

    appointment_id: UUID
    hours_before: Literal[24, 2] = 24


class BatchReminderRequest(BaseModel):
    """Schema for triggering a reminder batch."""

    items: list[ReminderItem] = Field(..., min_length=1)
    context: NotificationContext | None = None


class BatchReminderResult(BaseModel):
    """Aggregate outcome of a reminder batch."""

    successful: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class ParticipantContact(BaseModel):
    """Contact details of an appointment participant."""

    id: UUID
    full_name: str
    email: EmailStr
    role: Literal["doctor", "patient"]
    phone: str | None = None

    def as_recipient(self) -> EmailRecipient:
        """Convert to an e-mail recipient."""
        return EmailRecipient(name=self.full_name, email=self.email, role=self.role)
