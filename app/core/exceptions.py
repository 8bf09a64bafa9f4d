"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class InvalidRangeError(ValidationException):
    """Time range whose end is not strictly after its start."""

    def __init__(self, message: str = "La hora de fin debe ser posterior a la de inicio"):
        """Initialize with 422 status code."""
        super().__init__(message)


class OverlapConflictException(ConflictException):
    """The doctor already has a non-cancelled appointment in the requested slot.

    Raised both by the application pre-check and when the storage exclusion
    constraint rejects a write, so clients see a single conflict vocabulary.
    """

    def __init__(
        self,
        message: str = "Conflicto de horario: el médico ya tiene una cita en ese horario",
        conflicts: list[Any] | None = None,
    ):
        """Initialize with the conflicting appointments, if known."""
        self.conflicts = conflicts or []
        super().__init__(message)


class InvalidTransitionException(ConflictException):
    """Lifecycle transition not allowed from the current status."""

    def __init__(self, current: str, event: str, message: str | None = None):
        """Initialize with the rejected status/event pair."""
        self.current = current
        self.event = event
        super().__init__(message or f"Cannot {event} an appointment in status '{current}'")


class StorageException(AppException):
    """Storage layer failure wrapped with the failing operation."""

    def __init__(self, operation: str, detail: str):
        """Initialize with 500 status code."""
        self.operation = operation
        super().__init__(f"Error {operation}: {detail}", status_code=500)


class NotificationDeliveryError(AppException):
    """Notification could not be delivered after exhausting retries."""

    def __init__(self, message: str, attempts: int = 0):
        """Initialize with 502 status code."""
        self.attempts = attempts
        super().__init__(message, status_code=502)


class TransportError(Exception):
    """Low-level transport failure; retried by the email service."""
