"""Appointment status state machine."""

from enum import Enum

from app.core.exceptions import InvalidTransitionException
from app.schemas.appointments import AppointmentStatus


class LifecycleEvent(str, Enum):
    """Operations that may change an appointment."""

    CONFIRM = "confirm"
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"
    START = "start"
    COMPLETE = "complete"
    NO_SHOW = "mark no-show"
    EDIT_NOTES = "edit notes of"
    EDIT_TIME = "change the time of"


TERMINAL_STATES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }
)

# "rescheduled" rows predate the move to resetting status to "scheduled"
_BOOKED = frozenset(
    {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.RESCHEDULED,
    }
)

# event -> (allowed source states, target state; None keeps the current state)
TRANSITIONS: dict[LifecycleEvent, tuple[frozenset[AppointmentStatus], AppointmentStatus | None]] = {
    LifecycleEvent.CONFIRM: (_BOOKED, AppointmentStatus.CONFIRMED),
    LifecycleEvent.RESCHEDULE: (_BOOKED, AppointmentStatus.SCHEDULED),
    LifecycleEvent.EDIT_TIME: (_BOOKED, AppointmentStatus.SCHEDULED),
    LifecycleEvent.CANCEL: (_BOOKED, AppointmentStatus.CANCELLED),
    LifecycleEvent.START: (
        frozenset({AppointmentStatus.CONFIRMED}),
        AppointmentStatus.IN_PROGRESS,
    ),
    LifecycleEvent.COMPLETE: (
        frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.IN_PROGRESS}),
        AppointmentStatus.COMPLETED,
    ),
    LifecycleEvent.NO_SHOW: (
        frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.IN_PROGRESS}),
        AppointmentStatus.NO_SHOW,
    ),
    LifecycleEvent.EDIT_NOTES: (
        frozenset(AppointmentStatus) - {AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW},
        None,
    ),
}


def is_terminal(status: AppointmentStatus) -> bool:
    """No further status transitions are allowed."""
    return status in TERMINAL_STATES


def can_apply(current: AppointmentStatus, event: LifecycleEvent) -> bool:
    """Whether ``event`` is allowed from ``current``."""
    allowed, _ = TRANSITIONS[event]
    return current in allowed


def ensure_transition(current: AppointmentStatus, event: LifecycleEvent) -> AppointmentStatus:
    """
    Resolve the target status of an event.

    Args:
        current: Current appointment status
        event: Requested lifecycle event

    Returns:
        The status after the event

    Raises:
        InvalidTransitionException: If the event is not allowed from ``current``
    """
    allowed, target = TRANSITIONS[event]
    if current not in allowed:
        raise InvalidTransitionException(current.value, event.value)
    return target or current
