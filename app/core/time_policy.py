"""Scheduling time rules evaluated in the clinic's fixed timezone."""

from datetime import UTC, datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.exceptions import InvalidRangeError, ValidationException

FUTURE_MESSAGE = "La cita debe ser en el futuro"
WEEKDAY_MESSAGE = "Las citas solo se pueden agendar de lunes a viernes"


@lru_cache
def get_timezone() -> ZoneInfo:
    """Get the fixed scheduling timezone."""
    return ZoneInfo(settings.scheduling_timezone)


def to_local(t: datetime) -> datetime:
    """Convert a timestamp to the scheduling timezone.

    Naive timestamps are taken to already be local wall-clock time.
    """
    tz = get_timezone()
    if t.tzinfo is None:
        return t.replace(tzinfo=tz)
    return t.astimezone(tz)


def now() -> datetime:
    """Current time in the scheduling timezone."""
    return datetime.now(UTC).astimezone(get_timezone())


def is_weekday(t: datetime) -> bool:
    """Monday to Friday."""
    return to_local(t).weekday() < 5


def is_valid_medical_hour(t: datetime) -> bool:
    """Local hour within the business window, end exclusive."""
    hour = to_local(t).hour
    return settings.business_hour_start <= hour < settings.business_hour_end


def is_future(t: datetime, current: datetime | None = None) -> bool:
    """Strictly after now."""
    return to_local(t) > to_local(current or now())


def business_hours_message() -> str:
    """User-facing message for an out-of-hours booking."""
    return (
        f"La cita debe ser en horario médico "
        f"({settings.business_hour_start}:00 - {settings.business_hour_end}:00)"
    )


def ensure_valid_range(starts_at: datetime, ends_at: datetime) -> None:
    """
    Check the half-open range is non-empty.

    Raises:
        InvalidRangeError: If ends_at is not strictly after starts_at
    """
    if to_local(ends_at) <= to_local(starts_at):
        raise InvalidRangeError()


def ensure_schedulable(
    starts_at: datetime,
    ends_at: datetime,
    current: datetime | None = None,
) -> None:
    """
    Validate a candidate slot against every booking rule.

    Rules are checked in order (range, future, business hour, weekday) and
    the first failure is raised.

    Args:
        starts_at: Slot start
        ends_at: Slot end
        current: Reference "now"; defaults to the current time

    Raises:
        InvalidRangeError: If the range is empty or inverted
        ValidationException: If the slot breaks a time rule
    """
    ensure_valid_range(starts_at, ends_at)

    if not is_future(starts_at, current):
        raise ValidationException(FUTURE_MESSAGE)

    if not is_valid_medical_hour(starts_at):
        raise ValidationException(business_hours_message())

    if not is_weekday(starts_at):
        raise ValidationException(WEEKDAY_MESSAGE)


MONTHS = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)


def format_datetime(t: datetime) -> str:
    """Long local date and 24h time, e.g. ``15 de marzo de 2026, 10:00``."""
    local = to_local(t)
    return f"{local.day} de {MONTHS[local.month - 1]} de {local.year}, {local:%H:%M}"


def format_time(t: datetime) -> str:
    """Local 24h time."""
    return f"{to_local(t):%H:%M}"


def format_slot(starts_at: datetime, ends_at: datetime) -> str:
    """Local date with start and end time."""
    return f"{format_datetime(starts_at)} - {format_time(ends_at)}"
