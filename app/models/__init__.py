"""Database models."""

from app.models.appointments import OVERLAP_CONSTRAINT_NAME, appointments
from app.models.users import metadata, users

__all__ = [
    "OVERLAP_CONSTRAINT_NAME",
    "appointments",
    "metadata",
    "users",
]
