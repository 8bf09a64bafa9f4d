"""Participant contact lookup."""

from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageException
from app.models.users import users
from app.schemas.notifications import ParticipantContact


class ContactDirectory(Protocol):
    """Resolves participant ids to names and e-mail addresses."""

    async def get_contact(self, user_id: UUID) -> ParticipantContact | None: ...


class SqlContactDirectory:
    """Contact directory backed by the users table."""

    def __init__(self, db: AsyncSession):
        """Initialize directory with database session."""
        self.db = db

    async def get_contact(self, user_id: UUID) -> ParticipantContact | None:
        """Get contact details for a participant, or None if unknown."""
        stmt = select(
            users.c.id,
            users.c.full_name,
            users.c.email,
            users.c.role,
            users.c.phone,
        ).where(users.c.id == user_id)

        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageException("obteniendo contacto", str(e)) from e

        row = result.fetchone()
        return ParticipantContact.model_validate(dict(row._mapping)) if row else None
