from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from core.date_helper import utcnow
from models.models import ConversationParticipant
from models.utils import insert_ignore
from policy.access_policy import participant_visible_to


class ParticipantRepo:
    def __init__(self, db):
        self.db = db

    async def add(self, conversation_id: UUID, user_id: UUID) -> bool:
        """Insert the membership row; an existing (conversation, user) pair is left alone.

        Returns True when a new row was written.
        """
        stmt = insert_ignore(
            self.db.get_bind().dialect.name,
            ConversationParticipant.__table__,
            ["conversation_id", "user_id"],
        ).values(conversation_id=conversation_id, user_id=user_id)

        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
            return result.rowcount > 0
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def get(
        self, conversation_id: UUID, user_id: UUID, viewer_id: Optional[UUID] = None
    ) -> ConversationParticipant | None:
        stmt = select(ConversationParticipant).where(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
        )
        if viewer_id is not None:
            stmt = stmt.where(participant_visible_to(viewer_id))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def count(self, conversation_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(ConversationParticipant.id)).where(
                ConversationParticipant.conversation_id == conversation_id
            )
        )
        return result.scalar_one()

    async def mark_read(
        self, participant: ConversationParticipant, read_at: Optional[datetime] = None
    ) -> ConversationParticipant:
        try:
            participant.last_read_at = read_at or utcnow()
            self.db.add(participant)
            await self.db.commit()
            return participant
        except SQLAlchemyError:
            await self.db.rollback()
            raise
