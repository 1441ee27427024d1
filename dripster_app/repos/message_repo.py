from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from models import event_listener  # noqa: F401
from models.models import ConversationParticipant, Message
from policy.access_policy import message_visible_to


class MessageRepo:
    def __init__(self, db):
        self.db = db

    def _hydrated(self):
        return (
            select(Message)
            .options(selectinload(Message.sender))
            .execution_options(populate_existing=True)
        )

    async def create(self, message: Message) -> Message:
        self.db.add(message)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise

        return await self.get_by_id(message.id)

    async def get_by_id(
        self, message_id: UUID, user_id: Optional[UUID] = None
    ) -> Message | None:
        stmt = self._hydrated().where(Message.id == message_id)
        if user_id is not None:
            stmt = stmt.where(message_visible_to(user_id))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_conversation(
        self, conversation_id: UUID, user_id: UUID
    ) -> List[Message]:
        stmt = (
            self._hydrated()
            .where(
                Message.conversation_id == conversation_id,
                message_visible_to(user_id),
            )
            .order_by(Message.created_at.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def latest_by_conversation(
        self, conversation_ids: Sequence[UUID]
    ) -> Dict[UUID, Message]:
        if not conversation_ids:
            return {}

        ranked = (
            select(
                Message.id.label("message_id"),
                func.row_number()
                .over(
                    partition_by=Message.conversation_id,
                    order_by=(Message.created_at.desc(), Message.id.desc()),
                )
                .label("position"),
            )
            .where(Message.conversation_id.in_(conversation_ids))
            .subquery()
        )
        stmt = self._hydrated().join(ranked, ranked.c.message_id == Message.id).where(
            ranked.c.position == 1
        )
        result = await self.db.execute(stmt)
        return {message.conversation_id: message for message in result.scalars()}

    async def unread_counts(
        self, user_id: UUID, conversation_ids: Sequence[UUID]
    ) -> Dict[UUID, int]:
        """Messages from other senders newer than the user's last read marker."""
        if not conversation_ids:
            return {}

        stmt = (
            select(Message.conversation_id, func.count(Message.id))
            .join(
                ConversationParticipant,
                and_(
                    ConversationParticipant.conversation_id == Message.conversation_id,
                    ConversationParticipant.user_id == user_id,
                ),
            )
            .where(
                Message.conversation_id.in_(conversation_ids),
                Message.sender_id != user_id,
                Message.created_at > ConversationParticipant.last_read_at,
            )
            .group_by(Message.conversation_id)
        )
        result = await self.db.execute(stmt)
        return {conversation_id: count for conversation_id, count in result.all()}

    async def update_content(self, message: Message, content: str) -> Message:
        try:
            message.content = content
            self.db.add(message)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        return await self.get_by_id(message.id)
