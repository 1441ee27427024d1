from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from core.date_helper import utcnow
from core.storage_errors import is_unique_violation
from models import event_listener  # noqa: F401
from models.models import Conversation
from policy.access_policy import conversation_visible_to


class ConversationRepo:
    def __init__(self, db):
        self.db = db

    def _hydrated(self):
        return (
            select(Conversation)
            .options(
                selectinload(Conversation.item),
                selectinload(Conversation.owner),
                selectinload(Conversation.renter),
            )
            .execution_options(populate_existing=True)
        )

    async def find(
        self, item_id: UUID, owner_id: UUID, renter_id: UUID
    ) -> Conversation | None:
        stmt = select(Conversation).where(
            Conversation.item_id == item_id,
            Conversation.owner_id == owner_id,
            Conversation.renter_id == renter_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(
        self, item_id: UUID, owner_id: UUID, renter_id: UUID
    ) -> Conversation:
        convo = await self.find(item_id, owner_id, renter_id)
        if convo:
            return convo

        convo = Conversation(item_id=item_id, owner_id=owner_id, renter_id=renter_id)
        self.db.add(convo)

        try:
            await self.db.commit()
            return convo
        except IntegrityError as e:
            await self.db.rollback()
            if not is_unique_violation(e):
                raise
            # the other party created it first
            existing = await self.find(item_id, owner_id, renter_id)
            if existing is None:
                raise
            return existing

    async def get_by_id(
        self, conversation_id: UUID, user_id: Optional[UUID] = None
    ) -> Conversation | None:
        stmt = self._hydrated().where(Conversation.id == conversation_id)
        if user_id is not None:
            stmt = stmt.where(conversation_visible_to(user_id))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: UUID) -> List[Conversation]:
        stmt = (
            self._hydrated()
            .where(conversation_visible_to(user_id))
            .order_by(Conversation.last_message_at.desc(), Conversation.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def attach_rental(self, convo: Conversation, rental_id: UUID) -> Conversation:
        if convo.rental_id == rental_id:
            return convo
        try:
            convo.rental_id = rental_id
            convo.updated_at = utcnow()
            self.db.add(convo)
            await self.db.commit()
            return convo
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def delete(self, convo: Conversation) -> None:
        try:
            await self.db.delete(convo)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
