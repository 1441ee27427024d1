from sqlalchemy import event, select, update
from sqlalchemy.orm import object_session

from realtime.change_capture import record_change
from realtime.change_feed import ChangeType

from .models import ClothingItem, Conversation, ConversationParticipant, Message
from .utils import insert_ignore

PARTICIPANT_CONFLICT = ["conversation_id", "user_id"]


@event.listens_for(Conversation, "after_insert")
def create_conversation_participants(mapper, connection, target: Conversation):
    stmt = insert_ignore(
        connection.dialect.name,
        ConversationParticipant.__table__,
        PARTICIPANT_CONFLICT,
    )
    for user_id in (target.owner_id, target.renter_id):
        connection.execute(stmt.values(conversation_id=target.id, user_id=user_id))


@event.listens_for(Message, "after_insert")
def update_conversation_last_message(mapper, connection, target: Message):
    conversations = Conversation.__table__
    connection.execute(
        update(conversations)
        .where(conversations.c.id == target.conversation_id)
        .values(last_message_at=target.created_at, updated_at=target.created_at)
    )

    session = object_session(target)
    if session is None:
        return

    row = connection.execute(
        select(conversations).where(conversations.c.id == target.conversation_id)
    ).mappings().one_or_none()
    if row is not None:
        record_change(session, conversations.name, ChangeType.UPDATE, dict(row))


@event.listens_for(ClothingItem, "before_insert")
@event.listens_for(ClothingItem, "before_update")
def normalize_item_text(mapper, connection, target: ClothingItem):
    if target.title:
        target.title = target.title.strip()
    if target.category:
        target.category = target.category.strip()
    if target.size:
        target.size = target.size.strip()
