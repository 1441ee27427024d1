"""Row-level access rules.

``authorize`` answers whether a principal may perform an action on a row
and is called before any data access. The ``*_visible_to`` helpers return
SQL clauses that repositories apply to every read, so a caller that skips
the explicit check still only sees rows it could read.
"""

import logging
import uuid
from typing import Any, Callable, Optional

from sqlalchemy import or_, select

from core.storage_errors import AuthorizationDenied
from models.enums import Action
from models.models import (
    ClothingItem,
    Conversation,
    ConversationParticipant,
    Message,
    Rental,
)

logger = logging.getLogger(__name__)


class ModelPolicy:
    @staticmethod
    def is_party(conversation: Optional[Conversation], user_id: uuid.UUID) -> bool:
        if conversation is None:
            return False
        return user_id in {conversation.owner_id, conversation.renter_id}

    @staticmethod
    def conversation(
        principal_id: uuid.UUID, row: Conversation, action: Action, parent=None
    ) -> bool:
        if action in {Action.READ, Action.CREATE, Action.UPDATE}:
            return ModelPolicy.is_party(row, principal_id)
        return False

    @staticmethod
    def message(
        principal_id: uuid.UUID,
        row: Message,
        action: Action,
        parent: Optional[Conversation] = None,
    ) -> bool:
        if action == Action.READ:
            return ModelPolicy.is_party(parent, principal_id)
        if action == Action.CREATE:
            return row.sender_id == principal_id and ModelPolicy.is_party(
                parent, principal_id
            )
        if action == Action.UPDATE:
            return row.sender_id == principal_id
        return False

    @staticmethod
    def participant(
        principal_id: uuid.UUID,
        row: ConversationParticipant,
        action: Action,
        parent: Optional[Conversation] = None,
    ) -> bool:
        if action in {Action.READ, Action.UPDATE}:
            return row.user_id == principal_id
        if action == Action.CREATE:
            return row.user_id == principal_id and ModelPolicy.is_party(
                parent, principal_id
            )
        return False

    @staticmethod
    def clothing_item(
        principal_id: uuid.UUID, row: ClothingItem, action: Action, parent=None
    ) -> bool:
        if action == Action.READ:
            return True
        return row.owner_id == principal_id

    @staticmethod
    def rental(
        principal_id: uuid.UUID, row: Rental, action: Action, parent=None
    ) -> bool:
        if action in {Action.READ, Action.UPDATE}:
            return principal_id in {row.renter_id, row.owner_id}
        if action == Action.CREATE:
            return row.renter_id == principal_id
        return False


RULES: dict[type, Callable[..., bool]] = {
    Conversation: ModelPolicy.conversation,
    Message: ModelPolicy.message,
    ConversationParticipant: ModelPolicy.participant,
    ClothingItem: ModelPolicy.clothing_item,
    Rental: ModelPolicy.rental,
}

# tables whose read rule depends only on the parent row
COLLECTION_READS = {Message, ClothingItem}


def authorize(
    principal_id: Optional[uuid.UUID],
    resource: Any,
    action: Action,
    parent: Any = None,
) -> bool:
    if principal_id is None or resource is None:
        return False

    # a model class stands for "any row of this table", e.g. listing messages
    if isinstance(resource, type):
        if resource not in COLLECTION_READS or Action(action) != Action.READ:
            return False
        model = resource
    else:
        model = type(resource)

    rule = RULES.get(model)
    if rule is None:
        return False

    return rule(principal_id, resource, Action(action), parent)


def require(
    principal_id: Optional[uuid.UUID],
    resource: Any,
    action: Action,
    parent: Any = None,
) -> None:
    if authorize(principal_id, resource, action, parent):
        return

    name = resource.__name__ if isinstance(resource, type) else type(resource).__name__
    logger.warning(f"Denied {Action(action).value} on {name} for {principal_id}")
    raise AuthorizationDenied(f"{Action(action).value} on {name} denied")


def conversation_visible_to(user_id: uuid.UUID):
    return or_(Conversation.owner_id == user_id, Conversation.renter_id == user_id)


def message_visible_to(user_id: uuid.UUID):
    return Message.conversation_id.in_(
        select(Conversation.id).where(conversation_visible_to(user_id))
    )


def participant_visible_to(user_id: uuid.UUID):
    return ConversationParticipant.user_id == user_id


def rental_visible_to(user_id: uuid.UUID):
    return or_(Rental.renter_id == user_id, Rental.owner_id == user_id)
