import uuid
from datetime import date
from decimal import Decimal

import pytest

from core.storage_errors import AuthorizationDenied
from models.enums import Action, RentalStatus
from models.models import (
    ClothingItem,
    Conversation,
    ConversationParticipant,
    Message,
    Rental,
)
from policy.access_policy import authorize, require

OWNER = uuid.uuid4()
RENTER = uuid.uuid4()
STRANGER = uuid.uuid4()


@pytest.fixture
def conversation():
    return Conversation(
        id=uuid.uuid4(), item_id=uuid.uuid4(), owner_id=OWNER, renter_id=RENTER
    )


@pytest.mark.parametrize("action", [Action.READ, Action.CREATE, Action.UPDATE])
def test_conversation_parties_allowed(conversation, action):
    assert authorize(OWNER, conversation, action)
    assert authorize(RENTER, conversation, action)
    assert not authorize(STRANGER, conversation, action)


def test_conversation_delete_is_never_allowed(conversation):
    assert not authorize(OWNER, conversation, Action.DELETE)


def test_message_read_depends_on_parent(conversation):
    assert authorize(RENTER, Message, Action.READ, parent=conversation)
    assert not authorize(STRANGER, Message, Action.READ, parent=conversation)
    assert not authorize(RENTER, Message, Action.READ)


def test_message_create_requires_sender_and_participation(conversation):
    own = Message(conversation_id=conversation.id, sender_id=RENTER, content="hi")
    spoofed = Message(conversation_id=conversation.id, sender_id=OWNER, content="hi")
    outsider = Message(
        conversation_id=conversation.id, sender_id=STRANGER, content="hi"
    )

    assert authorize(RENTER, own, Action.CREATE, parent=conversation)
    assert not authorize(RENTER, spoofed, Action.CREATE, parent=conversation)
    assert not authorize(STRANGER, outsider, Action.CREATE, parent=conversation)
    assert not authorize(RENTER, own, Action.CREATE, parent=None)


def test_message_update_only_by_sender(conversation):
    message = Message(conversation_id=conversation.id, sender_id=RENTER, content="x")

    assert authorize(RENTER, message, Action.UPDATE)
    assert not authorize(OWNER, message, Action.UPDATE)


def test_participant_rules(conversation):
    own = ConversationParticipant(conversation_id=conversation.id, user_id=RENTER)
    other = ConversationParticipant(conversation_id=conversation.id, user_id=OWNER)
    outsider = ConversationParticipant(
        conversation_id=conversation.id, user_id=STRANGER
    )

    assert authorize(RENTER, own, Action.READ)
    assert authorize(RENTER, own, Action.UPDATE)
    assert not authorize(RENTER, other, Action.READ)
    assert not authorize(RENTER, other, Action.UPDATE)
    assert authorize(RENTER, own, Action.CREATE, parent=conversation)
    assert not authorize(RENTER, other, Action.CREATE, parent=conversation)
    assert not authorize(STRANGER, outsider, Action.CREATE, parent=conversation)


def test_item_and_rental_rules():
    item = ClothingItem(id=uuid.uuid4(), owner_id=OWNER, title="Saree")
    rental = Rental(
        item_id=item.id,
        renter_id=RENTER,
        owner_id=OWNER,
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 3),
        total_price=Decimal("200"),
        status=RentalStatus.PENDING,
    )

    assert authorize(STRANGER, item, Action.READ)
    assert authorize(STRANGER, ClothingItem, Action.READ)
    assert authorize(OWNER, item, Action.UPDATE)
    assert not authorize(RENTER, item, Action.DELETE)

    assert authorize(RENTER, rental, Action.CREATE)
    assert not authorize(OWNER, rental, Action.CREATE)
    assert authorize(OWNER, rental, Action.UPDATE)
    assert not authorize(STRANGER, rental, Action.READ)


def test_unknown_resources_and_missing_principal_are_denied(conversation):
    assert not authorize(None, conversation, Action.READ)
    assert not authorize(OWNER, object(), Action.READ)
    assert not authorize(OWNER, Conversation, Action.READ)


def test_require_raises_authorization_denied(conversation):
    require(OWNER, conversation, Action.READ)

    with pytest.raises(AuthorizationDenied):
        require(STRANGER, conversation, Action.UPDATE)
