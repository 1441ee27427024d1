import asyncio

from core.storage_errors import AuthorizationDenied, SchemaMissingError
from models.enums import MessageType
from schemas.schema import ConversationOut, MessageOut
from services.messaging_client import MessagingClient


async def test_message_subscription_delivers_hydrated_messages(
    make_client, eventually, item, owner, renter
):
    owner_client = make_client(owner)
    renter_client = make_client(renter)
    convo = await renter_client.get_or_create_conversation(item.id, owner.id, renter.id)

    received: list[MessageOut] = []
    owner_client.subscribe_to_messages(convo.id, received.append)

    await renter_client.send_message(convo.id, renter.id, "first")
    await renter_client.send_message(convo.id, renter.id, "second")

    await eventually(lambda: len(received) == 2)
    assert [m.content for m in received] == ["first", "second"]
    assert received[0].sender.id == renter.id


async def test_async_callbacks_are_awaited(
    make_client, eventually, item, owner, renter
):
    client = make_client(renter)
    convo = await client.get_or_create_conversation(item.id, owner.id, renter.id)

    received = []

    async def on_message(message):
        await asyncio.sleep(0)
        received.append(message.id)

    client.subscribe_to_messages(convo.id, on_message)
    sent = await client.send_message(convo.id, renter.id, "ping")

    await eventually(lambda: received == [sent.id])


async def test_subscription_is_scoped_to_its_conversation(
    make_client, eventually, item, owner, renter, make_user
):
    other_renter = await make_user("other")
    owner_client = make_client(owner)
    first = await make_client(renter).get_or_create_conversation(
        item.id, owner.id, renter.id
    )
    second_client = make_client(other_renter)
    second = await second_client.get_or_create_conversation(
        item.id, owner.id, other_renter.id
    )

    first_feed, second_feed = [], []
    owner_client.subscribe_to_messages(first.id, first_feed.append)
    owner_client.subscribe_to_messages(second.id, second_feed.append)

    await second_client.send_message(second.id, other_renter.id, "for B only")

    await eventually(lambda: len(second_feed) == 1)
    await asyncio.sleep(0.05)
    assert first_feed == []


async def test_cancelled_subscription_receives_nothing(
    make_client, eventually, feed, item, owner, renter
):
    owner_client = make_client(owner)
    renter_client = make_client(renter)
    convo = await renter_client.get_or_create_conversation(item.id, owner.id, renter.id)

    cancelled, live = [], []
    unsubscribe = owner_client.subscribe_to_messages(convo.id, cancelled.append)
    owner_client.subscribe_to_messages(convo.id, live.append)
    unsubscribe()
    unsubscribe()

    await renter_client.send_message(convo.id, renter.id, "anyone?")

    await eventually(lambda: len(live) == 1)
    assert cancelled == []
    assert owner_client.subscription_count == 1
    assert feed.subscription_count == 1


async def test_non_participant_subscriber_receives_nothing(
    make_client, eventually, item, owner, renter, stranger
):
    renter_client = make_client(renter)
    stranger_client = make_client(stranger)
    convo = await renter_client.get_or_create_conversation(item.id, owner.id, renter.id)

    leaked, own = [], []
    stranger_client.subscribe_to_messages(convo.id, leaked.append)
    renter_client.subscribe_to_messages(convo.id, own.append)

    await renter_client.send_message(convo.id, renter.id, "secret")

    await eventually(lambda: len(own) == 1)
    await asyncio.sleep(0.05)
    assert leaked == []


async def test_conversation_subscription_sees_inserts_and_updates(
    make_client, eventually, item, owner, renter
):
    owner_client = make_client(owner)
    renter_client = make_client(renter)

    updates: list[ConversationOut] = []
    owner_client.subscribe_to_conversations(owner.id, updates.append)

    convo = await renter_client.get_or_create_conversation(item.id, owner.id, renter.id)
    await eventually(lambda: len(updates) >= 1)
    assert updates[0].id == convo.id

    await renter_client.send_message(
        convo.id, renter.id, "hello owner", MessageType.TEXT
    )
    await eventually(
        lambda: any(
            u.last_message is not None and u.last_message.content == "hello owner"
            for u in updates
        )
    )
    latest = updates[-1]
    assert latest.unread_count == 1
    assert latest.owner.id == owner.id


async def test_conversation_subscription_for_another_user_is_refused(
    make_client, owner, renter
):
    client = make_client(renter)

    unsubscribe = client.subscribe_to_conversations(owner.id, lambda c: None)

    assert client.subscription_count == 0
    assert isinstance(client.last_error, AuthorizationDenied)
    unsubscribe()


async def test_failing_callback_does_not_stop_delivery(
    make_client, eventually, item, owner, renter
):
    client = make_client(renter)
    convo = await client.get_or_create_conversation(item.id, owner.id, renter.id)

    seen = []

    def flaky(message):
        seen.append(message.content)
        if message.content == "boom":
            raise RuntimeError("ui blew up")

    client.subscribe_to_messages(convo.id, flaky)
    await client.send_message(convo.id, renter.id, "boom")
    await client.send_message(convo.id, renter.id, "after")

    await eventually(lambda: seen == ["boom", "after"])


async def test_cleanup_releases_everything_and_is_idempotent(
    make_client, feed, item, owner, renter
):
    client = make_client(renter)
    convo = await client.get_or_create_conversation(item.id, owner.id, renter.id)

    client.subscribe_to_messages(convo.id, lambda m: None)
    client.subscribe_to_conversations(renter.id, lambda c: None)
    assert client.subscription_count == 2
    assert feed.subscription_count == 2

    client.cleanup()
    client.cleanup()

    assert client.subscription_count == 0
    assert feed.subscription_count == 0


async def test_context_manager_closes_subscriptions(
    session_factory, feed, item, owner, renter
):
    async with MessagingClient(session_factory, renter.id, feed=feed) as client:
        client.subscribe_to_messages(item.id, lambda m: None)
        assert feed.subscription_count == 1

    assert feed.subscription_count == 0
    assert client.subscription_count == 0


async def test_deliveries_leave_last_error_alone(
    make_client, eventually, item, owner, renter
):
    owner_client = make_client(owner)
    renter_client = make_client(renter)
    convo = await renter_client.get_or_create_conversation(item.id, owner.id, renter.id)

    received = []
    owner_client.subscribe_to_messages(convo.id, received.append)
    assert await owner_client.get_user_conversations(renter.id) == []
    assert isinstance(owner_client.last_error, AuthorizationDenied)

    await renter_client.send_message(convo.id, renter.id, "hello")
    await eventually(lambda: len(received) == 1)

    assert isinstance(owner_client.last_error, AuthorizationDenied)
    assert owner_client.delivery_error is None


async def test_failed_delivery_is_recorded_separately(
    make_client, empty_session_factory, eventually, item, owner, renter
):
    renter_client = make_client(renter)
    convo = await renter_client.get_or_create_conversation(item.id, owner.id, renter.id)
    broken = make_client(owner, sessions=empty_session_factory)

    received = []
    broken.subscribe_to_messages(convo.id, received.append)
    await renter_client.send_message(convo.id, renter.id, "lost in transit")

    await eventually(lambda: broken.delivery_error is not None)
    assert isinstance(broken.delivery_error, SchemaMissingError)
    assert broken.last_error is None
    assert received == []
