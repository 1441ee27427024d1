import asyncio
from datetime import datetime, timedelta, timezone

from fastapi import WebSocketDisconnect
from jose import jwt

from core.settings import settings
from realtime.chat_routes import conversation_list_socket, conversation_socket
from realtime.connection_manager import manager


def _token(user) -> str:
    return jwt.encode(
        {"sub": str(user.id), "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )


class FakeSocket:
    """Feeds queued text frames to the endpoint and records what it sends."""

    def __init__(self, token: str):
        self.cookies = {}
        self.query_params = {"token": token}
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.accepted = False
        self.closed_with = None

    async def accept(self):
        self.accepted = True

    async def close(self, code: int = 1000):
        self.closed_with = code

    async def send_json(self, data):
        self.sent.append(data)

    async def receive_text(self) -> str:
        frame = await self.inbox.get()
        if frame is None:
            raise WebSocketDisconnect(code=1000)
        return frame

    def of_type(self, frame_type: str) -> list[dict]:
        return [frame for frame in self.sent if frame["type"] == frame_type]

    def contents(self) -> list[str]:
        return [frame["message"]["content"] for frame in self.of_type("message")]


async def test_conversation_socket_streams_and_accepts_frames(
    db, session_factory, feed, make_client, eventually, item, owner, renter
):
    renter_client = make_client(renter)
    convo = await renter_client.get_or_create_conversation(item.id, owner.id, renter.id)

    socket = FakeSocket(_token(owner))
    task = asyncio.create_task(
        conversation_socket(
            socket, convo.id, db=db, session_factory=session_factory, feed=feed
        )
    )
    await eventually(lambda: feed.subscription_count == 1)
    assert socket.accepted
    assert manager.count(convo.id) == 1

    await renter_client.send_message(convo.id, renter.id, "Is it still available?")
    await eventually(lambda: socket.contents() == ["Is it still available?"])

    await socket.inbox.put('{"content": "Yes, pick it up Friday"}')
    await eventually(lambda: len(socket.contents()) == 2)
    reply = socket.of_type("message")[-1]["message"]
    assert reply["sender_id"] == str(owner.id)

    await socket.inbox.put('{"action": "read"}')
    await socket.inbox.put('{"content": "See you then"}')
    await eventually(lambda: len(socket.contents()) == 3)

    [owner_view] = await make_client(owner).get_user_conversations(owner.id)
    assert owner_view.unread_count == 0

    await socket.inbox.put(None)
    await task

    assert socket.of_type("error") == []
    assert manager.count(convo.id) == 0
    assert feed.subscription_count == 0


async def test_malformed_frames_get_an_error_and_keep_the_socket_open(
    db, session_factory, feed, make_client, eventually, item, owner, renter
):
    convo = await make_client(renter).get_or_create_conversation(
        item.id, owner.id, renter.id
    )
    socket = FakeSocket(_token(renter))
    task = asyncio.create_task(
        conversation_socket(
            socket, convo.id, db=db, session_factory=session_factory, feed=feed
        )
    )
    await eventually(lambda: feed.subscription_count == 1)

    for frame in ('["hello"]', "plain text", '{"message_type": "shout"}'):
        await socket.inbox.put(frame)
    await socket.inbox.put('{"content": "   "}')
    await socket.inbox.put('{"content": "still alive?"}')

    await eventually(lambda: socket.contents() == ["still alive?"])
    errors = socket.of_type("error")
    assert len(errors) == 4
    assert "Invalid data received" in errors[-1]["detail"]

    await socket.inbox.put(None)
    await task


async def test_conversation_socket_rejects_non_participants(
    db, session_factory, feed, make_client, item, owner, renter, stranger
):
    convo = await make_client(renter).get_or_create_conversation(
        item.id, owner.id, renter.id
    )

    socket = FakeSocket(_token(stranger))
    await conversation_socket(
        socket, convo.id, db=db, session_factory=session_factory, feed=feed
    )

    assert socket.closed_with == 4404
    assert not socket.accepted
    assert feed.subscription_count == 0


async def test_socket_with_bad_token_is_closed(db, session_factory, feed, item):
    socket = FakeSocket("not-a-token")

    await conversation_socket(
        socket, item.id, db=db, session_factory=session_factory, feed=feed
    )

    assert socket.closed_with == 4401
    assert not socket.accepted


async def test_conversation_list_socket_pushes_updates(
    db, session_factory, feed, make_client, eventually, item, owner, renter
):
    socket = FakeSocket(_token(owner))
    task = asyncio.create_task(
        conversation_list_socket(
            socket, db=db, session_factory=session_factory, feed=feed
        )
    )
    await eventually(lambda: feed.subscription_count == 1)
    assert manager.count(f"user:{owner.id}") == 1

    renter_client = make_client(renter)
    convo = await renter_client.get_or_create_conversation(item.id, owner.id, renter.id)
    await eventually(lambda: len(socket.of_type("conversation")) >= 1)
    assert socket.of_type("conversation")[0]["conversation"]["id"] == str(convo.id)

    await renter_client.send_message(convo.id, renter.id, "hello owner")

    def latest_has_message():
        latest = socket.of_type("conversation")[-1]["conversation"]
        return (latest["last_message"] or {}).get("content") == "hello owner"

    await eventually(latest_has_message)
    assert socket.of_type("conversation")[-1]["conversation"]["unread_count"] == 1

    await socket.inbox.put(None)
    await task
    assert manager.count(f"user:{owner.id}") == 0
