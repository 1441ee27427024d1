"""Messaging client bound to one principal.

Each operation opens its own session from the factory, checks the access
policy before touching data, and converts storage failures into an empty
result. The classified failure is kept on ``last_error`` so callers can
show ``last_error.user_message``.

Live subscriptions listen on the change feed and re-fetch the hydrated row
for every event, so callbacks never see a raw change payload.
"""

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.breaker import CircuitBreaker
from core.mapper import ORMMapper
from core.settings import settings
from core.storage_errors import (
    AuthorizationDenied,
    ConstraintViolationError,
    StorageError,
    classify_error,
)
from models.enums import Action, MessageType
from models.models import Conversation, ConversationParticipant, Message
from policy.access_policy import require
from realtime.change_feed import ChangeEvent, ChangeFeed, ChangeType, FeedSubscription
from realtime.change_feed import change_feed as default_feed
from repos.conversation_repo import ConversationRepo
from repos.message_repo import MessageRepo
from repos.participant_repo import ParticipantRepo
from schemas.schema import ConversationOut, MessageOut

logger = logging.getLogger(__name__)

Callback = Callable[[Any], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


def _as_uuid(value) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


@dataclass
class LiveSubscription:
    feed_subscription: FeedSubscription
    task: asyncio.Task
    label: str


class MessagingClient:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        principal_id: uuid.UUID,
        feed: Optional[ChangeFeed] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.session_factory = session_factory
        self.principal_id = _as_uuid(principal_id)
        self.feed = feed if feed is not None else default_feed
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=settings.BREAKER_FAILURE_THRESHOLD,
            base_recovery_time=settings.BREAKER_RECOVERY_SECONDS,
            max_recovery_time=settings.BREAKER_MAX_RECOVERY_SECONDS,
        )
        self.mapper = ORMMapper()
        self.last_error: StorageError | None = None
        self.delivery_error: StorageError | None = None
        self._subscriptions: dict[uuid.UUID, LiveSubscription] = {}

    async def __aenter__(self) -> "MessagingClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def _run(self, operation: str, handler, empty=None, background=False):
        # subscription deliveries report through delivery_error only
        slot = "delivery_error" if background else "last_error"
        setattr(self, slot, None)
        try:
            return await self.breaker.call(handler)
        except Exception as e:
            error = classify_error(e)
            setattr(self, slot, error)
            if isinstance(error, AuthorizationDenied):
                logger.warning(
                    f"[MessagingClient] {operation} denied for {self.principal_id}: "
                    f"{error}"
                )
            else:
                logger.error(
                    f"[MessagingClient] {operation} failed for {self.principal_id}: "
                    f"{type(error).__name__}: {error}",
                    exc_info=e,
                )
            return empty

    async def _enrich(
        self, db, conversations: List[Conversation], user_id: uuid.UUID
    ) -> List[ConversationOut]:
        ids = [convo.id for convo in conversations]
        message_repo = MessageRepo(db)
        latest = await message_repo.latest_by_conversation(ids)
        unread = await message_repo.unread_counts(user_id, ids)

        return [
            self.mapper.one(
                convo,
                ConversationOut,
                last_message=self.mapper.maybe(latest.get(convo.id), MessageOut),
                unread_count=unread.get(convo.id, 0),
            )
            for convo in conversations
        ]

    async def get_or_create_conversation(
        self, item_id, owner_id, renter_id
    ) -> Optional[ConversationOut]:
        item_id, owner_id, renter_id = map(_as_uuid, (item_id, owner_id, renter_id))

        async def handler():
            draft = Conversation(item_id=item_id, owner_id=owner_id, renter_id=renter_id)
            require(self.principal_id, draft, Action.CREATE)

            async with self.session_factory() as db:
                repo = ConversationRepo(db)
                convo = await repo.get_or_create(item_id, owner_id, renter_id)
                hydrated = await repo.get_by_id(convo.id, self.principal_id)
                if hydrated is None:
                    return None
                [result] = await self._enrich(db, [hydrated], self.principal_id)
                return result

        return await self._run("get_or_create_conversation", handler)

    async def find_conversation(
        self, item_id, owner_id, renter_id
    ) -> Optional[ConversationOut]:
        """The existing thread for (item, owner, renter), never creating one."""
        item_id, owner_id, renter_id = map(_as_uuid, (item_id, owner_id, renter_id))

        async def handler():
            async with self.session_factory() as db:
                repo = ConversationRepo(db)
                found = await repo.find(item_id, owner_id, renter_id)
                if found is None:
                    return None
                convo = await repo.get_by_id(found.id, self.principal_id)
                if convo is None:
                    raise AuthorizationDenied("Conversation not visible")
                [result] = await self._enrich(db, [convo], self.principal_id)
                return result

        return await self._run("find_conversation", handler)

    async def get_conversation(self, conversation_id) -> Optional[ConversationOut]:
        return await self._load_conversation(conversation_id)

    async def _load_conversation(
        self, conversation_id, background: bool = False
    ) -> Optional[ConversationOut]:
        conversation_id = _as_uuid(conversation_id)

        async def handler():
            async with self.session_factory() as db:
                convo = await ConversationRepo(db).get_by_id(
                    conversation_id, self.principal_id
                )
                if convo is None:
                    return None
                require(self.principal_id, convo, Action.READ)
                [result] = await self._enrich(db, [convo], self.principal_id)
                return result

        return await self._run("get_conversation", handler, background=background)

    async def link_rental(self, conversation_id, rental_id) -> bool:
        conversation_id = _as_uuid(conversation_id)
        rental_id = _as_uuid(rental_id)

        async def handler():
            async with self.session_factory() as db:
                repo = ConversationRepo(db)
                convo = await repo.get_by_id(conversation_id, self.principal_id)
                if convo is None:
                    raise AuthorizationDenied("Conversation not visible")
                require(self.principal_id, convo, Action.UPDATE)

                await repo.attach_rental(convo, rental_id)
                return True

        return await self._run("link_rental", handler, empty=False)

    async def get_user_conversations(self, user_id) -> List[ConversationOut]:
        user_id = _as_uuid(user_id)

        async def handler():
            if user_id != self.principal_id:
                raise AuthorizationDenied("Conversations of another user requested")

            async with self.session_factory() as db:
                conversations = await ConversationRepo(db).list_for_user(user_id)
                return await self._enrich(db, conversations, user_id)

        return await self._run("get_user_conversations", handler, empty=[])

    async def get_messages(self, conversation_id) -> List[MessageOut]:
        conversation_id = _as_uuid(conversation_id)

        async def handler():
            async with self.session_factory() as db:
                convo = await ConversationRepo(db).get_by_id(
                    conversation_id, self.principal_id
                )
                if convo is None:
                    return []
                require(self.principal_id, Message, Action.READ, parent=convo)

                messages = await MessageRepo(db).list_for_conversation(
                    conversation_id, self.principal_id
                )
                return self.mapper.many(items=messages, schema=MessageOut)

        return await self._run("get_messages", handler, empty=[])

    async def send_message(
        self,
        conversation_id,
        sender_id,
        content: str,
        message_type: MessageType | str = MessageType.TEXT,
        metadata: Optional[dict] = None,
    ) -> Optional[MessageOut]:
        conversation_id = _as_uuid(conversation_id)
        sender_id = _as_uuid(sender_id)

        async def handler():
            if not content or not content.strip():
                raise ConstraintViolationError("Message content is empty")

            async with self.session_factory() as db:
                convo = await ConversationRepo(db).get_by_id(
                    conversation_id, self.principal_id
                )
                message = Message(
                    conversation_id=conversation_id,
                    sender_id=sender_id,
                    content=content,
                    message_type=MessageType(message_type),
                    meta=dict(metadata or {}),
                    read_by={},
                )
                require(self.principal_id, message, Action.CREATE, parent=convo)

                saved = await MessageRepo(db).create(message)
                return self.mapper.one(saved, MessageOut)

        return await self._run("send_message", handler)

    async def edit_message(self, message_id, content: str) -> Optional[MessageOut]:
        message_id = _as_uuid(message_id)

        async def handler():
            if not content or not content.strip():
                raise ConstraintViolationError("Message content is empty")

            async with self.session_factory() as db:
                repo = MessageRepo(db)
                message = await repo.get_by_id(message_id, self.principal_id)
                if message is None:
                    raise AuthorizationDenied("Message not visible")
                require(self.principal_id, message, Action.UPDATE)

                updated = await repo.update_content(message, content)
                return self.mapper.one(updated, MessageOut)

        return await self._run("edit_message", handler)

    async def add_participant(self, conversation_id, user_id) -> bool:
        conversation_id = _as_uuid(conversation_id)
        user_id = _as_uuid(user_id)

        async def handler():
            async with self.session_factory() as db:
                convo = await ConversationRepo(db).get_by_id(
                    conversation_id, self.principal_id
                )
                draft = ConversationParticipant(
                    conversation_id=conversation_id, user_id=user_id
                )
                require(self.principal_id, draft, Action.CREATE, parent=convo)

                inserted = await ParticipantRepo(db).add(conversation_id, user_id)
                if not inserted:
                    logger.debug(
                        f"Participant {user_id} already in conversation {conversation_id}"
                    )
                return True

        return await self._run("add_participant", handler, empty=False)

    async def mark_as_read(self, conversation_id, user_id) -> bool:
        conversation_id = _as_uuid(conversation_id)
        user_id = _as_uuid(user_id)

        async def handler():
            async with self.session_factory() as db:
                repo = ParticipantRepo(db)
                participant = await repo.get(
                    conversation_id, user_id, viewer_id=self.principal_id
                )
                if participant is None:
                    if user_id != self.principal_id:
                        raise AuthorizationDenied("Read marker of another user")
                    return False
                require(self.principal_id, participant, Action.UPDATE)

                await repo.mark_read(participant)
                return True

        return await self._run("mark_as_read", handler, empty=False)

    async def _fetch_message(self, message_id) -> Optional[MessageOut]:
        async def handler():
            async with self.session_factory() as db:
                message = await MessageRepo(db).get_by_id(
                    _as_uuid(message_id), self.principal_id
                )
                return self.mapper.maybe(message, MessageOut)

        return await self._run("fetch_message", handler, background=True)

    def subscribe_to_messages(self, conversation_id, callback: Callback) -> Unsubscribe:
        conversation_id = _as_uuid(conversation_id)

        feed_subscription = self.feed.subscribe(
            Message.__tablename__,
            [ChangeType.INSERT],
            predicate=lambda record: record.get("conversation_id") == conversation_id,
        )

        async def deliver(event: ChangeEvent):
            message = await self._fetch_message(event.row_id)
            if message is not None:
                await self._invoke(callback, message)

        return self._start(feed_subscription, deliver, f"messages:{conversation_id}")

    def subscribe_to_conversations(self, user_id, callback: Callback) -> Unsubscribe:
        user_id = _as_uuid(user_id)

        if user_id != self.principal_id:
            self.last_error = AuthorizationDenied(
                "Conversation feed of another user requested"
            )
            logger.warning(
                f"[MessagingClient] subscribe_to_conversations denied for "
                f"{self.principal_id}"
            )
            return lambda: None

        feed_subscription = self.feed.subscribe(
            Conversation.__tablename__,
            [ChangeType.INSERT, ChangeType.UPDATE],
            predicate=lambda record: user_id
            in (record.get("owner_id"), record.get("renter_id")),
        )

        async def deliver(event: ChangeEvent):
            conversation = await self._load_conversation(
                event.row_id, background=True
            )
            if conversation is not None:
                await self._invoke(callback, conversation)

        return self._start(feed_subscription, deliver, f"conversations:{user_id}")

    async def _invoke(self, callback: Callback, payload) -> None:
        result = callback(payload)
        if inspect.isawaitable(result):
            await result

    def _start(self, feed_subscription: FeedSubscription, deliver, label: str):
        subscription_id = feed_subscription.id
        task = asyncio.create_task(
            self._pump(feed_subscription, deliver, label),
            name=f"subscription-{label}",
        )
        self._subscriptions[subscription_id] = LiveSubscription(
            feed_subscription=feed_subscription, task=task, label=label
        )
        logger.info(f"[MessagingClient] subscribed {label} ({subscription_id})")

        def unsubscribe() -> None:
            self._release(subscription_id)

        return unsubscribe

    async def _pump(self, feed_subscription: FeedSubscription, deliver, label: str):
        while True:
            event = await feed_subscription.get()
            try:
                await deliver(event)
            except Exception:
                logger.exception(
                    f"[MessagingClient] callback for {label} failed on {event.row_id}"
                )

    def _release(self, subscription_id: uuid.UUID) -> Optional[asyncio.Task]:
        live = self._subscriptions.pop(subscription_id, None)
        if live is None:
            return None

        live.feed_subscription.close()
        live.task.cancel()
        logger.info(f"[MessagingClient] unsubscribed {live.label} ({subscription_id})")
        return live.task

    def cleanup(self) -> None:
        for subscription_id in list(self._subscriptions):
            self._release(subscription_id)

    async def aclose(self) -> None:
        tasks = [
            task
            for task in (
                self._release(subscription_id)
                for subscription_id in list(self._subscriptions)
            )
            if task is not None
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
