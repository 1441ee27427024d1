"""In-process change feed.

Committed inserts and updates are published here by the session listeners
in ``realtime.change_capture``. Each subscriber owns a bounded queue and
receives only the events matching its table, event types and predicate.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional
from uuid import UUID, uuid4

from core.settings import settings

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: ChangeType
    record: dict = field(default_factory=dict)

    @property
    def row_id(self) -> Any:
        return self.record.get("id")


RecordPredicate = Callable[[dict], bool]


class FeedSubscription:
    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        events: Iterable[ChangeType],
        predicate: Optional[RecordPredicate] = None,
        maxsize: int = 0,
    ):
        self.id: UUID = uuid4()
        self.feed = feed
        self.table = table
        self.events = frozenset(events)
        self.predicate = predicate
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def matches(self, event: ChangeEvent) -> bool:
        if self.closed or event.table != self.table or event.type not in self.events:
            return False
        if self.predicate is None:
            return True
        try:
            return bool(self.predicate(event.record))
        except Exception:
            logger.exception(f"Feed predicate failed for subscription {self.id}")
            return False

    def offer(self, event: ChangeEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                f"Subscription {self.id} queue full, dropping {event.type.value} "
                f"on {event.table} ({event.row_id})"
            )

    async def get(self) -> ChangeEvent:
        return await self.queue.get()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.feed.unsubscribe(self.id)


class ChangeFeed:
    def __init__(self, queue_size: int = 0):
        self.queue_size = queue_size
        self._subscriptions: dict[UUID, FeedSubscription] = {}

    def subscribe(
        self,
        table: str,
        events: Iterable[ChangeType],
        predicate: Optional[RecordPredicate] = None,
    ) -> FeedSubscription:
        subscription = FeedSubscription(
            self, table, events, predicate, maxsize=self.queue_size
        )
        self._subscriptions[subscription.id] = subscription
        logger.debug(f"Feed subscription {subscription.id} opened on {table}")
        return subscription

    def unsubscribe(self, subscription_id: UUID) -> None:
        if self._subscriptions.pop(subscription_id, None) is not None:
            logger.debug(f"Feed subscription {subscription_id} closed")

    def publish(self, event: ChangeEvent) -> int:
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.matches(event):
                subscription.offer(event)
                delivered += 1
        return delivered

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)


change_feed = ChangeFeed(queue_size=settings.CHANGE_FEED_QUEUE_SIZE)
