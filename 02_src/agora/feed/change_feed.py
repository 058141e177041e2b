"""In-process change feed: snapshot followed by live inserts."""

import asyncio
from typing import Protocol

from ..logging_config import get_logger
from ..models import FeedEvent, FeedEventKind, Message
from ..storage import IStorage

logger = get_logger(__name__)

DEFAULT_MAX_PENDING = 1000


class FeedSubscription:
    """One subscriber's ordered view of the feed.

    Yields a SNAPSHOT first, then INSERT events, and ends with a single
    DISCONNECTED event when the connection is lost. A subscriber that falls
    more than ``max_pending`` events behind is treated as disconnected.
    """

    def __init__(self, feed: "ChangeFeed", max_pending: int = DEFAULT_MAX_PENDING):
        self._feed = feed
        self._max_pending = max_pending
        self._queue: asyncio.Queue[FeedEvent] = asyncio.Queue()
        self._lost = False

    @property
    def lost(self) -> bool:
        return self._lost

    def _offer(self, event: FeedEvent) -> None:
        if self._lost:
            return
        if event.kind == FeedEventKind.DISCONNECTED:
            self._mark_lost()
            return
        if self._queue.qsize() >= self._max_pending:
            logger.warning("Feed subscriber fell behind, dropping it")
            self._mark_lost()
            return
        self._queue.put_nowait(event)

    def _mark_lost(self) -> None:
        self._lost = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(FeedEvent(kind=FeedEventKind.DISCONNECTED))
        self._feed.unsubscribe(self)

    def _prime(self, snapshot: list[Message]) -> None:
        """Put the snapshot ahead of inserts buffered while it was loading."""
        if self._lost:
            return
        buffered: list[FeedEvent] = []
        while not self._queue.empty():
            buffered.append(self._queue.get_nowait())
        seen = {m.id for m in snapshot}
        self._queue.put_nowait(FeedEvent(kind=FeedEventKind.SNAPSHOT, messages=snapshot))
        for event in buffered:
            if event.message is not None and event.message.id in seen:
                continue
            self._queue.put_nowait(event)

    async def next_event(self, timeout: float | None = None) -> FeedEvent:
        """Wait for the next event; raises ``asyncio.TimeoutError`` after ``timeout``."""
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def close(self) -> None:
        self._feed.unsubscribe(self)

    def __aiter__(self) -> "FeedSubscription":
        return self

    async def __anext__(self) -> FeedEvent:
        if self._lost and self._queue.empty():
            raise StopAsyncIteration
        return await self._queue.get()


class IChangeFeed(Protocol):
    """Subscription source of newly committed messages."""

    async def subscribe(self) -> FeedSubscription:
        """Open a subscription primed with a snapshot of recent messages."""
        ...

    def publish(self, message: Message) -> None:
        """Hand a committed message to every live subscription."""
        ...


class ChangeFeed:
    """Fans committed messages out to subscriptions; attached to the store as a sink."""

    def __init__(self, storage: IStorage, snapshot_size: int = 100):
        self._storage = storage
        self._snapshot_size = snapshot_size
        self._subscribers: set[FeedSubscription] = set()
        self._closed = False

    async def subscribe(self) -> FeedSubscription:
        """Open a subscription primed with a snapshot of recent messages."""
        if self._closed:
            raise RuntimeError("Change feed closed")

        subscription = FeedSubscription(self)
        # Registered before the snapshot query so no insert falls in between.
        self._subscribers.add(subscription)
        try:
            snapshot = await self._storage.recent_messages(self._snapshot_size)
        except BaseException:
            self.unsubscribe(subscription)
            raise
        subscription._prime(snapshot)
        return subscription

    def unsubscribe(self, subscription: FeedSubscription) -> None:
        self._subscribers.discard(subscription)

    def publish(self, message: Message) -> None:
        """Hand a committed message to every live subscription."""
        event = FeedEvent(kind=FeedEventKind.INSERT, messages=[message])
        for subscription in list(self._subscribers):
            subscription._offer(event)

    def drop_subscribers(self) -> None:
        """Signal connection loss to every current subscriber."""
        for subscription in list(self._subscribers):
            subscription._offer(FeedEvent(kind=FeedEventKind.DISCONNECTED))

    def close(self) -> None:
        self._closed = True
        self.drop_subscribers()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
