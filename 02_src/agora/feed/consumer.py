"""Single consumer task between the change feed and its in-process readers."""

import asyncio
from typing import Protocol

from ..logging_config import get_logger
from ..models import FeedEvent, FeedEventKind
from .cache import RecentMessageCache
from .change_feed import IChangeFeed

logger = get_logger(__name__)


class IFeedListener(Protocol):
    """Receives live INSERT events after the cache has been updated."""

    def deliver(self, event: FeedEvent) -> None:
        ...


class FeedConsumer:
    """Reads the change feed and publishes to the recent-message cache and listeners.

    On connection loss it waits a fixed ``retry_delay`` and resubscribes; the
    new subscription's snapshot replaces the cache contents.
    """

    def __init__(
        self,
        feed: IChangeFeed,
        cache: RecentMessageCache,
        retry_delay: float = 5.0,
    ):
        self._feed = feed
        self._cache = cache
        self._retry_delay = retry_delay
        self._listeners: list[IFeedListener] = []
        self._task: asyncio.Task | None = None
        self._connected = False
        self._connect_count = 0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def connect_count(self) -> int:
        """How many subscriptions have been established (1 + reconnections)."""
        return self._connect_count

    def add_listener(self, listener: IFeedListener) -> None:
        self._listeners.append(listener)

    async def start(self) -> None:
        """Start the consumer task."""
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the consumer task and wait for it to finish."""
        self._connected = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while True:
            try:
                subscription = await self._feed.subscribe()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Change feed subscribe failed: %s", e, exc_info=True)
                await asyncio.sleep(self._retry_delay)
                continue

            self._connect_count += 1
            try:
                async for event in subscription:
                    if event.kind == FeedEventKind.DISCONNECTED:
                        break
                    self._apply(event)
            finally:
                self._connected = False
                subscription.close()

            logger.warning(
                "Change feed disconnected, reconnecting in %ss", self._retry_delay
            )
            await asyncio.sleep(self._retry_delay)

    def _apply(self, event: FeedEvent) -> None:
        if event.kind == FeedEventKind.SNAPSHOT:
            self._cache.replace(event.messages)
            self._connected = True
            logger.info("Change feed primed with %s messages", len(event.messages))
            return

        if event.message is None:
            return
        self._cache.add(event.message)
        for listener in self._listeners:
            try:
                listener.deliver(event)
            except Exception as e:
                logger.error("Feed listener failed: %s", e, exc_info=True)
