"""Outbound event channel of one streaming session."""

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class OutboundEvent:
    """One server-to-client event, framed later by the HTTP layer."""

    event: str
    data: Any


class ISessionTransport(Protocol):
    """Server-to-client half of a session's bidirectional channel."""

    @property
    def closed(self) -> bool:
        ...

    def send(self, event: str, data: Any) -> bool:
        """Queue an event; returns False once the transport is closed."""
        ...

    def close(self) -> None:
        """Release the channel; pending receivers wake up with None."""
        ...


class QueueTransport:
    """asyncio.Queue backed transport drained by the SSE response generator.

    A reader that falls ``max_pending`` events behind is cut off: the backlog is
    dropped and the transport closes, like a slow change-feed subscriber.
    """

    def __init__(self, max_pending: int = 1000) -> None:
        self._queue: asyncio.Queue[OutboundEvent | None] = asyncio.Queue()
        self._max_pending = max_pending
        self._closed = False
        self._overflowed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def overflowed(self) -> bool:
        """True when the transport closed because its reader fell behind."""
        return self._overflowed

    def send(self, event: str, data: Any) -> bool:
        if self._closed:
            return False
        if self._queue.qsize() >= self._max_pending:
            self._overflowed = True
            while not self._queue.empty():
                self._queue.get_nowait()
            self.close()
            return False
        self._queue.put_nowait(OutboundEvent(event=event, data=data))
        return True

    async def receive(self, timeout: float | None = None) -> OutboundEvent | None:
        """Next event, or None once closed. Raises ``asyncio.TimeoutError`` on timeout."""
        if self._closed and self._queue.empty():
            return None
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
