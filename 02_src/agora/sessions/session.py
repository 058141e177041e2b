"""Routing handle of one live streaming connection."""

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from ..errors import SessionNotFound
from ..logging_config import get_logger
from ..models import SessionState
from .transport import ISessionTransport

if TYPE_CHECKING:
    from ..protocol import SessionEngine

T = TypeVar("T")


class Session:
    """One streaming connection: token, bound credential, transport and owned tasks."""

    def __init__(
        self,
        token: str,
        credential_key: str,
        client_address: str,
        transport: ISessionTransport,
        follow_feed: bool = False,
    ):
        self.token = token
        self.credential_key = credential_key
        self.client_address = client_address
        self.transport = transport
        self.follow_feed = follow_feed
        self.state = SessionState.OPENING
        self.engine: "SessionEngine | None" = None

        # asyncio.Lock wakes waiters in FIFO order: operations run as received.
        self._order_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._closing: asyncio.Future | None = None
        self._logger = get_logger(__name__, session=token[:8])

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.OPEN

    @property
    def pending_operations(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run one admitted operation as a task owned by this session."""
        if not self.is_open:
            raise SessionNotFound()

        task = asyncio.create_task(self._serialized(operation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # Cancelled by close(), not by our caller.
            raise SessionNotFound("Session closed while the operation was running")

    async def _serialized(self, operation: Callable[[], Awaitable[T]]) -> T:
        async with self._order_lock:
            return await operation()

    async def close(self, drain_seconds: float = 1.0) -> None:
        """Idempotent; concurrent callers share one closing procedure."""
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._close(drain_seconds))
        await asyncio.shield(self._closing)

    async def _close(self, drain_seconds: float) -> None:
        self.state = SessionState.CLOSING

        pending = [task for task in self._tasks if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=drain_seconds)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
                self._logger.info(
                    "Cancelled operations on session close",
                    extra={"context": {"count": len(still_running)}},
                )

        self.transport.close()
        self.state = SessionState.CLOSED
