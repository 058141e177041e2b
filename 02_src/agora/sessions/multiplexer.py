"""Session multiplexer: opens, routes to and closes streaming sessions."""

import asyncio
import secrets
from typing import Any, Callable, Protocol

from ..concurrency import ShardedMap
from ..errors import MissingCredential, SessionNotFound
from ..logging_config import get_logger
from ..models import FeedEvent, SessionState
from .session import Session
from .transport import ISessionTransport

logger = get_logger(__name__)

TOKEN_BYTES = 32

EngineFactory = Callable[[Session], Any]


class ISessionMultiplexer(Protocol):
    """Registry of live sessions keyed by opaque token."""

    def open_session(
        self,
        credential_key: str | None,
        transport: ISessionTransport,
        client_address: str = "unknown",
        follow_feed: bool = False,
    ) -> Session:
        """Register a new session bound to a credential and transport."""
        ...

    async def route(self, token: str, payload: Any) -> dict | None:
        """Forward an inbound payload to the session's engine."""
        ...

    async def close_session(self, token: str) -> None:
        """Idempotent teardown."""
        ...


class SessionMultiplexer:
    """Owns every live session.

    The registry is a sharded map, so lookups and inserts for different
    tokens do not contend with each other.
    """

    def __init__(self, engine_factory: EngineFactory, drain_seconds: float = 1.0):
        self._engine_factory = engine_factory
        self._drain_seconds = drain_seconds
        self._sessions: ShardedMap[Session] = ShardedMap()
        self._closing_tasks: set[asyncio.Task] = set()

    def open_session(
        self,
        credential_key: str | None,
        transport: ISessionTransport,
        client_address: str = "unknown",
        follow_feed: bool = False,
    ) -> Session:
        """Register a new session bound to a credential and transport.

        Only the presence of a credential is checked here; its validity is
        checked by each operation that needs it.
        """
        if not credential_key or not credential_key.strip():
            raise MissingCredential("API key required as query parameter: ?apiKey=your_key")

        while True:
            token = secrets.token_urlsafe(TOKEN_BYTES)
            session = Session(
                token=token,
                credential_key=credential_key.strip(),
                client_address=client_address,
                transport=transport,
                follow_feed=follow_feed,
            )
            session.engine = self._engine_factory(session)
            if self._sessions.insert_if_absent(token, session):
                break

        session.state = SessionState.OPEN
        logger.info(
            "Session opened",
            extra={
                "context": {
                    "session": token[:8],
                    "client_address": client_address,
                    "follow_feed": follow_feed,
                }
            },
        )
        return session

    def get(self, token: str) -> Session | None:
        """Open session for ``token``, or None."""
        session = self._sessions.get(token)
        if session is None or not session.is_open:
            return None
        return session

    async def route(self, token: str, payload: Any) -> dict | None:
        """Forward an inbound payload to the session's engine.

        Unknown, closing and closed sessions are all reported as
        ``SessionNotFound``.
        """
        session = self.get(token) if token else None
        if session is None or session.engine is None:
            raise SessionNotFound()
        engine = session.engine
        return await session.run(lambda: engine.handle(payload))

    async def close_session(self, token: str) -> None:
        """Idempotent teardown; safe to race with in-flight routes."""
        session = self._sessions.get(token)
        if session is None:
            return

        await session.close(self._drain_seconds)

        with self._sessions.locked(token) as shard:
            if shard.get(token) is session:
                del shard[token]
                logger.info("Session closed", extra={"context": {"session": token[:8]}})

    def schedule_close(self, token: str) -> asyncio.Task:
        """Close in the background; for callers that may not await (cancelled stream generators)."""
        task = asyncio.create_task(self.close_session(token))
        self._closing_tasks.add(task)
        task.add_done_callback(self._closing_tasks.discard)
        return task

    async def close_all(self) -> None:
        """Close every session (application shutdown)."""
        sessions = self._sessions.values()
        if sessions:
            await asyncio.gather(
                *(self.close_session(s.token) for s in sessions),
                return_exceptions=True,
            )
        if self._closing_tasks:
            await asyncio.gather(*list(self._closing_tasks), return_exceptions=True)

    def deliver(self, event: FeedEvent) -> None:
        """Push a live feed event to every open session that follows the feed."""
        notification = {
            "jsonrpc": "2.0",
            "method": "notifications/message",
            "params": event.to_dict(),
        }
        for session in self._sessions.values():
            if not (session.follow_feed and session.is_open):
                continue
            if not session.transport.send("message", notification):
                # Reader fell behind or went away.
                logger.warning(
                    "Dropping session that stopped reading the feed",
                    extra={"context": {"session": session.token[:8]}},
                )
                self.schedule_close(session.token)

    def __len__(self) -> int:
        return len(self._sessions)
