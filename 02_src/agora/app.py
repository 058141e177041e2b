"""Application bootstrap and lifecycle management."""

import asyncio
import os
from typing import Protocol

from .config import Settings, resolve_db_path
from .credentials import CredentialRegistry
from .feed import ChangeFeed, FeedConsumer, RecentMessageCache
from .logging_config import get_logger
from .messages import MessageService
from .models import RateLimitPolicy
from .protocol import SessionEngine
from .rate_limit import RateLimiter
from .sessions import Session, SessionMultiplexer
from .storage import IStorage, Storage

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...


class Application:
    """Owns every process-wide component and hands them to request handlers."""

    def __init__(
        self,
        db_path: str | None = None,
        settings: Settings | None = None,
        limiter: RateLimiter | None = None,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self.settings = settings or Settings.from_env()

        # Components (will be initialized in start())
        self._storage: Storage | None = None
        self._feed: ChangeFeed | None = None
        self._registry: CredentialRegistry | None = None
        self._limiter: RateLimiter | None = limiter
        self._cache: RecentMessageCache | None = None
        self._consumer: FeedConsumer | None = None
        self._service: MessageService | None = None
        self._multiplexer: SessionMultiplexer | None = None
        self._sweeper_task: asyncio.Task | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")
        settings = self.settings

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. Change feed (snapshots from Storage, fed by Storage inserts)
        self._feed = ChangeFeed(self._storage, snapshot_size=settings.feed_snapshot_size)
        self._storage.attach_sink(self._feed)

        # 3. Credential registry (depends on Storage)
        self._registry = CredentialRegistry(self._storage)

        # 4. Rate limiter (no dependencies) + idle bucket sweeper
        if self._limiter is None:
            self._limiter = RateLimiter(
                address_policy=RateLimitPolicy(
                    "address", settings.address_capacity, settings.address_refill_rate
                ),
                credential_policy=RateLimitPolicy(
                    "credential",
                    settings.credential_capacity,
                    settings.credential_refill_rate,
                ),
            )
        self._sweeper_task = asyncio.create_task(
            self._limiter.run_sweeper(settings.sweep_interval, settings.bucket_idle_seconds)
        )

        # 5. Recent-message cache and its single feed consumer
        self._cache = RecentMessageCache(settings.cache_size)
        self._consumer = FeedConsumer(
            self._feed, self._cache, retry_delay=settings.feed_retry_delay
        )

        # 6. Message operations (Storage, registry, limiter, cache)
        self._service = MessageService(
            self._storage,
            self._registry,
            self._limiter,
            self._cache,
            operation_timeout=settings.operation_timeout,
        )

        # 7. Session multiplexer; receives live feed events for following sessions
        self._multiplexer = SessionMultiplexer(
            self._create_engine, drain_seconds=settings.session_drain_seconds
        )
        self._consumer.add_listener(self._multiplexer)
        await self._consumer.start()
        logger.info("All components initialized successfully")

    def _create_engine(self, session: Session) -> SessionEngine:
        return SessionEngine(
            service=self.service,
            credential_key=session.credential_key,
            client_address=session.client_address,
            transport=session.transport,
            feed_status=self._consumer,
        )

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._multiplexer is not None:
            await self._multiplexer.close_all()
            logger.info("Sessions closed")
        if self._consumer is not None:
            await self._consumer.stop()
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            try:
                await self._sweeper_task
            except asyncio.CancelledError:
                pass
            self._sweeper_task = None
        if self._feed is not None:
            self._feed.close()
        if self._storage is not None:
            await self._storage.close()
            logger.info("Storage closed")

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if self._storage is None:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def feed(self) -> ChangeFeed:
        """Get change feed instance."""
        if self._feed is None:
            raise RuntimeError("Application not started")
        return self._feed

    @property
    def registry(self) -> CredentialRegistry:
        """Get credential registry instance."""
        if self._registry is None:
            raise RuntimeError("Application not started")
        return self._registry

    @property
    def limiter(self) -> RateLimiter:
        """Get rate limiter instance."""
        if self._limiter is None:
            raise RuntimeError("Application not started")
        return self._limiter

    @property
    def consumer(self) -> FeedConsumer:
        """Get feed consumer instance."""
        if self._consumer is None:
            raise RuntimeError("Application not started")
        return self._consumer

    @property
    def service(self) -> MessageService:
        """Get message service instance."""
        if self._service is None:
            raise RuntimeError("Application not started")
        return self._service

    @property
    def multiplexer(self) -> SessionMultiplexer:
        """Get session multiplexer instance."""
        if self._multiplexer is None:
            raise RuntimeError("Application not started")
        return self._multiplexer
