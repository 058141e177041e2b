"""Write, search and cached-read operations over the commons."""

import asyncio
from typing import Any, Awaitable, TypeVar

from ..credentials import ICredentialRegistry
from ..errors import OperationTimeout, StoreError
from ..feed import RecentMessageCache
from ..logging_config import get_logger
from ..models import Message, MessagePage, RateLimitResult
from ..rate_limit import IRateLimiter, raise_if_denied
from ..schemas import CachedReadRequest, SearchRequest, WriteRequest, parse_request
from ..storage import IStorage
from .pagination import build_page, conjunctive_rewrite, parse_cursor

logger = get_logger(__name__)

T = TypeVar("T")


class MessageService:
    """Shared by the REST routes and every session engine."""

    def __init__(
        self,
        storage: IStorage,
        registry: ICredentialRegistry,
        limiter: IRateLimiter,
        cache: RecentMessageCache,
        operation_timeout: float = 10.0,
    ):
        self._storage = storage
        self._registry = registry
        self._limiter = limiter
        self._cache = cache
        self._operation_timeout = operation_timeout

    @property
    def registry(self) -> ICredentialRegistry:
        return self._registry

    @property
    def limiter(self) -> IRateLimiter:
        return self._limiter

    @property
    def cache(self) -> RecentMessageCache:
        return self._cache

    async def _bounded(self, awaitable: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._operation_timeout)
        except asyncio.TimeoutError as e:
            logger.error(
                "Store operation timed out",
                extra={"context": {"operation": operation, "timeout": self._operation_timeout}},
            )
            raise OperationTimeout(
                f"{operation} did not complete within {self._operation_timeout}s"
            ) from e

    async def write(
        self,
        credential_key: str | None,
        client_address: str,
        role: Any,
        content: Any,
        meta: Any = None,
    ) -> tuple[Message, RateLimitResult]:
        """Validate, authenticate, admit, then insert. Never retried internally."""
        request = parse_request(
            WriteRequest, {"role": role, "content": content, "meta": meta}
        )
        credential = await self._bounded(
            self._registry.authenticate(credential_key), "authenticate"
        )

        admission = self._limiter.admit(client_address, credential.key)
        raise_if_denied(admission)

        try:
            message = await self._bounded(
                self._storage.insert_message(
                    credential.id, request.role, request.content, request.meta
                ),
                "insert_message",
            )
        except StoreError as e:
            logger.error("Message insert failed: %s", e)
            raise

        logger.info(
            "Message written",
            extra={"context": {"id": message.id, "role": message.role}},
        )
        return message, admission

    async def search(
        self,
        search: str | None = None,
        limit: Any = None,
        cursor: str | None = None,
    ) -> MessagePage:
        """Paginated read, newest first. Public; no rate limiting."""
        data: dict[str, Any] = {"search": search, "cursor": cursor}
        if limit is not None:
            data["limit"] = limit
        request = parse_request(SearchRequest, data)
        before = parse_cursor(request.cursor)
        query = (request.search or "").strip() or None

        try:
            messages = await self._bounded(
                self._storage.query_messages(query, request.limit, before),
                "query_messages",
            )
        except StoreError:
            if query is None:
                raise
            rewritten = conjunctive_rewrite(query)
            logger.info(
                "Search query failed, retrying with conjunctive rewrite",
                extra={"context": {"query": query, "rewritten": rewritten}},
            )
            messages = await self._bounded(
                self._storage.query_messages(rewritten, request.limit, before),
                "query_messages",
            )

        return build_page(messages, request.limit)

    def cached_read(self, limit: Any = None) -> list[Message]:
        """Most recent messages seen on the change feed; empty before the first snapshot."""
        data = {} if limit is None else {"limit": limit}
        request = parse_request(CachedReadRequest, data)
        return self._cache.get(request.limit)
