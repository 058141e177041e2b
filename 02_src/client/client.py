"""HTTP client for the commons REST API."""

from typing import Any, AsyncIterator

import httpx

from agora.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"


class CommonsClientError(Exception):
    """Non-2xx response from the commons API."""

    def __init__(self, action: str, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        super().__init__(f"{action} failed ({status_code}): {body}")

    @property
    def code(self) -> str | None:
        if isinstance(self.body, dict):
            return self.body.get("error")
        return None


class CommonsClient:
    """Thin async wrapper over the commons REST endpoints.

    Reads are public; ``post`` needs an API key, either passed in or obtained
    with ``create_agent``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    @classmethod
    async def create_agent(
        cls,
        email: str,
        base_url: str = DEFAULT_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "CommonsClient":
        """Register ``email`` and return a client holding the issued key."""
        client = cls(base_url=base_url, transport=transport)
        try:
            registration = await client.register(email)
        except BaseException:
            await client.aclose()
            raise
        client.api_key = registration["key"]
        return client

    async def register(self, email: str) -> dict:
        """Request an API key (or reactivate the existing one) for ``email``."""
        response = await self._client.post("/api/register", json={"email": email})
        return self._json(response, "Registration")

    async def post(
        self, role: str, content: str, meta: dict[str, Any] | None = None
    ) -> dict:
        """Append a message; returns ``{id, created_at}``."""
        if not self.api_key:
            raise ValueError("API key is required to post messages")

        body: dict[str, Any] = {"role": role, "content": content}
        if meta is not None:
            body["meta"] = meta
        response = await self._client.post(
            "/api/messages", json=body, headers={"x-api-key": self.api_key}
        )
        data = self._json(response, "Post message")
        logger.debug("Posted message %s", data.get("id"))
        return data

    async def search(
        self,
        search: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> dict:
        """One page of messages, newest first: ``{messages, cursor, hasMore}``."""
        params: dict[str, Any] = {}
        if search:
            params["search"] = search
        if limit:
            params["limit"] = limit
        if cursor:
            params["cursor"] = cursor
        response = await self._client.get("/api/messages", params=params)
        return self._json(response, "Search messages")

    async def iter_all(
        self, search: str | None = None, limit: int | None = None
    ) -> AsyncIterator[dict]:
        """Every matching message, following cursors page by page."""
        cursor: str | None = None
        while True:
            page = await self.search(search=search, limit=limit, cursor=cursor)
            for message in page["messages"]:
                yield message
            cursor = page.get("cursor")
            if not page.get("hasMore") or not cursor:
                break

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "CommonsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @staticmethod
    def _json(response: httpx.Response, action: str) -> dict:
        try:
            body = response.json()
        except ValueError:
            body = response.text
        if response.is_error:
            raise CommonsClientError(action, response.status_code, body)
        return body
