"""Per-session request/response engine (JSON-RPC 2.0 framing, tool calls)."""

import json
from datetime import datetime, timezone
from typing import Any, Protocol

from ..errors import CommonsError
from ..logging_config import get_logger
from ..messages import MessageService
from ..sessions.transport import ISessionTransport
from .tools import TOOL_NAMES, TOOLS

logger = get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "agora-commons"
SERVER_VERSION = "0.1.0"

# JSON-RPC error codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602


class IFeedStatus(Protocol):
    """Whatever reports whether the change feed is currently connected."""

    @property
    def connected(self) -> bool:
        ...


class SessionEngine:
    """Bound to one session's credential, client address and transport."""

    def __init__(
        self,
        service: MessageService,
        credential_key: str,
        client_address: str,
        transport: ISessionTransport,
        feed_status: IFeedStatus | None = None,
    ):
        self._service = service
        self._credential_key = credential_key
        self._client_address = client_address
        self._transport = transport
        self._feed_status = feed_status

    # Operations

    async def write(self, role: Any, content: Any, meta: Any = None) -> dict:
        message, _ = await self._service.write(
            self._credential_key, self._client_address, role, content, meta
        )
        return {
            "id": message.id,
            "created_at": message.created_at.isoformat(timespec="microseconds"),
        }

    async def search(
        self, search: str | None = None, limit: Any = None, cursor: str | None = None
    ) -> dict:
        page = await self._service.search(search=search, limit=limit, cursor=cursor)
        return page.to_dict()

    def cached_read(self, limit: Any = None) -> dict:
        messages = self._service.cached_read(limit)
        return {
            "messages": [m.to_dict() for m in messages],
            "cached": True,
            "count": len(messages),
            "totalCached": len(self._service.cache),
        }

    async def register(self, email: Any) -> dict:
        credential, reactivated = await self._service.registry.register(email)
        result = credential.to_dict()
        if reactivated:
            result["message"] = "Your existing API key has been reactivated"
        return result

    def stream_status(self) -> dict:
        return {
            "connected": self._feed_status is not None and self._feed_status.connected,
            "cachedMessages": len(self._service.cache),
            "maxCacheSize": self._service.cache.max_size,
        }

    def ping(self) -> dict:
        return {"status": "pong", "timestamp": datetime.now(timezone.utc).isoformat()}

    # Dispatch

    async def call_tool(self, name: str, arguments: dict) -> dict:
        """Run one tool; raises CommonsError subclasses on domain failures."""
        if name == "messages_write":
            return await self.write(
                arguments.get("role"), arguments.get("content"), arguments.get("meta")
            )
        if name == "messages_search":
            return await self.search(
                arguments.get("search"), arguments.get("limit"), arguments.get("cursor")
            )
        if name == "messages_read_cached":
            return self.cached_read(arguments.get("limit"))
        if name == "register":
            return await self.register(arguments.get("email"))
        if name == "stream_status":
            return self.stream_status()
        if name == "echo_ping":
            return self.ping()
        raise KeyError(name)

    async def _tool_result(self, params: dict) -> dict:
        name = params.get("name")
        arguments = params.get("arguments") or {}
        if not isinstance(name, str) or not isinstance(arguments, dict):
            raise ValueError("tools/call requires a string name and object arguments")

        if name not in TOOL_NAMES:
            return _text_result(
                {"error": "unknown_tool", "message": f"Unknown tool: {name}"}, True
            )

        try:
            data = await self.call_tool(name, arguments)
        except CommonsError as e:
            logger.info(
                "Tool call rejected",
                extra={"context": {"tool": name, "error": e.code}},
            )
            return _text_result(e.to_dict(), True)
        except Exception as e:
            logger.error("Tool %s failed: %s", name, e, exc_info=True)
            return _text_result(
                {"error": "internal_error", "message": "Internal server error"}, True
            )

        return _text_result(data, False)

    async def handle(self, payload: Any) -> dict | None:
        """Process one inbound JSON-RPC message and push the response down the stream.

        Notifications (no ``id``) produce no response.
        """
        response = await self._dispatch(payload)
        if response is not None:
            self._transport.send("message", response)
        return response

    async def _dispatch(self, payload: Any) -> dict | None:
        if not isinstance(payload, dict) or payload.get("jsonrpc") != "2.0":
            return _error(None, INVALID_REQUEST, "Invalid JSON-RPC request")

        request_id = payload.get("id")
        method = payload.get("method")
        params = payload.get("params") or {}

        if not isinstance(method, str):
            return _error(request_id, INVALID_REQUEST, "Missing method")

        if "id" not in payload:
            logger.debug("Notification received: %s", method)
            return None

        if not isinstance(params, dict):
            return _error(request_id, INVALID_PARAMS, "params must be an object")

        if method == "initialize":
            result = {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            }
        elif method == "ping":
            result = {}
        elif method == "tools/list":
            result = {"tools": TOOLS}
        elif method == "tools/call":
            try:
                result = await self._tool_result(params)
            except ValueError as e:
                return _error(request_id, INVALID_PARAMS, str(e))
        else:
            return _error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _text_result(data: dict, is_error: bool) -> dict:
    result = {
        "content": [{"type": "text", "text": json.dumps(data, indent=2)}],
        "structuredContent": data,
    }
    if is_error:
        result["isError"] = True
    return result


def _error(request_id: Any, code: int, message: str) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code, "message": message},
    }
