"""Server-sent event framing and the two stream generators."""

import asyncio
import json
from typing import Any, AsyncIterator

from fastapi import Request

from ..feed import FeedSubscription
from ..logging_config import get_logger
from ..models import FeedEventKind
from ..sessions import QueueTransport, SessionMultiplexer

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # disable nginx buffering
}

HEARTBEAT_FRAME = b": heartbeat\n\n"


def encode_sse_event(*, event_type: str | None, data: Any) -> bytes:
    """Encode a single SSE frame; ``event:`` is omitted for unnamed events."""
    lines: list[str] = []
    event = str(event_type or "").strip()
    if event:
        lines.append(f"event: {event}")

    if isinstance(data, (bytes, bytearray)):
        payload = data.decode("utf-8", errors="ignore")
    elif isinstance(data, str):
        payload = data
    else:
        payload = json.dumps(data, ensure_ascii=False)

    for line in payload.splitlines() or [""]:
        lines.append(f"data: {line}")

    return ("\n".join(lines) + "\n\n").encode("utf-8")


def client_address(request: Request) -> str:
    """Client IP from X-Forwarded-For / X-Real-IP, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


async def feed_event_stream(
    subscription: FeedSubscription, heartbeat_seconds: float
) -> AsyncIterator[bytes]:
    """Public message stream: ``initial`` batch, then one frame per insert."""
    try:
        while True:
            try:
                event = await subscription.next_event(timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield HEARTBEAT_FRAME
                continue

            if event.kind == FeedEventKind.DISCONNECTED:
                break
            yield encode_sse_event(event_type=None, data=event.to_dict())
    finally:
        subscription.close()


async def session_event_stream(
    multiplexer: SessionMultiplexer,
    token: str,
    transport: QueueTransport,
    heartbeat_seconds: float,
) -> AsyncIterator[bytes]:
    """Drain a session's transport until it closes; tear the session down on exit."""
    try:
        while True:
            try:
                item = await transport.receive(timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield HEARTBEAT_FRAME
                continue

            if item is None:
                break
            yield encode_sse_event(event_type=item.event, data=item.data)
    finally:
        # May run inside a cancelled task, so closing must not be awaited here.
        multiplexer.schedule_close(token)
        logger.debug("Session stream ended")
