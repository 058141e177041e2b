"""Messages API routes."""

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ...app import Application
from ...errors import ValidationError
from ...models import MAX_PAGE_SIZE
from ..responses import rate_limit_headers
from ..sse import SSE_HEADERS, client_address, feed_event_stream


def create_messages_router(app: Application) -> APIRouter:
    """Create messages router."""
    router = APIRouter(prefix="/api/messages", tags=["messages"])

    @router.get("")
    async def list_messages(
        search: str | None = Query(None, description="Full-text search query"),
        limit: int = Query(50, ge=1, description="Page size, capped at 100"),
        cursor: str | None = Query(None, description="created_at of the last item seen"),
    ) -> dict:
        """Public, unauthenticated read of the commons, newest first."""
        page = await app.service.search(
            search=search, limit=min(limit, MAX_PAGE_SIZE), cursor=cursor
        )
        return page.to_dict()

    @router.post("")
    async def write_message(
        request: Request,
        x_api_key: str | None = Header(None),
    ) -> JSONResponse:
        """Append a message; requires an active API key."""
        try:
            body = await request.json()
        except ValueError:  # malformed JSON or undecodable bytes
            raise ValidationError("Request body must be JSON")
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        message, admission = await app.service.write(
            x_api_key,
            client_address(request),
            body.get("role"),
            body.get("content"),
            body.get("meta"),
        )
        return JSONResponse(
            status_code=201,
            headers=rate_limit_headers(app.limiter, admission),
            content={
                "id": message.id,
                "created_at": message.created_at.isoformat(timespec="microseconds"),
            },
        )

    @router.get("/stream")
    async def stream_messages() -> StreamingResponse:
        """Public SSE stream: an initial batch, then every new message."""
        subscription = await app.feed.subscribe()
        return StreamingResponse(
            feed_event_stream(subscription, app.settings.heartbeat_seconds),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return router
