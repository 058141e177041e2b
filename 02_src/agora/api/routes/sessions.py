"""Session transport routes: SSE stream plus POSTed operations."""

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ...app import Application
from ...sessions import QueueTransport
from ..sse import SSE_HEADERS, client_address, session_event_stream

SESSION_HEADER = "Mcp-Session-Id"


def create_sessions_router(app: Application) -> APIRouter:
    """Create session transport router."""
    router = APIRouter(tags=["sessions"])

    @router.get("/sse")
    async def open_stream(
        request: Request,
        api_key: str | None = Query(None, alias="apiKey"),
        follow: bool = Query(False, description="Also push live feed inserts"),
    ) -> StreamingResponse:
        """Open a session; its token arrives in a header and the first event."""
        transport = QueueTransport(max_pending=app.settings.session_queue_size)
        session = app.multiplexer.open_session(
            api_key, transport, client_address(request), follow_feed=follow
        )
        transport.send("endpoint", f"/messages?sessionId={session.token}")

        headers = dict(SSE_HEADERS)
        headers[SESSION_HEADER] = session.token
        return StreamingResponse(
            session_event_stream(
                app.multiplexer, session.token, transport, app.settings.heartbeat_seconds
            ),
            media_type="text/event-stream",
            headers=headers,
        )

    @router.post("/messages")
    async def post_message(
        request: Request,
        session_id: str = Query(..., alias="sessionId"),
    ) -> JSONResponse:
        """Route one JSON-RPC message to its session; the reply goes down the stream."""
        try:
            payload = await request.json()
        except ValueError:  # malformed JSON or undecodable bytes
            return JSONResponse(
                status_code=400,
                content={
                    "jsonrpc": "2.0",
                    "id": None,
                    "error": {"code": -32700, "message": "Parse error"},
                },
            )

        await app.multiplexer.route(session_id, payload)
        return JSONResponse(status_code=202, content={"status": "accepted"})

    @router.delete("/sse", status_code=204)
    async def close_stream(session_id: str = Query(..., alias="sessionId")) -> Response:
        """Explicit teardown; closing an unknown session is not an error."""
        await app.multiplexer.close_session(session_id)
        return Response(status_code=204)

    return router
