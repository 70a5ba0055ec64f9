# mcpgate/server/runtime/handlers/messages.py
from __future__ import annotations as _annotations

from mcp.server.fastmcp.utilities.logging import get_logger
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.types import Message, Receive, Scope, Send

from mcpgate.server.runtime.exceptions import SessionNotFound
from mcpgate.server.runtime.sessions.registry import SessionRegistry

logger = get_logger(__name__)


class MessageRouter:
    """
    ASGI app for the message endpoint (POST /messages?sessionId=<id>).

    Hands the raw request to the transport of the addressed session. Unknown
    sessions are terminal for the request: the client has to open a new stream.
    """

    def __init__(self, registry: SessionRegistry):
        self._registry = registry

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        session_id = request.query_params.get("sessionId")
        logger.debug("Received message for sessionId %s", session_id)

        session = self._registry.get(session_id) if session_id else None
        if session is None:
            error = SessionNotFound(session_id)
            logger.error("No transport found for sessionId %s", session_id)
            response = JSONResponse({"error": error.error.message}, status_code=error.status_code)
            await response(scope, receive, send)
            return

        response_started = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await session.transport.handle_post_message(scope, receive, tracking_send)
        except Exception as e:
            if response_started:
                logger.warning("Transport for session %s failed after responding: %s", session_id, e)
                return
            logger.exception("Transport for session %s failed", session_id)
            await PlainTextResponse(str(e), status_code=500)(scope, receive, send)
