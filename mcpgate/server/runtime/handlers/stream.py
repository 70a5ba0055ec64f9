# mcpgate/server/runtime/handlers/stream.py
from __future__ import annotations as _annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from mcp.server.fastmcp.utilities.logging import get_logger
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.types import Receive, Scope, Send

from mcpgate.server.runtime.auth.tokens import TokenCodec
from mcpgate.server.runtime.exceptions import Unauthorized
from mcpgate.server.runtime.sessions.registry import Session, SessionRegistry

if TYPE_CHECKING:
    from mcpgate.server.protocol import BindableTransport, ProtocolServer

logger = get_logger(__name__)

_BEARER_PREFIX = "Bearer "


class StreamConnectionHandler:
    """
    ASGI app for the stream endpoint (GET /stream, also served at /sse).

    Admits the caller, opens a transport, registers the session, arranges its
    removal on disconnect and hands the transport to the protocol server, which
    holds the request open for the life of the session.
    """

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        codec: TokenCodec,
        protocol_server: ProtocolServer,
        transport_factory: Callable[[], BindableTransport],
        dev_mode: bool = False,
    ):
        self._registry = registry
        self._codec = codec
        self._protocol_server = protocol_server
        self._transport_factory = transport_factory
        self._dev_mode = dev_mode

    def authenticate(self, request: Request) -> str:
        """Return the identity token for `request` or raise Unauthorized."""
        authorization = request.headers.get("authorization")
        if authorization and authorization.startswith(_BEARER_PREFIX):
            token = authorization[len(_BEARER_PREFIX) :].strip()
            if not token:
                raise Unauthorized()
            self._codec.verify(token)
            return token

        # Development only: trust a plain `user` query parameter.
        user = request.query_params.get("user")
        if self._dev_mode and user:
            return self._codec.sign({"userId": user})

        raise Unauthorized()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        try:
            token = self.authenticate(request)
        except Unauthorized as e:
            logger.debug("Rejected stream request: %s", e)
            await PlainTextResponse("Unauthorized", status_code=e.status_code)(scope, receive, send)
            return

        if self._protocol_server.closed:
            await PlainTextResponse("Server is shutting down", status_code=503)(scope, receive, send)
            return

        transport = self._transport_factory()
        session = Session(id=transport.session_id, transport=transport, identity_token=token)
        self._registry.put(session.id, session)
        transport.on_close(lambda: self._on_disconnect(session))
        logger.debug("Connected clients: %s", self._registry.describe())

        try:
            await self._protocol_server.connect(transport, scope, receive, send)
        finally:
            # No-op when the session already ended; otherwise fires the hook above.
            await transport.close()

    def _on_disconnect(self, session: Session) -> None:
        logger.debug("Client disconnected: %s", session.id)
        self._registry.remove(session.id, session)
