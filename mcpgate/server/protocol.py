# mcpgate/server/protocol.py
"""
Protocol Server Module

The single MCP protocol server shared by every session of the gateway.

Usage:
1. Build the tool set once at startup and create the server:
   server = ProtocolServer("mcpgate", toolset=toolset, context_factory=make_ctx)

2. Bind each new session transport; this runs the MCP session until the
   client disconnects or the transport is closed:
   await server.connect(transport, scope, receive, send)

3. On shutdown:
   await server.close()

Tool calls are dispatched to the `ExtendedTool` of the same name with a
`ToolContext` describing the calling session. The session is recovered from
the `sessionId` query parameter of the POST request that carried the call.
"""

from __future__ import annotations as _annotations

import json
from collections.abc import Callable, Iterable
from typing import Any, Protocol

import mcp.types as types
from mcp.server.fastmcp.utilities.logging import get_logger
from mcp.server.lowlevel.server import Server as MCPServer
from mcp.server.models import InitializationOptions
from starlette.requests import Request
from starlette.types import Receive, Scope, Send

from mcpgate.server.runtime.tools.aggregator import Toolset
from mcpgate.server.runtime.tools.types import ToolContext

logger = get_logger(__name__)


class BindableTransport(Protocol):
    @property
    def session_id(self) -> str: ...

    def on_close(self, callback: Callable[[], Any]) -> None: ...

    def connect_sse(self, scope: Scope, receive: Receive, send: Send) -> Any: ...

    async def close(self) -> None: ...


def _to_content(result: Any) -> list[types.ContentBlock]:
    if isinstance(result, (list, tuple)):
        return list(result)
    if isinstance(result, str):
        return [types.TextContent(type="text", text=result)]
    return [types.TextContent(type="text", text=json.dumps(result, default=str))]


class ProtocolServer:
    def __init__(
        self,
        name: str,
        *,
        version: str | None = None,
        instructions: str | None = None,
        toolset: Toolset | None = None,
        context_factory: Callable[[str | None], ToolContext],
    ):
        self._server: MCPServer[Any, Request] = MCPServer(name, version=version, instructions=instructions)
        self._toolset = toolset if toolset is not None else Toolset()
        self._context_factory = context_factory
        self._transports: dict[str, BindableTransport] = {}
        self._closed = False
        self._init_options: InitializationOptions | None = None
        self._setup_handlers()
        logger.debug("Initializing protocol server %r with %d tool(s)", name, len(self._toolset))

    @property
    def name(self) -> str:
        return self._server.name

    @property
    def toolset(self) -> Toolset:
        return self._toolset

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bound_sessions(self) -> list[str]:
        return list(self._transports)

    def _setup_handlers(self) -> None:
        @self._server.list_tools()
        async def _list_tools() -> list[types.Tool]:
            return [t.definition() for t in self._toolset.tools]

        @self._server.call_tool()
        async def _call_tool(name: str, arguments: dict[str, Any]) -> Iterable[types.ContentBlock]:
            return await self.call_tool(name, arguments, self._current_session_id())

    def _current_session_id(self) -> str | None:
        try:
            request = self._server.request_context.request
        except LookupError:
            return None
        if request is None:
            return None
        return request.query_params.get("sessionId")

    async def call_tool(self, name: str, arguments: dict[str, Any] | None, session_id: str | None) -> list[types.ContentBlock]:
        tool = self._toolset.get(name)
        if tool is None:
            raise ValueError(f"Unknown tool: {name}")
        ctx = self._context_factory(session_id)
        logger.debug("Calling tool %s for session %s (user %s)", name, session_id, ctx.user_id)
        return _to_content(await tool.run(arguments or {}, ctx))

    def create_initialization_options(self) -> InitializationOptions:
        if self._init_options is None:
            self._init_options = self._server.create_initialization_options()
        return self._init_options

    async def connect(self, transport: BindableTransport, scope: Scope, receive: Receive, send: Send) -> None:
        """Bind `transport` and run its MCP session to completion."""
        if self._closed:
            raise RuntimeError("Protocol server is closed")
        self._transports[transport.session_id] = transport
        try:
            async with transport.connect_sse(scope, receive, send) as (read_stream, write_stream):
                await self._server.run(read_stream, write_stream, self.create_initialization_options())
        finally:
            if self._transports.get(transport.session_id) is transport:
                del self._transports[transport.session_id]

    async def close(self) -> None:
        """Refuse new sessions and close any transport still bound."""
        self._closed = True
        transports, self._transports = list(self._transports.values()), {}
        for transport in transports:
            try:
                await transport.close()
            except Exception:
                logger.exception("Failed to close transport for session %s", transport.session_id)
