# mcpgate/server/sse.py
"""
SSE Session Transport

One `SseSessionTransport` serves exactly one client session:

- `connect_sse()` is an async context manager used by the GET (stream) handler.
  It answers with a Server-Sent Events stream whose first event, `endpoint`,
  tells the client where to POST its messages
  (`<message path>?sessionId=<id>`), and yields the (read, write) stream pair
  that the protocol server runs over.
- `handle_post_message()` is the ASGI app for a POST carrying a JSON-RPC message
  addressed to this session.
- `close()` ends the session from the server side.

Close callbacks registered with `on_close()` run exactly once, whichever way the
session ends: client disconnect, protocol session end, or `close()`.
"""

from __future__ import annotations as _annotations

import inspect
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import quote
from uuid import uuid4

import anyio
import mcp.types as types
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.server.fastmcp.utilities.logging import get_logger
from mcp.shared.message import ServerMessageMetadata, SessionMessage
from pydantic import ValidationError
from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from mcpgate.server.runtime.exceptions import TransportFailure
from mcpgate.server.runtime.limits import MAXIMUM_MESSAGE_SIZE

logger = get_logger(__name__)


class SseSessionTransport:
    def __init__(self, endpoint: str, *, session_id: str | None = None) -> None:
        """
        Args:
            endpoint: Relative path clients POST messages to, e.g. "/messages".
            session_id: Override the generated id (tests only).
        """
        self._endpoint = endpoint
        self._session_id = session_id or uuid4().hex
        self._read_stream_writer: MemoryObjectSendStream[SessionMessage | Exception] | None = None
        self._cancel_scope: anyio.CancelScope | None = None
        self._started = False
        self._closed = False
        self._close_callbacks: list[Callable[[], Any]] = []

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def closed(self) -> bool:
        return self._closed

    def on_close(self, callback: Callable[[], Any]) -> None:
        self._close_callbacks.append(callback)

    def endpoint_uri(self, root_path: str = "") -> str:
        path = root_path.rstrip("/") + self._endpoint
        return f"{quote(path)}?sessionId={self._session_id}"

    @asynccontextmanager
    async def connect_sse(
        self, scope: Scope, receive: Receive, send: Send
    ) -> AsyncIterator[tuple[MemoryObjectReceiveStream[SessionMessage | Exception], MemoryObjectSendStream[SessionMessage]]]:
        if scope["type"] != "http":
            raise ValueError("connect_sse can only handle HTTP requests")
        if self._started:
            raise RuntimeError(f"Transport for session {self._session_id} already started")
        if self._closed:
            raise TransportFailure(f"Transport for session {self._session_id} is closed")
        self._started = True

        read_stream_writer, read_stream = anyio.create_memory_object_stream[SessionMessage | Exception](0)
        write_stream, write_stream_reader = anyio.create_memory_object_stream[SessionMessage](0)
        sse_stream_writer, sse_stream_reader = anyio.create_memory_object_stream[dict[str, Any]](0)
        self._read_stream_writer = read_stream_writer

        endpoint_uri = self.endpoint_uri(scope.get("root_path", ""))
        logger.debug("Opening SSE stream for session %s (endpoint %s)", self._session_id, endpoint_uri)

        async def sse_writer():
            async with sse_stream_writer, write_stream_reader:
                await sse_stream_writer.send({"event": "endpoint", "data": endpoint_uri})
                async for session_message in write_stream_reader:
                    await sse_stream_writer.send(
                        {
                            "event": "message",
                            "data": session_message.message.model_dump_json(by_alias=True, exclude_none=True),
                        }
                    )

        async def response_wrapper(scope: Scope, receive: Receive, send: Send):
            await EventSourceResponse(content=sse_stream_reader, data_sender_callable=sse_writer)(
                scope, receive, send
            )
            await read_stream_writer.aclose()
            await write_stream_reader.aclose()
            logger.debug("Client session disconnected %s", self._session_id)

        try:
            async with anyio.create_task_group() as tg:
                self._cancel_scope = tg.cancel_scope
                tg.start_soon(response_wrapper, scope, receive, send)
                yield read_stream, write_stream
                # The protocol session is over; end the event stream as well.
                tg.cancel_scope.cancel()
        finally:
            with anyio.CancelScope(shield=True):
                await read_stream_writer.aclose()
                await write_stream.aclose()
                await self._finish()

    async def handle_post_message(self, scope: Scope, receive: Receive, send: Send) -> None:
        writer = self._read_stream_writer
        if writer is None or self._closed:
            raise TransportFailure("SSE connection not established")

        request = Request(scope, receive)
        body = await request.body()
        if len(body) > MAXIMUM_MESSAGE_SIZE:
            response = Response("Message too large", status_code=413)
            await response(scope, receive, send)
            return

        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except ValidationError as err:
            logger.exception("Failed to parse message for session %s", self._session_id)
            response = Response("Could not parse message", status_code=400)
            await response(scope, receive, send)
            await writer.send(err)
            return

        metadata = ServerMessageMetadata(request_context=request)
        session_message = SessionMessage(message, metadata=metadata)
        logger.debug("Sending session message to writer: %s", session_message)
        response = Response("Accepted", status_code=202)
        await response(scope, receive, send)
        try:
            await writer.send(session_message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise TransportFailure(f"Session {self._session_id} is no longer accepting messages") from e

    async def close(self) -> None:
        """Close the session from the server side. Safe to call more than once."""
        if self._closed:
            return
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()
        if self._read_stream_writer is not None:
            await self._read_stream_writer.aclose()
        await self._finish()

    async def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Close callback failed for session %s", self._session_id)
