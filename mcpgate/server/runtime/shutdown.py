# mcpgate/server/runtime/shutdown.py
from __future__ import annotations as _annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import anyio
from mcp.server.fastmcp.utilities.logging import get_logger

from mcpgate.server.runtime.exceptions import ShutdownFailure
from mcpgate.server.runtime.limits import DEFAULT_CLOSE_TIMEOUT_SECONDS
from mcpgate.server.runtime.sessions.registry import Session, SessionRegistry

if TYPE_CHECKING:
    from mcpgate.server.protocol import ProtocolServer

logger = get_logger(__name__)


class ShutdownCoordinator:
    """
    Drains every live session, closes the protocol server and requests exit.

    Each transport close runs concurrently and in isolation: a failing or hung
    close (bounded by `close_timeout`) never prevents the others. Running the
    coordinator twice is harmless; the second run finds an empty registry.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        protocol_server: ProtocolServer,
        *,
        request_exit: Callable[[], None],
        close_timeout: float | None = DEFAULT_CLOSE_TIMEOUT_SECONDS,
    ):
        self._registry = registry
        self._protocol_server = protocol_server
        self._request_exit = request_exit
        self._close_timeout = close_timeout
        self.failures: list[ShutdownFailure] = []

    async def shutdown(self) -> None:
        logger.info("Closing all transports...")
        sessions = self._registry.drain()

        async with anyio.create_task_group() as tg:
            for session in sessions:
                tg.start_soon(self._close_session, session)

        try:
            await self._protocol_server.close()
        except Exception:
            logger.exception("Failed to close the protocol server")
        self._registry.clear()
        logger.info("Closed %d session(s); %d close failure(s)", len(sessions), len(self.failures))
        self._request_exit()

    async def _close_session(self, session: Session) -> None:
        try:
            if self._close_timeout is None:
                await session.transport.close()
                return
            with anyio.fail_after(self._close_timeout):
                await session.transport.close()
        except Exception as e:
            failure = ShutdownFailure(session.id, e)
            self.failures.append(failure)
            logger.warning("%s: %r", failure, e)
