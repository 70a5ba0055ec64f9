# mcpgate/server/runtime/sessions/registry.py
from __future__ import annotations as _annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from mcp.server.fastmcp.utilities.logging import get_logger
from starlette.types import Receive, Scope, Send

from mcpgate.server.runtime.auth.tokens import TokenCodec

logger = get_logger(__name__)


@runtime_checkable
class SessionTransport(Protocol):
    """What the gateway needs from one session's transport."""

    @property
    def session_id(self) -> str: ...

    def on_close(self, callback: Callable[[], Any]) -> None: ...

    async def handle_post_message(self, scope: Scope, receive: Receive, send: Send) -> None: ...

    async def close(self) -> None: ...


@dataclass(eq=False)
class Session:
    """One authenticated client connection bound to a single transport."""

    id: str
    transport: SessionTransport
    identity_token: str
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def user_id(self) -> str | None:
        # Unverified; the token was verified once when the session was admitted.
        return TokenCodec.user_id(self.identity_token)


class SessionRegistry:
    """Process-wide table of live sessions, keyed by session id."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def put(self, session_id: str, session: Session) -> None:
        previous = self._sessions.get(session_id)
        if previous is not None and previous is not session:
            logger.warning("Session id %s reused; replacing the previous session", session_id)
        self._sessions[session_id] = session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str, session: Session | None = None) -> bool:
        """
        Remove `session_id` if present. Returns True when an entry was removed.

        When `session` is given, the entry is only removed if it still refers to
        that session, so a late disconnect cannot evict a newer session that
        reused the id.
        """
        current = self._sessions.get(session_id)
        if current is None:
            return False
        if session is not None and current is not session:
            return False
        del self._sessions[session_id]
        return True

    def count(self) -> int:
        return len(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(self.snapshot())

    def snapshot(self) -> list[Session]:
        return list(self._sessions.values())

    def drain(self) -> list[Session]:
        """Take every current session and leave the table empty."""
        sessions = self.snapshot()
        self._sessions.clear()
        return sessions

    def clear(self) -> None:
        self._sessions.clear()

    def describe(self) -> list[dict[str, str | None]]:
        """Session ids with their (unverified) user ids, for diagnostics logging."""
        return [{"sessionId": sid, "user": s.user_id} for sid, s in list(self._sessions.items())]

