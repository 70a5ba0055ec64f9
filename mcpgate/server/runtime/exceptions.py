# mcpgate/server/runtime/exceptions.py
"""Custom exceptions for the gateway runtime."""

from typing import Any

from mcpgate.errors import INTERNAL_ERROR, NOT_FOUND, UNAUTHORIZED, ErrorData
from mcpgate.shared.exceptions import GatewayError


class Unauthorized(GatewayError):
    """Missing or invalid credential."""

    def __init__(
        self,
        message: str = "Unauthorized",
        code: int | None = None,
        data: Any | None = None,
    ):
        super().__init__(
            ErrorData(
                code=code if code is not None else UNAUTHORIZED,
                message=message,
                data=data,
            )
        )


class InvalidSignature(Unauthorized):
    """Invalid signature"""

    def __init__(self, message: str = "Invalid token signature", data: Any | None = None):
        super().__init__(message, data=data)


class SessionNotFound(GatewayError):
    """No live session is registered under the given id."""

    def __init__(self, session_id: str | None):
        super().__init__(
            ErrorData(
                code=NOT_FOUND,
                message="No transport found for sessionId",
                data={"sessionId": session_id},
            )
        )


class TransportFailure(GatewayError):
    """A session transport failed while handling a message."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        data: Any | None = None,
    ):
        super().__init__(
            ErrorData(
                code=code if code is not None else INTERNAL_ERROR,
                message=message,
                data=data,
            )
        )


class ShutdownFailure(GatewayError):
    """Closing a single session's transport failed during drain."""

    def __init__(self, session_id: str, cause: BaseException | None = None):
        super().__init__(
            ErrorData(
                code=INTERNAL_ERROR,
                message=f"Failed to close transport for session {session_id}",
                data={"sessionId": session_id, "cause": repr(cause) if cause else None},
            )
        )
        self.session_id = session_id
