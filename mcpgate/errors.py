# mcpgate/errors.py
from typing import Any

from pydantic import BaseModel, ConfigDict

# Gateway error codes double as the HTTP status surfaced to the caller
BAD_REQUEST = 400
UNAUTHORIZED = 401
NOT_FOUND = 404
PAYLOAD_TOO_LARGE = 413
INTERNAL_ERROR = 500
SERVICE_UNAVAILABLE = 503


class ErrorData(BaseModel):
    """Error information attached to every gateway error."""

    code: int
    """The HTTP status the error maps to."""

    message: str
    """
    A short description of the error. The message SHOULD be limited to a concise single
    sentence.
    """

    data: Any | None = None
    """
    Additional information about the error, e.g. the session id that could not be found.
    """

    model_config = ConfigDict(extra="allow")
