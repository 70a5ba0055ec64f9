# mcpgate/shared/exceptions.py
from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcpgate.errors import ErrorData


class GatewayError(Exception):
    """
    Base exception for errors raised by the gateway.
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        """Initialize GatewayError."""
        super().__init__(error.message)
        self.error = error

    @property
    def status_code(self) -> int:
        return self.error.code
