# mcpgate/server/__init__.py
from .runtime import Gateway, Settings
from .protocol import ProtocolServer
from .sse import SseSessionTransport

__all__ = ["Gateway", "Settings", "ProtocolServer", "SseSessionTransport"]
