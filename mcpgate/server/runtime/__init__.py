# mcpgate/server/runtime/__init__.py
from .server import Gateway, Settings
from .tools.types import ExtendedTool, ToolContext

__all__ = ["Gateway", "Settings", "ExtendedTool", "ToolContext"]
