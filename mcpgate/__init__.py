# mcpgate/__init__.py
from importlib.metadata import PackageNotFoundError, version

from mcpgate.server import Gateway, Settings

try:
    __version__ = version("mcpgate")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = ["Gateway", "Settings", "__version__"]
