"""HTTP entry points of the gateway."""

from .messages import MessageRouter
from .setup import SetupPage, render_setup_page
from .stream import StreamConnectionHandler

__all__ = ("MessageRouter", "SetupPage", "StreamConnectionHandler", "render_setup_page")
