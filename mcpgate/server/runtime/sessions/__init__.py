"""Live session bookkeeping."""

from .registry import Session, SessionRegistry, SessionTransport

__all__ = ("Session", "SessionRegistry", "SessionTransport")
