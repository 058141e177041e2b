"""Session multiplexer module."""

from .multiplexer import ISessionMultiplexer, SessionMultiplexer
from .session import Session
from .transport import ISessionTransport, OutboundEvent, QueueTransport

__all__ = [
    "ISessionMultiplexer",
    "ISessionTransport",
    "OutboundEvent",
    "QueueTransport",
    "Session",
    "SessionMultiplexer",
]
