"""Session-related data models."""

from enum import Enum


class SessionState(str, Enum):
    """Lifecycle of a streaming session."""

    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
