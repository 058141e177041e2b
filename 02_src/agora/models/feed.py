"""Change feed data models."""

from dataclasses import dataclass, field
from enum import Enum

from .messages import Message


class FeedEventKind(str, Enum):
    """Kinds of events yielded by a change feed subscription."""

    SNAPSHOT = "initial"
    INSERT = "insert"
    DISCONNECTED = "disconnected"


@dataclass
class FeedEvent:
    """A single change feed event.

    SNAPSHOT carries the most recent messages, newest first. INSERT carries
    exactly one message. DISCONNECTED carries nothing.
    """

    kind: FeedEventKind
    messages: list[Message] = field(default_factory=list)

    @property
    def message(self) -> Message | None:
        return self.messages[0] if self.messages else None

    def to_dict(self) -> dict:
        if self.kind == FeedEventKind.INSERT and self.message is not None:
            return {"type": self.kind.value, "message": self.message.to_dict()}
        return {
            "type": self.kind.value,
            "messages": [m.to_dict() for m in self.messages],
        }
