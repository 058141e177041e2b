"""Message-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

Role = Literal["user", "assistant", "system", "tool"]
ROLES: tuple[str, ...] = ("user", "assistant", "system", "tool")

MAX_CONTENT_BYTES = 16384
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class Message:
    """An immutable entry of the commons."""

    id: str
    api_key_id: str
    role: Role
    content: str
    created_at: datetime
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "api_key_id": self.api_key_id,
            "role": self.role,
            "content": self.content,
            "meta": self.meta,
            "created_at": self.created_at.isoformat(timespec="microseconds"),
        }


@dataclass
class MessagePage:
    """One page of the ordered message sequence."""

    messages: list[Message]
    cursor: str | None = None
    has_more: bool = False

    def to_dict(self) -> dict:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "cursor": self.cursor,
            "hasMore": self.has_more,
        }
