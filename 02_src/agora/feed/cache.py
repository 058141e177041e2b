"""Bounded cache of the most recently observed messages."""

from collections import deque
from itertools import islice

from ..models import Message


class RecentMessageCache:
    """Newest-first buffer fed by the change feed consumer.

    Single writer (the consumer task), any number of readers.
    """

    def __init__(self, max_size: int = 100):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._messages: deque[Message] = deque(maxlen=max_size)

    @property
    def max_size(self) -> int:
        return self._max_size

    def add(self, message: Message) -> None:
        """Add a newly observed message at the front."""
        if any(m.id == message.id for m in self._messages):
            return
        self._messages.appendleft(message)

    def replace(self, messages: list[Message]) -> None:
        """Re-prime from a snapshot (newest first)."""
        self._messages = deque(messages[: self._max_size], maxlen=self._max_size)

    def get(self, limit: int | None = None) -> list[Message]:
        """Up to ``limit`` messages, newest first."""
        messages = self._messages
        if limit is None:
            return list(messages)
        return list(islice(messages, max(0, limit)))

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)
