"""Credential data models."""

from dataclasses import dataclass
from datetime import datetime

KEY_PREFIX = "amcp_"
KEY_SUFFIX_LENGTH = 32


@dataclass
class Credential:
    """A write credential bound to one owner email."""

    id: str
    email: str
    key: str
    active: bool
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "email": self.email,
            "active": self.active,
            "created_at": self.created_at.isoformat(),
        }
