"""Core data models for Agora Commons."""

from .credentials import KEY_PREFIX, KEY_SUFFIX_LENGTH, Credential
from .feed import FeedEvent, FeedEventKind
from .messages import (
    DEFAULT_PAGE_SIZE,
    MAX_CONTENT_BYTES,
    MAX_PAGE_SIZE,
    ROLES,
    Message,
    MessagePage,
    Role,
)
from .rate_limit import Bucket, RateLimitPolicy, RateLimitResult
from .sessions import SessionState

__all__ = [
    # Credentials
    "Credential",
    "KEY_PREFIX",
    "KEY_SUFFIX_LENGTH",
    # Messages
    "Message",
    "MessagePage",
    "Role",
    "ROLES",
    "MAX_CONTENT_BYTES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Feed
    "FeedEvent",
    "FeedEventKind",
    # Rate limiting
    "Bucket",
    "RateLimitPolicy",
    "RateLimitResult",
    # Sessions
    "SessionState",
]
