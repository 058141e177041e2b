"""Agora Commons: a public append-only message commons with streaming sessions."""

from .app import Application, IApplication
from .config import Settings
from .credentials import CredentialRegistry, ICredentialRegistry
from .errors import (
    AlreadyRegistered,
    AuthError,
    CommonsError,
    CredentialInactive,
    CredentialNotFound,
    MissingCredential,
    OperationTimeout,
    RateLimited,
    SessionNotFound,
    StoreError,
    ValidationError,
)
from .feed import ChangeFeed, FeedConsumer, IChangeFeed, RecentMessageCache
from .messages import MessageService
from .models import (
    Credential,
    FeedEvent,
    FeedEventKind,
    Message,
    MessagePage,
    RateLimitPolicy,
    RateLimitResult,
    SessionState,
)
from .protocol import SessionEngine
from .rate_limit import IRateLimiter, RateLimiter
from .sessions import ISessionMultiplexer, Session, SessionMultiplexer
from .storage import IStorage, Storage

__all__ = [
    # Application
    "Application",
    "IApplication",
    "Settings",
    # Models
    "Credential",
    "Message",
    "MessagePage",
    "FeedEvent",
    "FeedEventKind",
    "RateLimitPolicy",
    "RateLimitResult",
    "SessionState",
    # Errors
    "CommonsError",
    "ValidationError",
    "AuthError",
    "MissingCredential",
    "CredentialNotFound",
    "CredentialInactive",
    "AlreadyRegistered",
    "RateLimited",
    "SessionNotFound",
    "StoreError",
    "OperationTimeout",
    # Components
    "IStorage",
    "Storage",
    "ICredentialRegistry",
    "CredentialRegistry",
    "IRateLimiter",
    "RateLimiter",
    "IChangeFeed",
    "ChangeFeed",
    "FeedConsumer",
    "RecentMessageCache",
    "MessageService",
    "ISessionMultiplexer",
    "Session",
    "SessionMultiplexer",
    "SessionEngine",
]
