"""Error taxonomy shared by the registry, limiter, sessions and protocol engine."""


class CommonsError(Exception):
    """Base class for every error surfaced to callers of the commons."""

    code = "commons_error"
    status = 500

    def __init__(self, message: str | None = None):
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serializable form used in HTTP bodies and tool results."""
        return {"error": self.code, "message": self.message}


class ValidationError(CommonsError):
    """Request failed validation."""

    code = "validation_error"
    status = 400

    def __init__(self, message: str | None = None, details: list | None = None):
        super().__init__(message)
        self.details = details or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.details:
            data["details"] = self.details
        return data


class AuthError(CommonsError):
    """Credential rejected."""

    code = "auth_error"
    status = 401


class MissingCredential(AuthError):
    """API key is required."""

    code = "missing_credential"


class CredentialNotFound(AuthError):
    """Invalid API key."""

    code = "credential_not_found"


class CredentialInactive(AuthError):
    """API key is inactive."""

    code = "credential_inactive"
    status = 403


class AlreadyRegistered(CommonsError):
    """This email already has an active API key."""

    code = "already_registered"
    status = 409


class RateLimited(CommonsError):
    """Rate limit exceeded."""

    code = "rate_limited"
    status = 429

    def __init__(
        self,
        retry_after: int,
        remaining: int = 0,
        limit: int = 0,
        reset_after: float = 0.0,
    ):
        super().__init__(f"Rate limit exceeded, retry after {retry_after}s")
        self.retry_after = retry_after
        self.remaining = remaining
        self.limit = limit
        self.reset_after = reset_after

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retryAfter"] = self.retry_after
        return data


class SessionNotFound(CommonsError):
    """Session not found."""

    code = "session_not_found"
    status = 404


class StoreError(CommonsError):
    """Message store operation failed."""

    code = "store_error"
    status = 500


class OperationTimeout(CommonsError):
    """Operation timed out."""

    code = "timeout"
    status = 504


class DuplicateRecord(StoreError):
    """Record violates a uniqueness constraint."""

    code = "duplicate_record"
    status = 409
