"""Request schemas shared by the HTTP routes and the session engine."""

from typing import Any, Literal, TypeVar

import pydantic
from pydantic import BaseModel, EmailStr, Field, field_validator

from .errors import ValidationError
from .models import DEFAULT_PAGE_SIZE, MAX_CONTENT_BYTES, MAX_PAGE_SIZE

MAX_EMAIL_LENGTH = 255

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class RegisterRequest(BaseModel):
    """Request model for registering a writer."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def _email_length(cls, value: str) -> str:
        if len(value) > MAX_EMAIL_LENGTH:
            raise ValueError(f"email must be at most {MAX_EMAIL_LENGTH} characters")
        return value


class WriteRequest(BaseModel):
    """Request model for posting a message."""

    role: Literal["user", "assistant", "system", "tool"]
    content: str = Field(min_length=1)
    meta: dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def _content_size(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_CONTENT_BYTES:
            raise ValueError(f"content must be at most {MAX_CONTENT_BYTES} bytes")
        return value

    @field_validator("meta", mode="before")
    @classmethod
    def _meta_default(cls, value: Any) -> Any:
        return {} if value is None else value


class SearchRequest(BaseModel):
    """Request model for searching the commons."""

    search: str | None = None
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    cursor: str | None = None


class CachedReadRequest(BaseModel):
    """Request model for reading the recent-message cache."""

    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


def parse_request(schema: type[SchemaT], data: Any) -> SchemaT:
    """Validate raw input, raising the commons ValidationError on failure."""
    try:
        return schema.model_validate(data if data is not None else {})
    except pydantic.ValidationError as e:
        details = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in e.errors()
        ]
        message = "; ".join(
            f"{'.'.join(str(p) for p in d['loc']) or 'body'}: {d['msg']}"
            for d in details
        )
        raise ValidationError(message or "Validation error", details=details) from e
