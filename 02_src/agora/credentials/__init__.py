"""Credential registry module."""

from .registry import (
    CredentialRegistry,
    ICredentialRegistry,
    generate_key,
    has_key_format,
)

__all__ = ["CredentialRegistry", "ICredentialRegistry", "generate_key", "has_key_format"]
