"""Credential registry: issues, authenticates and reactivates write credentials."""

import secrets
import string
from typing import Protocol

from ..errors import (
    AlreadyRegistered,
    CredentialInactive,
    CredentialNotFound,
    DuplicateRecord,
    MissingCredential,
)
from ..logging_config import get_logger
from ..models import KEY_PREFIX, KEY_SUFFIX_LENGTH, Credential
from ..schemas import RegisterRequest, parse_request
from ..storage import IStorage

logger = get_logger(__name__)

KEY_ALPHABET = string.ascii_letters + string.digits + "_-"


def generate_key() -> str:
    """New credential string: fixed prefix plus a cryptographically random suffix."""
    suffix = "".join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_SUFFIX_LENGTH))
    return f"{KEY_PREFIX}{suffix}"


def has_key_format(key: str) -> bool:
    """Cheap shape check done before any store lookup."""
    return (
        key.startswith(KEY_PREFIX)
        and len(key) == len(KEY_PREFIX) + KEY_SUFFIX_LENGTH
        and all(ch in KEY_ALPHABET for ch in key[len(KEY_PREFIX):])
    )


class ICredentialRegistry(Protocol):
    """Issuing and checking write credentials."""

    async def register(self, email: str) -> tuple[Credential, bool]:
        """Issue or reactivate a credential. Returns (credential, reactivated)."""
        ...

    async def authenticate(self, key: str | None) -> Credential:
        """Resolve a key to its active credential."""
        ...


class CredentialRegistry:
    """Issues and checks credentials against the store; keeps no state of its own."""

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def register(self, email: str) -> tuple[Credential, bool]:
        """Issue or reactivate a credential. Returns (credential, reactivated)."""
        request = parse_request(RegisterRequest, {"email": email})
        email = str(request.email)

        existing = await self._storage.find_credential(email)
        if existing:
            if existing.active:
                raise AlreadyRegistered(
                    "This email already has an active API key. "
                    "Please use your existing key or contact support."
                )
            credential = await self._storage.reactivate_credential(email)
            logger.info("Credential reactivated", extra={"context": {"email": email}})
            return credential, True

        try:
            credential = await self._storage.insert_credential(email, generate_key())
        except DuplicateRecord as e:
            # Lost a race with a concurrent registration for the same email.
            raise AlreadyRegistered(
                "This email already has an active API key."
            ) from e

        logger.info("Credential issued", extra={"context": {"email": email}})
        return credential, False

    async def authenticate(self, key: str | None) -> Credential:
        """Resolve a key to its active credential."""
        if not key or not key.strip():
            raise MissingCredential()

        if not has_key_format(key):
            raise CredentialNotFound("Invalid API key format")

        credential = await self._storage.find_credential_by_key(key)
        if credential is None:
            raise CredentialNotFound()
        if not credential.active:
            raise CredentialInactive()
        return credential
