"""
Identity resolution: username -> UserIdentity with a WebAuthn user handle.

The handle is 64 random bytes generated the first time a user takes part in
a ceremony. It is never derived from the username or the record id.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Union

from . import codec
from .codec import CredentialRecord, EmptyCredential
from .errors import NotFound
from .storage import WEBAUTHN_CREDENTIALS_FIELD, WEBAUTHN_ID_FIELD

logger = logging.getLogger(__name__)

HANDLE_BYTES = 64
PLACEHOLDER_PASSWORD_BYTES = 32


@dataclass(frozen=True)
class UserIdentity:
    id: str
    username: str
    display_name: str
    webauthn_handle: str = ""
    credential: Union[CredentialRecord, EmptyCredential] = codec.EMPTY

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "UserIdentity":
        username = record.get("username") or ""
        return cls(
            id=record.get("id"),
            username=username,
            display_name=record.get("name") or username,
            webauthn_handle=record.get(WEBAUTHN_ID_FIELD) or "",
            credential=codec.decode(record.get(WEBAUTHN_CREDENTIALS_FIELD)),
        )

    @property
    def handle_bytes(self) -> bytes:
        if not self.webauthn_handle:
            return b""
        try:
            return base64.b64decode(self.webauthn_handle, validate=True)
        except (binascii.Error, ValueError):
            return b""

    @property
    def credentials(self) -> List[CredentialRecord]:
        return [self.credential] if self.credential else []

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.display_name,
        }


class IdentityResolver:
    """Maps usernames to identities, creating placeholder users on demand."""

    def __init__(self, storage):
        self.storage = storage

    def resolve(self, username: str) -> UserIdentity:
        record = self.storage.find_user_by_username(username)
        if not record:
            raise NotFound("User not found.")
        return self.ensure_handle(UserIdentity.from_record(record))

    def resolve_or_create(self, username: str) -> UserIdentity:
        record = self.storage.find_user_by_username(username)
        if not record:
            # Password auth is never used for these users; the store just
            # requires one.
            password = base64.b64encode(
                secrets.token_bytes(PLACEHOLDER_PASSWORD_BYTES)
            ).decode("ascii")
            self.storage.create_user(username, password)
            logger.info("Created placeholder user for WebAuthn registration")
        return self.resolve(username)

    def ensure_handle(self, identity: UserIdentity) -> UserIdentity:
        if identity.webauthn_handle:
            return identity

        # Re-read: another request may have written the handle already.
        record = self.storage.find_user_by_username(identity.username)
        if not record:
            raise NotFound("User not found.")
        current = record.get(WEBAUTHN_ID_FIELD)
        if current:
            return replace(identity, webauthn_handle=current)

        handle = base64.b64encode(secrets.token_bytes(HANDLE_BYTES)).decode("ascii")
        self.storage.save_user_field(identity.id, WEBAUTHN_ID_FIELD, handle)
        return replace(identity, webauthn_handle=handle)
