"""
Credential codec: the single stored WebAuthn credential <-> text blob.

A user record that has never finished registration holds an empty blob, so
decoding never raises. Anything that cannot be read back yields ``EMPTY``.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


class EmptyCredential:
    """Marker for "no credential stored"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "EMPTY"


EMPTY = EmptyCredential()


@dataclass(frozen=True)
class CredentialRecord:
    credential_id: bytes
    public_key: bytes
    sign_count: int = 0
    aaguid: str = ""
    attestation_format: str = "none"
    transports: List[str] = field(default_factory=list)
    user_verified: bool = False
    device_type: Optional[str] = None
    backed_up: bool = False

    def with_sign_count(self, sign_count: int) -> "CredentialRecord":
        return replace(self, sign_count=int(sign_count))


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def encode(record: CredentialRecord) -> str:
    """Serialize a credential for the user record's credential field."""
    return json.dumps({
        "id": _b64(record.credential_id),
        "public_key": _b64(record.public_key),
        "sign_count": record.sign_count,
        "aaguid": record.aaguid,
        "attestation_format": record.attestation_format,
        "transports": list(record.transports),
        "user_verified": record.user_verified,
        "device_type": record.device_type,
        "backed_up": record.backed_up,
    }, sort_keys=True)


def decode(blob) -> Union[CredentialRecord, EmptyCredential]:
    if not blob:
        return EMPTY

    try:
        data = json.loads(blob) if isinstance(blob, (str, bytes)) else blob
        if not isinstance(data, dict):
            raise ValueError("credential blob is not an object")
        return CredentialRecord(
            credential_id=base64.b64decode(data["id"], validate=True),
            public_key=base64.b64decode(data["public_key"], validate=True),
            sign_count=int(data.get("sign_count", 0)),
            aaguid=data.get("aaguid", ""),
            attestation_format=data.get("attestation_format", "none"),
            transports=list(data.get("transports") or []),
            user_verified=bool(data.get("user_verified", False)),
            device_type=data.get("device_type"),
            backed_up=bool(data.get("backed_up", False)),
        )
    except (ValueError, TypeError, KeyError, binascii.Error) as e:
        logger.debug("Stored credential unreadable, treating as empty: %s", e)
        return EMPTY
