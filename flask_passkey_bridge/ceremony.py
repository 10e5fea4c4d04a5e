"""
ceremony.py - WebAuthn ceremony engine for flask-passkey-bridge

Challenge generation and attestation/assertion verification are delegated to
the ``webauthn`` package. This module only adapts identities and stored
credentials to its API and normalizes its failures to VerificationFailed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import base64url_to_bytes
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from .codec import CredentialRecord
from .errors import NotFound, VerificationFailed

_VERIFY_ERRORS = (
    WebAuthnException,
    ValueError,
    KeyError,
    TypeError,
)


@dataclass(frozen=True)
class RelyingPartyConfig:
    rp_id: str
    rp_name: str
    origins: Tuple[str, ...]
    timeout_ms: int = 60000
    user_verification: str = "preferred"  # "required" | "preferred" | "discouraged"

    def __post_init__(self):
        if not self.origins:
            raise ValueError("At least one allowed origin is required")
        UserVerificationRequirement(self.user_verification)

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "RelyingPartyConfig":
        origins = config.get("PASSKEY_ORIGINS") or ()
        if isinstance(origins, str):
            origins = (origins,)
        return cls(
            rp_id=config.get("PASSKEY_RP_ID", "localhost"),
            rp_name=config.get("PASSKEY_RP_NAME", "Flask Passkey Bridge"),
            origins=tuple(origins),
            timeout_ms=int(config.get("PASSKEY_TIMEOUT_MS", 60000)),
            user_verification=config.get("PASSKEY_USER_VERIFICATION", "preferred"),
        )

    @property
    def require_user_verification(self) -> bool:
        return self.user_verification == "required"


@dataclass(frozen=True)
class CeremonyState:
    """Server-side half of a ceremony, kept until the finish call."""

    challenge: bytes
    user_handle: str
    allowed_credential_ids: Tuple[bytes, ...] = field(default_factory=tuple)


def _descriptor(record: CredentialRecord) -> PublicKeyCredentialDescriptor:
    transports = []
    for name in record.transports:
        try:
            transports.append(AuthenticatorTransport(name))
        except ValueError:
            continue
    return PublicKeyCredentialDescriptor(
        id=record.credential_id,
        transports=transports or None,
    )


def _options_payload(options) -> Dict[str, Any]:
    return {"publicKey": json.loads(options_to_json(options))}


def _require_shape(credential) -> Dict[str, Any]:
    """Return the credential's ``response`` object, rejecting malformed JSON shapes."""
    response = credential.get("response")
    if not isinstance(response, dict):
        raise VerificationFailed("Malformed credential: response must be an object.")
    for key in ("id", "rawId"):
        if key in credential and not isinstance(credential[key], str):
            raise VerificationFailed(f"Malformed credential: {key} must be a string.")
    return response


def _transport_names(value) -> list:
    if not isinstance(value, list):
        return []
    return [t for t in value if isinstance(t, str)]


class WebAuthnCeremony:
    """Begin/finish for registration and login against one relying party."""

    def __init__(self, rp_config: RelyingPartyConfig):
        self.rp = rp_config

    def begin_registration(self, identity) -> Tuple[Dict[str, Any], CeremonyState]:
        options = generate_registration_options(
            rp_id=self.rp.rp_id,
            rp_name=self.rp.rp_name,
            user_id=identity.handle_bytes,
            user_name=identity.username,
            user_display_name=identity.display_name,
            timeout=self.rp.timeout_ms,
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement(self.rp.user_verification),
            ),
            exclude_credentials=[_descriptor(c) for c in identity.credentials],
        )
        state = CeremonyState(
            challenge=options.challenge,
            user_handle=identity.webauthn_handle,
            allowed_credential_ids=tuple(c.credential_id for c in identity.credentials),
        )
        return _options_payload(options), state

    def finish_registration(self, identity, state: CeremonyState,
                            credential: Dict[str, Any]) -> CredentialRecord:
        self._check_state(identity, state)
        response = _require_shape(credential)
        try:
            verification = verify_registration_response(
                credential=credential,
                expected_challenge=state.challenge,
                expected_rp_id=self.rp.rp_id,
                expected_origin=list(self.rp.origins),
                require_user_verification=self.rp.require_user_verification,
            )
        except _VERIFY_ERRORS as e:
            raise VerificationFailed("Failed to verify registration credentials.") from e

        device_type = getattr(verification, "credential_device_type", None)
        fmt = getattr(verification, "fmt", "none")
        return CredentialRecord(
            credential_id=verification.credential_id,
            public_key=verification.credential_public_key,
            sign_count=verification.sign_count,
            aaguid=str(getattr(verification, "aaguid", "") or ""),
            attestation_format=getattr(fmt, "value", fmt) or "none",
            transports=_transport_names(response.get("transports")),
            user_verified=bool(getattr(verification, "user_verified", False)),
            device_type=getattr(device_type, "value", device_type),
            backed_up=bool(getattr(verification, "credential_backed_up", False)),
        )

    def begin_login(self, identity) -> Tuple[Dict[str, Any], CeremonyState]:
        if not identity.credentials:
            raise NotFound("No passkey registered for this user.")

        options = generate_authentication_options(
            rp_id=self.rp.rp_id,
            timeout=self.rp.timeout_ms,
            allow_credentials=[_descriptor(c) for c in identity.credentials],
            user_verification=UserVerificationRequirement(self.rp.user_verification),
        )
        state = CeremonyState(
            challenge=options.challenge,
            user_handle=identity.webauthn_handle,
            allowed_credential_ids=tuple(c.credential_id for c in identity.credentials),
        )
        return _options_payload(options), state

    def finish_login(self, identity, state: CeremonyState,
                     credential: Dict[str, Any]) -> CredentialRecord:
        self._check_state(identity, state)
        stored = identity.credential
        if not stored:
            raise VerificationFailed("No passkey registered for this user.")

        response = _require_shape(credential)
        try:
            credential_id = base64url_to_bytes(credential.get("rawId") or credential["id"])
        except _VERIFY_ERRORS as e:
            raise VerificationFailed("Malformed assertion.") from e
        if credential_id != stored.credential_id or credential_id not in state.allowed_credential_ids:
            raise VerificationFailed("Credential is not registered for this user.")

        user_handle = self._asserted_user_handle(response)
        if user_handle is not None and user_handle != identity.handle_bytes:
            raise VerificationFailed("Assertion belongs to a different user.")

        try:
            verification = verify_authentication_response(
                credential=credential,
                expected_challenge=state.challenge,
                expected_rp_id=self.rp.rp_id,
                expected_origin=list(self.rp.origins),
                credential_public_key=stored.public_key,
                credential_current_sign_count=stored.sign_count,
                require_user_verification=self.rp.require_user_verification,
            )
        except _VERIFY_ERRORS as e:
            raise VerificationFailed("Failed to verify login credentials.") from e

        return stored.with_sign_count(verification.new_sign_count)

    @staticmethod
    def _check_state(identity, state) -> None:
        if not isinstance(state, CeremonyState) or state.user_handle != identity.webauthn_handle:
            raise VerificationFailed("Ceremony does not belong to this user.")

    @staticmethod
    def _asserted_user_handle(response) -> Optional[bytes]:
        value = response.get("userHandle")
        if not value:
            return None
        if not isinstance(value, str):
            raise VerificationFailed("Malformed assertion.")
        try:
            return base64url_to_bytes(value)
        except _VERIFY_ERRORS as e:
            raise VerificationFailed("Malformed assertion.") from e
