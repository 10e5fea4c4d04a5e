"""Passkey enrollment: begin issues a challenge, finish stores the credential."""

import logging

from . import codec
from .sessions import REGISTRATION
from .storage import WEBAUTHN_CREDENTIALS_FIELD

logger = logging.getLogger(__name__)


class RegistrationFlow:
    """
    Typical flow:
      1) begin(username) -> {"publicKey": {...creation options...}}
      2) browser: navigator.credentials.create({publicKey})
      3) finish(username, credential) -> {"status": "success"}

    A user that begins but never finishes keeps its handle and no credential,
    so it can simply begin again.
    """

    def __init__(self, resolver, sessions, ceremony, storage):
        self.resolver = resolver
        self.sessions = sessions
        self.ceremony = ceremony
        self.storage = storage

    def begin(self, username):
        identity = self.resolver.resolve_or_create(username)
        options, state = self.ceremony.begin_registration(identity)
        self.sessions.put(identity.webauthn_handle, REGISTRATION, state)
        return options

    def finish(self, username, credential):
        identity = self.resolver.resolve_or_create(username)

        # Consumed before verification so a failed attempt cannot be replayed.
        state = self.sessions.take(identity.webauthn_handle, REGISTRATION)

        record = self.ceremony.finish_registration(identity, state, credential)
        self.storage.save_user_field(
            identity.id, WEBAUTHN_CREDENTIALS_FIELD, codec.encode(record)
        )
        logger.debug("Stored passkey for user %s", identity.id)
        return {"status": "success"}
