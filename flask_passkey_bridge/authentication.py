"""Passkey login: begin issues a challenge, finish verifies and issues a token."""

import logging

from . import codec
from .sessions import LOGIN
from .storage import WEBAUTHN_CREDENTIALS_FIELD

logger = logging.getLogger(__name__)


class AuthenticationFlow:
    """
    Typical flow:
      1) begin(username) -> {"publicKey": {...request options...}}
      2) browser: navigator.credentials.get({publicKey})
      3) finish(username, assertion) -> {"token": ..., "user": {...}}

    Unknown usernames are rejected; login never creates users.
    """

    def __init__(self, resolver, sessions, ceremony, storage, issuer):
        self.resolver = resolver
        self.sessions = sessions
        self.ceremony = ceremony
        self.storage = storage
        self.issuer = issuer

    def begin(self, username):
        identity = self.resolver.resolve(username)
        options, state = self.ceremony.begin_login(identity)
        self.sessions.put(identity.webauthn_handle, LOGIN, state)
        return options

    def finish(self, username, assertion):
        identity = self.resolver.resolve(username)
        state = self.sessions.take(identity.webauthn_handle, LOGIN)

        updated = self.ceremony.finish_login(identity, state, assertion)
        if updated.sign_count != identity.credential.sign_count:
            self.storage.save_user_field(
                identity.id, WEBAUTHN_CREDENTIALS_FIELD, codec.encode(updated)
            )

        token = self.issuer.issue(identity)
        logger.debug("Issued token for user %s", identity.id)
        return {"token": token, "user": identity.to_public_dict()}
