"""
Flask-Passkey-Bridge Errors
===========================
Every failure raised by the ceremony core carries an ErrorKind so the HTTP
layer can map it to a status code without inspecting messages.
"""

from enum import Enum


class ErrorKind(Enum):
    """Failure categories and their HTTP status codes.

    CREATION_FAILED answers 409 rather than the 404 a plain lookup miss
    gets: the user could not be created, typically because the username is
    already taken or the store refused the insert.
    """

    NOT_FOUND = "not_found"
    CREATION_FAILED = "creation_failed"
    NO_PENDING_CEREMONY = "no_pending_ceremony"
    VERIFICATION_FAILED = "verification_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    DECODE_FAILED = "decode_failed"

    @property
    def status_code(self):
        return _STATUS_CODES[self]

    @property
    def is_client_error(self):
        return self.status_code < 500


_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CREATION_FAILED: 409,
    ErrorKind.NO_PENDING_CEREMONY: 400,
    ErrorKind.VERIFICATION_FAILED: 400,
    ErrorKind.PERSISTENCE_FAILED: 500,
    ErrorKind.DECODE_FAILED: 400,
}


class PasskeyError(Exception):
    """Base error for all passkey ceremony failures."""

    kind = None

    def __init__(self, message, kind=None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        if self.kind is None:
            raise TypeError("PasskeyError requires an ErrorKind")

    @property
    def status_code(self):
        return self.kind.status_code

    def to_dict(self):
        return {'error': self.message, 'code': self.kind.value}


class NotFound(PasskeyError):
    kind = ErrorKind.NOT_FOUND


class CreationFailed(PasskeyError):
    kind = ErrorKind.CREATION_FAILED


class NoPendingCeremony(PasskeyError):
    kind = ErrorKind.NO_PENDING_CEREMONY


class VerificationFailed(PasskeyError):
    kind = ErrorKind.VERIFICATION_FAILED


class PersistenceFailed(PasskeyError):
    kind = ErrorKind.PERSISTENCE_FAILED


class DecodeFailed(PasskeyError):
    kind = ErrorKind.DECODE_FAILED
