"""
Flask-Passkey-Bridge Storage Adapters
=====================================
User records live in an external store. The ceremony core only needs to:
- look a user up by username
- create a user (username + placeholder password)
- write a single field back to the record

Records are returned as plain dicts with the keys
``id``, ``username``, ``name``, ``webauthn_id_b64`` and ``webauthn_credentials``.
"""

import secrets
import threading
from abc import ABC, abstractmethod

from werkzeug.security import generate_password_hash

from .errors import CreationFailed, NotFound, PersistenceFailed

WEBAUTHN_ID_FIELD = 'webauthn_id_b64'
WEBAUTHN_CREDENTIALS_FIELD = 'webauthn_credentials'

RECORD_FIELDS = ('id', 'username', 'name', WEBAUTHN_ID_FIELD, WEBAUTHN_CREDENTIALS_FIELD)
WRITABLE_FIELDS = ('name', WEBAUTHN_ID_FIELD, WEBAUTHN_CREDENTIALS_FIELD)


class StorageAdapter(ABC):
    """Base storage adapter interface"""

    @abstractmethod
    def find_user_by_username(self, username):
        """Retrieve user record by username, or None"""
        pass

    @abstractmethod
    def get_user_by_id(self, user_id):
        """Retrieve user record by ID, or None"""
        pass

    @abstractmethod
    def create_user(self, username, password):
        """Create a user record. Raises CreationFailed if the store rejects it."""
        pass

    @abstractmethod
    def save_user_field(self, user_id, field, value):
        """Persist one field of a user record. Raises PersistenceFailed on store errors."""
        pass


class InMemoryStorageAdapter(StorageAdapter):
    """
    In-memory storage for development only.
    DO NOT USE IN PRODUCTION - data lost on restart.
    """

    def __init__(self):
        self.users = {}
        self._lock = threading.Lock()

    def find_user_by_username(self, username):
        with self._lock:
            user = self.users.get(username)
            return dict(user) if user else None

    def get_user_by_id(self, user_id):
        with self._lock:
            for user in self.users.values():
                if user.get('id') == user_id:
                    return dict(user)
        return None

    def create_user(self, username, password):
        if not username:
            raise CreationFailed("Username is required")

        with self._lock:
            if username in self.users:
                raise CreationFailed(f"Username already taken: {username}")
            user = {
                'id': secrets.token_hex(8),
                'username': username,
                'name': '',
                'password_hash': generate_password_hash(password),
                WEBAUTHN_ID_FIELD: '',
                WEBAUTHN_CREDENTIALS_FIELD: '',
            }
            self.users[username] = user
            return dict(user)

    def save_user_field(self, user_id, field, value):
        if field not in WRITABLE_FIELDS:
            raise PersistenceFailed(f"Field is not writable: {field}")

        with self._lock:
            for user in self.users.values():
                if user.get('id') == user_id:
                    user[field] = value
                    return
        raise NotFound("User not found.")


class SQLAlchemyStorageAdapter(StorageAdapter):
    """
    SQLAlchemy-based storage.

    ``user_model`` must expose ``id``, ``username`` and the two WebAuthn
    text columns. ``name`` and ``password_hash`` are used when present.
    """

    def __init__(self, user_model, session):
        self.user_model = user_model
        self.session = session

    def _to_record(self, user):
        record = {
            key: getattr(user, key, None) for key in RECORD_FIELDS
        }
        record['name'] = record['name'] or ''
        record[WEBAUTHN_ID_FIELD] = record[WEBAUTHN_ID_FIELD] or ''
        record[WEBAUTHN_CREDENTIALS_FIELD] = record[WEBAUTHN_CREDENTIALS_FIELD] or ''
        return record

    def find_user_by_username(self, username):
        user = self.session.query(self.user_model).filter_by(username=username).first()
        return self._to_record(user) if user else None

    def get_user_by_id(self, user_id):
        user = self.session.query(self.user_model).filter_by(id=user_id).first()
        return self._to_record(user) if user else None

    def create_user(self, username, password):
        from sqlalchemy.exc import SQLAlchemyError

        if not username:
            raise CreationFailed("Username is required")

        user = self.user_model(username=username)
        if hasattr(user, 'password_hash'):
            user.password_hash = generate_password_hash(password)
        setattr(user, WEBAUTHN_ID_FIELD, '')
        setattr(user, WEBAUTHN_CREDENTIALS_FIELD, '')

        try:
            self.session.add(user)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise CreationFailed(f"Could not create user: {username}") from e

        return self._to_record(user)

    def save_user_field(self, user_id, field, value):
        from sqlalchemy.exc import SQLAlchemyError

        if field not in WRITABLE_FIELDS:
            raise PersistenceFailed(f"Field is not writable: {field}")

        user = self.session.query(self.user_model).filter_by(id=user_id).first()
        if not user:
            raise NotFound("User not found.")

        try:
            setattr(user, field, value)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceFailed(f"Could not store {field} to db.") from e
