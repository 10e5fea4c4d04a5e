from .auth import PasskeyBridge
from .errors import (
    ErrorKind,
    PasskeyError,
    NotFound,
    CreationFailed,
    NoPendingCeremony,
    VerificationFailed,
    PersistenceFailed,
    DecodeFailed,
)
from .storage import InMemoryStorageAdapter, SQLAlchemyStorageAdapter
from .utils import login_required, get_current_user, is_authenticated

__version__ = '0.1.0'

__all__ = [
    'PasskeyBridge',
    'InMemoryStorageAdapter',
    'SQLAlchemyStorageAdapter',
    'ErrorKind',
    'PasskeyError',
    'NotFound',
    'CreationFailed',
    'NoPendingCeremony',
    'VerificationFailed',
    'PersistenceFailed',
    'DecodeFailed',
    'login_required',
    'get_current_user',
    'is_authenticated',
]
