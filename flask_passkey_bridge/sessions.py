"""Pending WebAuthn ceremonies, keyed by user handle."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import NoPendingCeremony

logger = logging.getLogger(__name__)

REGISTRATION = "registration"
LOGIN = "login"
CEREMONY_KINDS = (REGISTRATION, LOGIN)


@dataclass(frozen=True)
class PendingCeremony:
    kind: str
    state: Any
    expires_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


class CeremonySessionStore:
    """Holds the state between a ceremony's begin and finish calls.

    At most one ceremony is pending per handle; a new ``put`` replaces it.
    ``take`` removes the entry under the lock, so a given pending ceremony
    can be consumed by exactly one finish call. Expired entries are swept
    lazily on ``put`` and by ``cleanup_expired``.
    """

    def __init__(self, ttl_seconds: int = 300, clock=time.time) -> None:
        self.ttl_seconds = int(ttl_seconds)
        self._clock = clock
        self._pending: Dict[str, PendingCeremony] = {}
        self._lock = threading.Lock()

    def put(self, handle: str, kind: str, state: Any) -> None:
        if kind not in CEREMONY_KINDS:
            raise ValueError(f"Unknown ceremony kind: {kind}")
        now = self._clock()
        with self._lock:
            self._sweep(now)
            self._pending[handle] = PendingCeremony(
                kind=kind,
                state=state,
                expires_at=now + self.ttl_seconds,
            )

    def take(self, handle: str, kind: Optional[str] = None) -> Any:
        with self._lock:
            pending = self._pending.pop(handle, None)

        if pending is None:
            raise NoPendingCeremony("No ceremony in progress for this user.")
        if pending.is_expired(self._clock()):
            raise NoPendingCeremony("Ceremony expired, start again.")
        if kind is not None and pending.kind != kind:
            raise NoPendingCeremony(f"No {kind} ceremony in progress for this user.")
        return pending.state

    def cleanup_expired(self) -> int:
        """Remove expired ceremonies - call periodically. Returns count removed."""
        with self._lock:
            return self._sweep(self._clock())

    def _sweep(self, now: float) -> int:
        expired = [h for h, p in self._pending.items() if p.is_expired(now)]
        for h in expired:
            del self._pending[h]
        if expired:
            logger.debug("Swept %d expired ceremonies", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, handle: str) -> bool:
        with self._lock:
            return handle in self._pending
