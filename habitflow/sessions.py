"""In-memory identity cache for logged-in HabitFlow clients."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from .registry import Identity


@dataclass
class _SessionRecord:
    identity: Identity
    expires_at: datetime


class SessionManager:
    """Generate, validate, and revoke client sessions."""

    def __init__(self, *, ttl: timedelta = timedelta(hours=8)) -> None:
        self._ttl = ttl
        self._sessions: Dict[str, _SessionRecord] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def create(self, identity: Identity) -> str:
        token = secrets.token_urlsafe(32)
        record = _SessionRecord(identity=identity, expires_at=self._now() + self._ttl)
        with self._lock:
            self._sessions[token] = record
        return token

    def resolve(self, token: str) -> Optional[Identity]:
        now = self._now()
        with self._lock:
            record = self._sessions.get(token)
            if record is None:
                return None
            if record.expires_at <= now:
                self._sessions.pop(token, None)
                return None
            record.expires_at = now + self._ttl
            return record.identity

    def destroy(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def forget_user(self, user_id: str) -> None:
        """Drop every session belonging to a deleted account."""

        with self._lock:
            stale = [token for token, record in self._sessions.items() if record.identity.current_user.id == user_id]
            for token in stale:
                self._sessions.pop(token, None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["SessionManager"]
