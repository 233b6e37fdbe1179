"""
Server-side sessions.

The browser only holds an opaque random id (cookie ``code_tutor.sid``); the
data lives in a key-value store. Sessions carry short-lived flow state such
as the OAuth nonce and return path, never tokens.

Usage:
    from core.sessions import SessionStore

    sessions = SessionStore(InMemoryStore(), max_age=86400)
    sid = sessions.new_session_id()
    sessions.save(sid, {"oauth_state": nonce})
    data = sessions.load(sid)
"""

import secrets
from typing import Any, Optional

from core.cache import CacheKeys, KeyValueStore, build_store
from core.config import get_settings
from core.logging import get_logger

logger = get_logger("sessions")


class SessionData(dict):
    """
    Session payload exposed to handlers as ``request.state.session``.

    Tracks whether it was modified so unchanged sessions are not rewritten,
    and whether the handler asked for it to be destroyed.
    """

    def __init__(self, *args: Any, session_id: Optional[str] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.session_id = session_id
        self.modified = False
        self.destroyed = False

    def __setitem__(self, key: str, value: Any) -> None:
        super().__setitem__(key, value)
        self.modified = True

    def __delitem__(self, key: str) -> None:
        super().__delitem__(key)
        self.modified = True

    def pop(self, key: str, *default: Any) -> Any:
        if key in self:
            self.modified = True
        return super().pop(key, *default)

    def update(self, *args: Any, **kwargs: Any) -> None:
        super().update(*args, **kwargs)
        self.modified = True

    def setdefault(self, key: str, default: Any = None) -> Any:
        if key not in self:
            self.modified = True
        return super().setdefault(key, default)

    def clear(self) -> None:
        if self:
            self.modified = True
        super().clear()

    def invalidate(self) -> None:
        """Drop all data and remove the session from the store."""
        super().clear()
        self.destroyed = True


class SessionStore:
    """Load, save and destroy sessions in a key-value store."""

    def __init__(self, store: KeyValueStore, max_age: int = 86400):
        self._store = store
        self.max_age = max_age

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(32)

    def load(self, session_id: Optional[str]) -> Optional[dict]:
        if not session_id:
            return None
        return self._store.get(CacheKeys.session(session_id))

    def save(self, session_id: str, data: dict, ttl: Optional[int] = None) -> None:
        self._store.set(CacheKeys.session(session_id), dict(data), ttl=ttl or self.max_age)

    def destroy(self, session_id: Optional[str]) -> None:
        """Remove a session. Unknown ids are ignored."""
        if session_id:
            self._store.delete(CacheKeys.session(session_id))
            logger.debug("session_destroyed")

    def save_oauth_state(self, flow_id: str, data: dict, ttl: int) -> None:
        self._store.set(CacheKeys.oauth_state(flow_id), dict(data), ttl=ttl)

    def take_oauth_state(self, flow_id: Optional[str]) -> Optional[dict]:
        """
        Read and delete a pending OAuth nonce in one step (GETDEL on Redis).

        Of two concurrent callbacks for the same flow, only one gets the record.
        """
        if not flow_id:
            return None
        return self._store.pop(CacheKeys.oauth_state(flow_id))


_session_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    """Get the SessionStore singleton for the configured backend."""
    global _session_store
    if _session_store is None:
        settings = get_settings()
        _session_store = SessionStore(
            build_store(settings.session_backend), max_age=settings.session_max_age_seconds
        )
    return _session_store


def set_session_store(store: SessionStore | None) -> None:
    global _session_store
    _session_store = store


__all__ = [
    "SessionData",
    "SessionStore",
    "get_session_store",
    "set_session_store",
]
