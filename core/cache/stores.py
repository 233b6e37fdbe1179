"""
Key-value stores for short-lived auth state.

Two interchangeable backends sit behind ``KeyValueStore``:

- ``InMemoryStore``: process-local dict guarded by a lock, with per-key TTL.
  Correct for a single instance only.
- ``RedisStore``: backed by the shared ``RedisCache`` singleton, so revoked
  tokens and OAuth state are visible to every instance.

Values are JSON-compatible dicts. Keys are built with ``CacheKeys``.

Usage:
    from core.cache.stores import build_store

    store = build_store(settings.revocation_backend)
    store.set(CacheKeys.revoked_token(jti), {"exp": exp}, ttl=3600)
"""

import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Optional

from redis.exceptions import RedisError

from core.cache.redis_client import RedisCache, cache
from core.logging import get_logger

logger = get_logger("cache.stores")


class StoreUnavailableError(RuntimeError):
    """The configured backend cannot be reached."""


class KeyValueStore(ABC):
    """Minimal TTL key-value interface used by revocation and sessions."""

    @abstractmethod
    def get(self, key: str) -> Optional[dict]:
        """Return the value for key, or None if missing or expired."""

    @abstractmethod
    def set(self, key: str, value: dict, ttl: int) -> None:
        """Store value under key for ttl seconds."""

    @abstractmethod
    def add(self, key: str, value: dict, ttl: int) -> bool:
        """Store value only if key is absent. Returns True when written."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""

    @abstractmethod
    def pop(self, key: str) -> Optional[dict]:
        """Atomically read and remove key."""

    def contains(self, key: str) -> bool:
        return self.get(key) is not None

    def prune(self) -> int:
        """
        Drop expired entries.

        Backends with native expiry have nothing to do and return 0.
        """
        return 0


class InMemoryStore(KeyValueStore):
    """
    Thread-safe in-process store.

    Args:
        clock: Source of the current time in epoch seconds (tests inject a
            fake clock to move past TTLs without sleeping).
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, tuple[float, dict]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._data[key]
                return None
            return dict(value)

    def set(self, key: str, value: dict, ttl: int) -> None:
        with self._lock:
            self._data[key] = (self._clock() + max(int(ttl), 1), dict(value))

    def add(self, key: str, value: dict, ttl: int) -> bool:
        with self._lock:
            now = self._clock()
            entry = self._data.get(key)
            if entry is not None and entry[0] > now:
                return False
            self._data[key] = (now + max(int(ttl), 1), dict(value))
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def pop(self, key: str) -> Optional[dict]:
        with self._lock:
            entry = self._data.pop(key, None)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            return None
        return value

    def prune(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (expires_at, _) in self._data.items() if expires_at <= now]
            for key in expired:
                del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class RedisStore(KeyValueStore):
    """
    Store backed by Redis with native key expiry.

    Every operation fails loudly when Redis cannot be reached. A read that
    reported "missing" during an outage would let a revoked token validate.
    """

    def __init__(self, redis_cache: Optional[RedisCache] = None):
        self._cache = redis_cache or cache

    @contextmanager
    def _reachable(self, operation: str, key: str):
        if not self._cache.is_available:
            logger.error("kv_store_unavailable", backend="redis", operation=operation)
            raise StoreUnavailableError("Redis is not available")
        try:
            yield
        except RedisError as exc:
            logger.error(
                "kv_store_io_error",
                backend="redis",
                operation=operation,
                namespace=key.split(":", 1)[0],
                error=type(exc).__name__,
            )
            raise StoreUnavailableError("Redis is not reachable") from exc

    def get(self, key: str) -> Optional[dict]:
        with self._reachable("get", key):
            return self._cache.get_json(key)

    def set(self, key: str, value: dict, ttl: int) -> None:
        with self._reachable("set", key):
            self._cache.set_json(key, value, ttl=ttl)

    def add(self, key: str, value: dict, ttl: int) -> bool:
        with self._reachable("add", key):
            return self._cache.add_json(key, value, ttl=ttl)

    def delete(self, key: str) -> None:
        with self._reachable("delete", key):
            self._cache.delete(key)

    def pop(self, key: str) -> Optional[dict]:
        with self._reachable("pop", key):
            return self._cache.pop_json(key)


def build_store(backend: str) -> KeyValueStore:
    """Create a store for the configured backend name ("memory" or "redis")."""
    if backend == "redis":
        return RedisStore()
    if backend == "memory":
        return InMemoryStore()
    raise ValueError(f"Unknown store backend: {backend}")


__all__ = [
    "KeyValueStore",
    "InMemoryStore",
    "RedisStore",
    "StoreUnavailableError",
    "build_store",
]
