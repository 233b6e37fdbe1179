"""
Caching layer for short-lived auth state.

Provides a Redis client with connection pooling and the key-value store
abstraction used by the revocation list and the session store.

Usage:
    from core.cache import CacheKeys, build_store

    store = build_store("memory")
    store.set(CacheKeys.session(sid), {"oauth_state": nonce}, ttl=300)
"""

from core.cache.cache_keys import CacheKeys
from core.cache.redis_client import RedisCache, cache
from core.cache.stores import (
    InMemoryStore,
    KeyValueStore,
    RedisStore,
    StoreUnavailableError,
    build_store,
)

__all__ = [
    "RedisCache",
    "cache",
    "CacheKeys",
    "KeyValueStore",
    "InMemoryStore",
    "RedisStore",
    "StoreUnavailableError",
    "build_store",
]
