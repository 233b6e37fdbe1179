"""
Shared Redis connection for session and revocation records.

Values are JSON objects. Connection and timeout errors raised while talking
to Redis propagate as ``redis.exceptions.RedisError`` so callers can tell a
missing key from an unreachable server; ``RedisStore`` turns them into
``StoreUnavailableError`` and auth checks fail closed.
"""

import json
from typing import Any, Optional

import redis
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from core.config import get_settings
from core.logging import get_logger

logger = get_logger("cache")

_IO_ERRORS = (ConnectionError, TimeoutError)


class RedisCache:
    """
    Process-wide Redis pool.

    Usage:
        from core.cache import cache

        cache.add_json("revoked:<jti>", {"exp": 1700000000}, ttl=900)
        state = cache.pop_json("session:<sid>")
    """

    _instance: Optional["RedisCache"] = None
    _pool: Optional[redis.ConnectionPool] = None
    _initialized: bool = False
    _available: bool = False

    def __new__(cls) -> "RedisCache":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def initialize(self, force: bool = False) -> bool:
        """Open the pool and ping once. Returns whether Redis answered."""
        if self._initialized and not force:
            return self._available

        settings = get_settings()
        self._available = False
        try:
            self._pool = redis.ConnectionPool.from_url(
                settings.redis_url,
                max_connections=50,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
            redis.Redis(connection_pool=self._pool).ping()
            self._available = True
            logger.info("redis_connected", host=settings.redis_host, port=settings.redis_port)
        except RedisError as e:
            logger.warning("redis_connection_failed", error=type(e).__name__)

        self._initialized = True
        return self._available

    @property
    def client(self) -> Optional[redis.Redis]:
        if not self.is_available or self._pool is None:
            return None
        return redis.Redis(connection_pool=self._pool)

    @property
    def is_available(self) -> bool:
        """Whether the startup ping succeeded. Later outages surface as RedisError."""
        if not self._initialized:
            self.initialize()
        return self._available

    def _require_client(self) -> redis.Redis:
        client = self.client
        if client is None:
            raise ConnectionError("Redis is not available")
        return client

    @staticmethod
    def _decode(key: str, raw: Any) -> dict | None:
        if raw is None:
            return None
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("cache_value_undecodable", key=key.split(":", 1)[0])
            return None
        return parsed if isinstance(parsed, dict) else None

    def get_json(self, key: str) -> dict | None:
        """None only when the key is absent or not a JSON object."""
        return self._decode(key, self._require_client().get(key))

    def set_json(self, key: str, value: dict, ttl: int) -> None:
        self._require_client().setex(key, max(int(ttl), 1), json.dumps(value))

    def add_json(self, key: str, value: dict, ttl: int) -> bool:
        """SET NX with expiry. False when the key was already present."""
        client = self._require_client()
        return bool(client.set(key, json.dumps(value), ex=max(int(ttl), 1), nx=True))

    def pop_json(self, key: str) -> dict | None:
        """GETDEL: read a one-time value and remove it in the same round trip."""
        return self._decode(key, self._require_client().getdel(key))

    def delete(self, key: str) -> None:
        self._require_client().delete(key)

    def health_check(self) -> dict[str, Any]:
        status: dict[str, Any] = {"available": self._available, "initialized": self._initialized}
        client = self.client
        if client is None:
            status["status"] = "unavailable"
            return status
        try:
            client.ping()
            status["status"] = "healthy"
        except _IO_ERRORS:
            status["status"] = "degraded"
        return status


cache = RedisCache()
