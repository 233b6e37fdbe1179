"""
Revoked-token list keyed by JWT id.

Each entry lives until the token's own expiry: after that the signature
check rejects the token anyway, so the entry can be pruned.
"""

import time
from typing import Callable, Optional

from core.cache import CacheKeys, KeyValueStore, build_store
from core.logging import get_logger, mask_identifier

logger = get_logger("security.revocation")


class RevocationList:
    """
    Set of revoked jti values with per-entry expiry.

    Usage:
        revocations = RevocationList(InMemoryStore())
        revocations.revoke(claims["jti"], claims["exp"])
        revocations.is_revoked(claims["jti"])  # True
    """

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def revoke(self, jti: str, expires_at: int) -> bool:
        """
        Revoke a token id until expires_at (epoch seconds).

        Returns:
            True if the entry was newly added, False if the jti was already
            revoked or the token has already expired.
        """
        ttl = int(expires_at - self._clock())
        if ttl <= 0:
            logger.debug("revoke_skipped_expired", jti=mask_identifier(jti))
            return False
        added = self._store.add(CacheKeys.revoked_token(jti), {"exp": int(expires_at)}, ttl=ttl)
        if added:
            logger.info("token_revoked", jti=mask_identifier(jti), ttl=ttl)
        return added

    def is_revoked(self, jti: Optional[str]) -> bool:
        if not jti:
            return False
        return self._store.contains(CacheKeys.revoked_token(jti))

    def prune(self) -> int:
        """Remove entries whose tokens have expired."""
        removed = self._store.prune()
        if removed:
            logger.info("revocations_pruned", removed=removed)
        return removed


def build_revocation_list(backend: str) -> RevocationList:
    return RevocationList(build_store(backend))


__all__ = ["RevocationList", "build_revocation_list"]
