"""
Cache key management.

Centralized key definitions so the in-memory and Redis stores share one
naming scheme: {domain}:{id}
"""


class CacheKeys:
    """
    Centralized cache key definitions.

    Examples:
        - session:Qm9v... -> server-side session payload
        - revoked:8c1f... -> revocation marker for a token id
        - oauth_state:Zx3q... -> pending OAuth nonce for one browser flow
    """

    PREFIX_SESSION = "session"
    PREFIX_REVOKED = "revoked"
    PREFIX_OAUTH_STATE = "oauth_state"

    @staticmethod
    def session(session_id: str) -> str:
        """Key for a server-side session record."""
        return f"session:{session_id}"

    @staticmethod
    def revoked_token(jti: str) -> str:
        """Key for a revoked token id."""
        return f"revoked:{jti}"

    @staticmethod
    def oauth_state(flow_id: str) -> str:
        """Key for the nonce of an OAuth flow in progress."""
        return f"oauth_state:{flow_id}"
