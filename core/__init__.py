"""
Code Tutor auth core: settings, logging, the user store, password hashing,
JWT issuance and revocation, server-side sessions and the GitHub OAuth client.

Import from submodules directly, e.g. ``from core.security.tokens import get_token_service``.
"""

__version__ = "0.1.0"
