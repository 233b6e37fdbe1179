"""
Security module for Code Tutor.

Provides:
- Password hashing (bcrypt)
- JWT issuance, verification and revocation
- Role hierarchy checks
- Token encryption (Fernet) for provider tokens at rest
- Configuration validation
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .encryption import TokenEncryption, get_encryption_service
    from .passwords import hash_password, validate_password_strength, verify_password
    from .roles import has_any_role
    from .tokens import TokenService, get_token_service
    from .validation import SecurityConfigError, validate_security_config

_LAZY_ATTRS = {
    "TokenEncryption": ".encryption",
    "get_encryption_service": ".encryption",
    "hash_password": ".passwords",
    "verify_password": ".passwords",
    "validate_password_strength": ".passwords",
    "has_any_role": ".roles",
    "TokenService": ".tokens",
    "get_token_service": ".tokens",
    "SecurityConfigError": ".validation",
    "validate_security_config": ".validation",
}


def __getattr__(name: str) -> Any:
    """
    Lazy attribute loading to avoid import-time cycles.

    Settings and logging import this package early; tokens pull in the cache
    and models, which would otherwise be imported before they are ready.
    """
    module_name = _LAZY_ATTRS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    import importlib

    module = importlib.import_module(module_name, __name__)
    return getattr(module, name)


def __dir__() -> list[str]:
    return sorted(__all__)


__all__ = list(_LAZY_ATTRS)
