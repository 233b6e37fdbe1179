"""
Fernet encryption for GitHub provider tokens stored on the users table.

Without TOKEN_ENCRYPTION_KEY tokens are stored as given, unless
REQUIRE_ENCRYPTION is set, in which case storing one raises.
"""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from core.config import get_settings
from core.logging import get_logger

logger = get_logger("security.encryption")

# Every Fernet token starts with the version byte 0x80, which base64-encodes to "gAAAAA"
FERNET_PREFIX = "gAAAAA"


class EncryptionError(Exception):
    pass


class TokenEncryption:
    """
    Usage:
        encryption = get_encryption_service()
        stored, encrypted = encryption.encrypt_if_available("gho_xxxx")
        token = encryption.decrypt_if_encrypted(stored)
    """

    def __init__(self, key: Optional[str] = None):
        self._fernet: Optional[Fernet] = None
        if not key:
            logger.warning("encryption_disabled", reason="no key configured")
            return
        try:
            self._fernet = Fernet(key.encode())
        except (ValueError, TypeError) as e:
            logger.error("encryption_key_rejected", error_type=type(e).__name__)

    @property
    def is_available(self) -> bool:
        return self._fernet is not None

    def _require_fernet(self) -> Fernet:
        if self._fernet is None:
            raise EncryptionError("No valid TOKEN_ENCRYPTION_KEY configured")
        return self._fernet

    def encrypt(self, plaintext: str) -> str:
        return self._require_fernet().encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        fernet = self._require_fernet()
        try:
            return fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as e:
            raise EncryptionError("Stored token could not be decrypted") from e

    def encrypt_if_available(self, plaintext: str, require_encryption: bool = False) -> tuple[str, bool]:
        """
        Returns:
            (value to store, whether it was encrypted)

        Raises:
            EncryptionError: require_encryption is set and no key is configured
        """
        if self.is_available:
            return self.encrypt(plaintext), True
        if require_encryption:
            raise EncryptionError("Token encryption is required but no key is configured")
        return plaintext, False

    def decrypt_if_encrypted(self, value: str) -> str:
        """Values stored before a key was configured come back unchanged."""
        if not self.is_available or not value.startswith(FERNET_PREFIX):
            return value
        try:
            return self.decrypt(value)
        except EncryptionError:
            logger.error("stored_token_undecryptable")
            return value


_encryption_service: TokenEncryption | None = None


def get_encryption_service() -> TokenEncryption:
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = TokenEncryption(get_settings().token_encryption_key)
    return _encryption_service


def reset_encryption_service() -> None:
    global _encryption_service
    _encryption_service = None


__all__ = [
    "EncryptionError",
    "TokenEncryption",
    "get_encryption_service",
    "reset_encryption_service",
]
