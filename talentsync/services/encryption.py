"""Fernet encryption for ATS tokens and webhook secrets."""

from typing import Optional

import structlog
from cryptography.fernet import Fernet, InvalidToken

logger = structlog.get_logger()


class EncryptionKeyError(Exception):
    """Raised when encryption key is missing or invalid in production."""

    pass


class TokenCipher:
    """Encrypts and decrypts secrets stored on ATSConnection rows."""

    def __init__(self, key: Optional[str], environment: str = "development"):
        """Initialize cipher.

        Args:
            key: Fernet key (urlsafe base64, 32 bytes)
            environment: A missing key is only tolerated outside production

        Raises:
            EncryptionKeyError: If the key is missing in production or malformed
        """
        if not key:
            if environment == "production":
                raise EncryptionKeyError(
                    "ENCRYPTION_KEY is required in production. "
                    "Generate one with: python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
                )
            logger.warning(
                "No ENCRYPTION_KEY set, generating temporary key. "
                "This is ONLY acceptable in development!"
            )
            key = Fernet.generate_key().decode()

        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise EncryptionKeyError(f"Invalid ENCRYPTION_KEY: {e}") from e

    def encrypt(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return value
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, encrypted_value: Optional[str]) -> Optional[str]:
        """
        Decrypt a Fernet-encrypted value.

        Raises:
            InvalidToken: If decryption fails
        """
        if not encrypted_value:
            return encrypted_value
        try:
            return self._fernet.decrypt(encrypted_value.encode()).decode()
        except InvalidToken:
            logger.error("Failed to decrypt value - invalid token")
            raise
