"""
Credential encryption utilities.

Wraps the AES-256-CBC cipher in taskifye.utils.encryption with the
process-wide master key.

SECURITY REQUIREMENTS:
- Key derived once from ENCRYPTION_KEY, read-only afterwards
- No plaintext secrets outside process memory
- Encryption validation on startup
- Clear error messages without exposing sensitive data

Usage:
    from taskifye.credentials.encryption import get_secret_cipher

    cipher = get_secret_cipher()

    # Encrypt before storage
    blob = cipher.encrypt_secret(api_key)

    # Decrypt for use (in memory only)
    api_key = cipher.decrypt_secret(blob)
"""

import logging
from typing import Optional

from taskifye.config import get_settings
from taskifye.utils.encryption import (
    DecryptionError,
    EncryptionError,
    InvalidKeyError,
    decrypt_blob,
    derive_key,
    encrypt_to_blob,
)

logger = logging.getLogger(__name__)


class CredentialEncryptionError(Exception):
    """Raised when credential encryption/decryption fails."""

    def __init__(self, message: str, operation: str = "unknown"):
        self.operation = operation
        super().__init__(message)


class SecretCipher:
    """
    Encrypts and decrypts credential blobs with a fixed derived key.

    SECURITY:
    - The key is never logged and not exposed through repr()
    - Inputs and outputs are never logged
    """

    def __init__(self, master_secret: str):
        """
        Args:
            master_secret: Configured ENCRYPTION_KEY value

        Raises:
            CredentialEncryptionError: If the master secret is empty
        """
        try:
            self._key = derive_key(master_secret)
        except InvalidKeyError as e:
            raise CredentialEncryptionError(
                "Encryption key not configured. Set ENCRYPTION_KEY environment variable.",
                operation="init",
            ) from e

    def __repr__(self) -> str:
        return "<SecretCipher key=***>"

    def encrypt_secret(self, plaintext: str) -> str:
        """
        Encrypt a secret for storage.

        Returns:
            '<hex iv>:<hex ciphertext>' blob safe for database storage

        Raises:
            ValueError: If plaintext is empty
            CredentialEncryptionError: If encryption fails
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty secret")

        try:
            return encrypt_to_blob(plaintext, self._key)
        except EncryptionError as e:
            logger.error(
                "Secret encryption failed",
                extra={"operation": "encrypt_secret", "error_type": type(e).__name__}
            )
            raise CredentialEncryptionError(
                "Failed to encrypt secret",
                operation="encrypt"
            ) from e

    def decrypt_secret(self, blob: str) -> str:
        """
        Decrypt a stored blob.

        SECURITY: Decrypted value must NEVER be logged.

        Raises:
            ValueError: If blob is empty
            DecryptionError: If the blob is malformed or the key is wrong
        """
        if not blob:
            raise ValueError("Cannot decrypt empty ciphertext")
        return decrypt_blob(blob, self._key)


_cipher: Optional[SecretCipher] = None


def validate_encryption_ready() -> bool:
    """
    Validate that encryption is properly configured.

    Call this during application startup to fail fast if encryption
    is not configured.

    Raises:
        CredentialEncryptionError: If encryption is not configured
    """
    if not get_settings().encryption_configured:
        raise CredentialEncryptionError(
            "ENCRYPTION_KEY environment variable is required for credential storage.",
            operation="validate"
        )

    logger.info("Credential encryption validated successfully")
    return True


def get_secret_cipher() -> SecretCipher:
    """Return the process-wide cipher, deriving the key on first use."""
    global _cipher
    if _cipher is None:
        validate_encryption_ready()
        _cipher = SecretCipher(get_settings().encryption_key)
    return _cipher


def reset_secret_cipher() -> None:
    """Drop the cached cipher (for testing)."""
    global _cipher
    _cipher = None
