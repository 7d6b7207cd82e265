"""
Utility modules for the Taskifye backend.

This package contains shared utilities used across the application.
"""

from taskifye.utils.encryption import (
    EncryptionError,
    DecryptionError,
    InvalidKeyError,
    derive_key,
    encrypt,
    decrypt,
    encrypt_to_blob,
    decrypt_blob,
)

__all__ = [
    "EncryptionError",
    "DecryptionError",
    "InvalidKeyError",
    "derive_key",
    "encrypt",
    "decrypt",
    "encrypt_to_blob",
    "decrypt_blob",
]
