"""
Symmetric cipher for tenant credential storage.

Implements AES-256-CBC encryption for storing integration secrets at rest.

SECURITY:
- Every encryption call generates a fresh random 16-byte IV (never reused)
- Key is derived once from the configured master secret
- Key must be exactly 32 bytes (256 bits)
- Plaintext and key material are never logged

Storage format:
    <hex(iv)>:<hex(ciphertext)>

Hex never emits ':' so splitting on the first separator is unambiguous.

Usage:
    from taskifye.utils.encryption import derive_key, encrypt_to_blob, decrypt_blob

    key = derive_key(os.environ["ENCRYPTION_KEY"])
    blob = encrypt_to_blob("api-token", key)
    plaintext = decrypt_blob(blob, key)
"""

import logging
import secrets
from typing import Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)


# AES-CBC constants
IV_SIZE = 16      # 128 bits, one AES block
KEY_SIZE = 32     # 256 bits for AES-256
BLOCK_SIZE = 128  # PKCS7 padding block size in bits
BLOB_SEPARATOR = ":"


class EncryptionError(Exception):
    """Raised when encryption fails."""
    pass


class DecryptionError(Exception):
    """Raised when a blob is malformed or was encrypted with another key."""
    pass


class InvalidKeyError(Exception):
    """Raised when encryption key is invalid."""
    pass


def derive_key(master_secret: str) -> bytes:
    """
    Derive the cipher key from the configured master secret.

    The UTF-8 bytes of the secret are truncated or zero-padded to KEY_SIZE.

    Raises:
        InvalidKeyError: If the master secret is empty
    """
    if not master_secret:
        raise InvalidKeyError("Encryption key is required")

    raw = master_secret.encode("utf-8")
    return raw[:KEY_SIZE].ljust(KEY_SIZE, b"\0")


def generate_iv() -> bytes:
    """Generate a new random IV for one encryption call."""
    return secrets.token_bytes(IV_SIZE)


def _check_key(key: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise InvalidKeyError(
            f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}"
        )


def encrypt(plaintext: str, key: bytes) -> Tuple[bytes, bytes]:
    """
    Encrypt a string with AES-256-CBC.

    Args:
        plaintext: Value to encrypt
        key: 32-byte key from derive_key()

    Returns:
        Tuple of (iv, ciphertext)

    Raises:
        InvalidKeyError: If key is the wrong size
        EncryptionError: If encryption fails
    """
    _check_key(key)
    iv = generate_iv()
    try:
        padder = padding.PKCS7(BLOCK_SIZE).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
    except Exception as e:
        logger.error("Encryption failed", extra={"error_type": type(e).__name__})
        raise EncryptionError("Failed to encrypt data") from e

    return iv, ciphertext


def decrypt(iv: bytes, ciphertext: bytes, key: bytes) -> str:
    """
    Decrypt AES-256-CBC ciphertext.

    Raises:
        InvalidKeyError: If key is the wrong size
        DecryptionError: If IV is invalid, padding check fails (wrong key or
            corrupted data) or the result is not UTF-8
    """
    _check_key(key)
    if len(iv) != IV_SIZE:
        raise DecryptionError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")
    if not ciphertext or len(ciphertext) % (BLOCK_SIZE // 8):
        raise DecryptionError("Ciphertext length is not a multiple of the block size")

    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(BLOCK_SIZE).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode("utf-8")
    except ValueError as e:
        # Bad padding and bad UTF-8 both surface as ValueError
        raise DecryptionError("Decryption failed: wrong key or corrupted data") from e


def encrypt_to_blob(plaintext: str, key: bytes) -> str:
    """Encrypt and encode as the storable '<hex iv>:<hex ciphertext>' blob."""
    iv, ciphertext = encrypt(plaintext, key)
    return f"{iv.hex()}{BLOB_SEPARATOR}{ciphertext.hex()}"


def decrypt_blob(blob: str, key: bytes) -> str:
    """
    Decode and decrypt a stored blob.

    Splits on the first separator; everything after it is ciphertext.

    Raises:
        DecryptionError: If the blob is malformed or cannot be decrypted
    """
    if not blob or BLOB_SEPARATOR not in blob:
        raise DecryptionError("Encrypted blob is missing the IV separator")

    iv_hex, ciphertext_hex = blob.split(BLOB_SEPARATOR, 1)
    try:
        iv = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(ciphertext_hex)
    except ValueError as e:
        raise DecryptionError("Encrypted blob is not valid hex") from e

    return decrypt(iv, ciphertext, key)
