"""Field-level encryption for sensitive client columns.

Sensitive client fields are stored as AES-256-CBC ciphertext with PKCS7
padding. The stored payload is ``base64(iv || ciphertext)`` with a random
16-byte IV per value, so existing rows written by the WordPress plugin
remain readable.

The key is supplied as ``PLUGIN_AES_KEY="base64:<32 bytes base64>"``.

Encrypted columns cannot be compared directly, so each unique field also
carries a deterministic hash (``deterministic_hash``) used for equality
lookups and uniqueness checks.

Usage:
    from meals_db.crypto import FieldCipher, deterministic_hash

    cipher = FieldCipher.from_setting(os.environ["PLUGIN_AES_KEY"])
    stored = cipher.encrypt("123456789")
    cipher.decrypt(stored)  # "123456789"
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

KEY_PREFIX = "base64:"
KEY_SIZE = 32
IV_SIZE = 16


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted."""


class DecryptionError(Exception):
    """Raised when a stored value cannot be decrypted.

    This usually means the key changed without re-encrypting existing rows,
    or the stored payload is corrupted. Callers must decide explicitly what
    an undecryptable value means for them.
    """


def load_key(setting: str) -> bytes:
    """Decode a ``base64:``-prefixed key setting into raw key bytes.

    Args:
        setting: Key string, e.g. ``"base64:a2tra2..."``.

    Returns:
        The 32-byte AES key.

    Raises:
        ValueError: If the prefix is missing, the payload is not valid
            base64, or the decoded key is not 32 bytes.
    """
    if not setting or not setting.startswith(KEY_PREFIX):
        raise ValueError(
            "Invalid or missing AES key: PLUGIN_AES_KEY must start with 'base64:'"
        )
    try:
        key = base64.b64decode(setting[len(KEY_PREFIX) :], validate=True)
    except binascii.Error:
        raise ValueError(
            "Invalid AES key: PLUGIN_AES_KEY payload is not valid base64"
        ) from None
    if len(key) != KEY_SIZE:
        raise ValueError(
            f"Invalid AES key: expected {KEY_SIZE} bytes, got {len(key)}"
        )
    return key


def generate_key_setting() -> str:
    """Return a fresh random key in ``PLUGIN_AES_KEY`` format."""
    return KEY_PREFIX + base64.b64encode(os.urandom(KEY_SIZE)).decode("ascii")


def deterministic_hash(value: str) -> str:
    """Hash a value for equality lookup on an encrypted column.

    The value is trimmed and lower-cased before hashing, so lookups are
    insensitive to surrounding whitespace and letter case.

    Args:
        value: Plaintext value.

    Returns:
        Hex-encoded SHA-256 digest.
    """
    return hashlib.sha256(value.strip().lower().encode("utf-8")).hexdigest()


class FieldCipher:
    """AES-256-CBC cipher for individual column values.

    Args:
        key: Raw 32-byte key.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(
                f"Invalid AES key: expected {KEY_SIZE} bytes, got {len(key)}"
            )
        self._key = key

    @classmethod
    def from_setting(cls, setting: str) -> FieldCipher:
        """Build a cipher from a ``base64:``-prefixed key setting."""
        return cls(load_key(setting))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt *plaintext* and return the base64 ``iv || ciphertext`` payload.

        Raises:
            EncryptionError: If the underlying cipher fails.
        """
        iv = os.urandom(IV_SIZE)
        try:
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except (ValueError, TypeError) as exc:
            raise EncryptionError("Encryption failed.") from exc
        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, payload: str) -> str:
        """Decrypt a stored payload back to plaintext.

        Raises:
            DecryptionError: If the payload is malformed, was encrypted with
                another key, or does not decode to UTF-8 text.
        """
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise DecryptionError("Invalid encrypted payload.") from None

        if len(data) <= IV_SIZE or (len(data) - IV_SIZE) % IV_SIZE:
            raise DecryptionError("Invalid encrypted payload.")

        iv, ciphertext = data[:IV_SIZE], data[IV_SIZE:]
        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            raw = unpadder.update(padded) + unpadder.finalize()
            return raw.decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            raise DecryptionError("Decryption failed.") from None
