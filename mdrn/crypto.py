"""Stream encryption (ChaCha20-Poly1305) and key handling (HKDF-SHA256)."""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

NONCE_SIZE = 12
"""Nonce size for ChaCha20-Poly1305 in bytes."""

KEY_SIZE = 32
"""Key size for ChaCha20-Poly1305 in bytes."""

TAG_SIZE = 16
"""Authentication tag size in bytes."""

__all__ = [
    "KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "EncryptionError",
    "KeyDerivationError",
    "StreamCipher",
    "decrypt",
    "derive_stream_key",
    "encrypt",
    "generate_stream_key",
]


class EncryptionError(Exception):
    """Raised when encryption or decryption fails, or a key or nonce is malformed."""


class KeyDerivationError(Exception):
    """Raised when a stream key cannot be derived."""


def _check_nonce(nonce: bytes) -> bytes:
    nonce = bytes(nonce)
    if len(nonce) != NONCE_SIZE:
        raise EncryptionError("invalid nonce size")
    return nonce


class StreamCipher:
    """ChaCha20-Poly1305 cipher bound to one stream key."""

    __slots__ = ("_cipher",)

    def __init__(self, key: bytes) -> None:
        key = bytes(key)
        if len(key) != KEY_SIZE:
            raise EncryptionError("invalid key size")
        self._cipher = ChaCha20Poly1305(key)

    def encrypt(self, plaintext: bytes) -> tuple[bytes, bytes]:
        """Encrypt with a fresh random nonce; return ``(ciphertext, nonce)``."""
        nonce = os.urandom(NONCE_SIZE)
        return self.encrypt_with_nonce(plaintext, nonce), nonce

    def encrypt_with_nonce(self, plaintext: bytes, nonce: bytes) -> bytes:
        """Encrypt with the given nonce."""
        nonce = _check_nonce(nonce)
        try:
            return self._cipher.encrypt(nonce, bytes(plaintext), None)
        except (ValueError, OverflowError) as exc:
            raise EncryptionError("encryption failed") from exc

    def decrypt(self, ciphertext: bytes, nonce: bytes) -> bytes:
        """Decrypt and authenticate ``ciphertext`` with the given nonce."""
        nonce = _check_nonce(nonce)
        try:
            return self._cipher.decrypt(nonce, bytes(ciphertext), None)
        except (InvalidTag, ValueError) as exc:
            raise EncryptionError("decryption failed") from exc


def encrypt(key: bytes, plaintext: bytes) -> tuple[bytes, bytes]:
    """Encrypt ``plaintext`` under ``key``; return ``(ciphertext, nonce)``."""
    return StreamCipher(key).encrypt(plaintext)


def decrypt(key: bytes, ciphertext: bytes, nonce: bytes) -> bytes:
    """Decrypt ``ciphertext`` under ``key`` and ``nonce``."""
    return StreamCipher(key).decrypt(ciphertext, nonce)


def generate_stream_key() -> bytes:
    """Return a new random 32-byte stream key."""
    return os.urandom(KEY_SIZE)


def derive_stream_key(ikm: bytes, salt: bytes | None, info: bytes) -> bytes:
    """Derive a 32-byte stream key with HKDF-SHA256.

    ``ikm`` is the input key material, ``salt`` is optional (typically the
    stream identifier) and ``info`` is the context string.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None if salt is None else bytes(salt),
        info=bytes(info),
    )
    try:
        return hkdf.derive(bytes(ikm))
    except (ValueError, TypeError) as exc:
        raise KeyDerivationError("key derivation failed") from exc