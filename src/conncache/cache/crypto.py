"""Encryption of persisted cache entries and cache filename derivation.

Entries are encrypted with AES-256-GCM. The nonce is derived from the
plaintext and the key string, so encrypting the same plaintext with the same
key always produces the same ciphertext. Filename derivation relies on this:
the cache file for a key must have the same name in every process. The
derived nonce is stored in front of the ciphertext so decryption does not
need the plaintext to rebuild it.

Consequence of the derived nonce: a key string must only ever protect the
entries of a single cache key.
"""

import base64
import binascii
import hashlib
import logging
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from conncache.cache.keys import CacheKey

logger = logging.getLogger(__name__)

AES_KEY_SIZE = 32  # bytes, AES-256
NONCE_SIZE = 12  # bytes, recommended GCM nonce length
TAG_SIZE = 16  # bytes, 128 bit authentication tag
DEFAULT_FILENAME_EXTENSION = "txt"


def _is_blank(text: Optional[str]) -> bool:
    return text is None or not text.strip()


def derive_key(encryption_key: str) -> bytes:
    """Derive the AES key from a key string."""
    digest = hashlib.sha256(encryption_key.encode("utf-8")).digest()
    return digest[:AES_KEY_SIZE]


def derive_nonce(plaintext: str, encryption_key: str) -> bytes:
    """Derive the deterministic GCM nonce for a plaintext/key pair."""
    digest = hashlib.sha256((plaintext + encryption_key).encode("utf-8")).digest()
    return digest[:NONCE_SIZE]


def encrypt(plaintext: Optional[str], encryption_key: Optional[str]) -> Optional[str]:
    """Encrypt text with a key string.

    Args:
        plaintext: Text to encrypt
        encryption_key: Secret key string

    Returns:
        Base64 encoded nonce + ciphertext + tag, or None if either argument is
        blank or encryption fails
    """
    if _is_blank(plaintext) or _is_blank(encryption_key):
        logger.debug("Text to encrypt or encryption key is blank, cannot encrypt")
        return None

    try:
        nonce = derive_nonce(plaintext, encryption_key)
        ciphertext = AESGCM(derive_key(encryption_key)).encrypt(
            nonce, plaintext.encode("utf-8"), None
        )
    except (ValueError, TypeError, UnicodeEncodeError) as e:
        logger.warning(f"Failed to encrypt text: {type(e).__name__}")
        return None

    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt(
    encrypted_text: Optional[str], encryption_key: Optional[str]
) -> Optional[str]:
    """Decrypt text produced by :func:`encrypt`.

    Args:
        encrypted_text: Base64 encoded payload
        encryption_key: Secret key string

    Returns:
        The original plaintext, or None if the payload is blank, malformed,
        tampered with, or was encrypted with another key
    """
    if _is_blank(encrypted_text) or _is_blank(encryption_key):
        logger.debug("Text to decrypt or encryption key is blank, cannot decrypt")
        return None

    try:
        payload = base64.b64decode(encrypted_text.strip(), validate=True)
    except (binascii.Error, ValueError):
        logger.debug("Encrypted text is not valid base64")
        return None

    if len(payload) < NONCE_SIZE + TAG_SIZE:
        logger.debug("Encrypted text is too short")
        return None

    nonce, ciphertext = payload[:NONCE_SIZE], payload[NONCE_SIZE:]
    try:
        plaintext = AESGCM(derive_key(encryption_key)).decrypt(nonce, ciphertext, None)
        return plaintext.decode("utf-8")
    except InvalidTag:
        logger.debug("Authentication tag mismatch, wrong key or tampered text")
        return None
    except (ValueError, UnicodeDecodeError) as e:
        logger.debug(f"Failed to decrypt text: {type(e).__name__}")
        return None


def filename_for(
    cache_key: CacheKey, extension: str = DEFAULT_FILENAME_EXTENSION
) -> Optional[str]:
    """Derive the cache filename for a key.

    The key value is encrypted with the key's own secret and the result is
    re-encoded with the url-safe base64 alphabet, since standard base64 may
    contain "/".

    Args:
        cache_key: Key to derive the filename for
        extension: Filename extension, without the dot

    Returns:
        Filename, or None if the value cannot be encrypted (for example a
        blank encryption key)
    """
    encrypted_value = encrypt(cache_key.value, cache_key.encryption_key)
    if encrypted_value is None:
        logger.error("Failed to generate the cache filename since encryption failed")
        return None

    safe_name = base64.urlsafe_b64encode(base64.b64decode(encrypted_value))
    return f"{safe_name.decode('ascii').rstrip('=')}.{extension}"
