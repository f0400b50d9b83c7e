"""
Secret encryption at rest.

Signing secrets for destinations are stored as an AES-256-GCM envelope
``base64(iv):base64(tag):base64(ciphertext)``. The key is derived from the
``ENCRYPTION_MASTER_KEY`` with PBKDF2-HMAC-SHA256.
"""

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from eventrelay.core.config import settings
from eventrelay.core.logger import get_logger

logger = get_logger("crypto")

KDF_SALT = b"runl-api-salt"
KDF_ITERATIONS = 10000
KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16
MIN_MASTER_KEY_LENGTH = 32

DEVELOPMENT_MASTER_KEY = "development-only-key-do-not-use-in-production"


class CryptoError(Exception):
    """Raised when a secret cannot be encrypted or decrypted."""


class CryptoUtil:
    """Encrypts and decrypts short secrets with a key derived from a master secret."""

    def __init__(self, master_key: str):
        if not master_key or not isinstance(master_key, str) or len(master_key) < MIN_MASTER_KEY_LENGTH:
            raise CryptoError(f"Invalid master key: must be at least {MIN_MASTER_KEY_LENGTH} characters")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=KDF_SALT,
            iterations=KDF_ITERATIONS,
        )
        self._aead = AESGCM(kdf.derive(master_key.encode("utf-8")))

    def encrypt(self, text: Optional[str]) -> Optional[str]:
        """Encrypt ``text`` into the ``iv:tag:ciphertext`` envelope. Empty input is returned as-is."""
        if not text:
            return text

        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, text.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ":".join(
            base64.b64encode(part).decode("ascii") for part in (iv, tag, ciphertext)
        )

    def decrypt(self, envelope: Optional[str]) -> Optional[str]:
        """Decrypt an envelope produced by :meth:`encrypt`."""
        if not envelope:
            return envelope

        parts = envelope.split(":")
        if len(parts) != 3:
            raise CryptoError("Invalid encrypted text format")

        try:
            iv, tag, ciphertext = (base64.b64decode(part, validate=True) for part in parts)
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except (binascii.Error, ValueError, InvalidTag) as e:
            logger.error(f"Error decrypting data: {type(e).__name__}")
            raise CryptoError("Decryption failed") from e

        return plaintext.decode("utf-8")


_crypto_util: Optional[CryptoUtil] = None


def get_crypto_util() -> CryptoUtil:
    """Return the process-wide :class:`CryptoUtil`, building it on first use."""
    global _crypto_util
    if _crypto_util is None:
        master_key = settings.ENCRYPTION_MASTER_KEY
        if not master_key:
            if not settings.IS_DEVELOPMENT:
                raise CryptoError("ENCRYPTION_MASTER_KEY is not configured")
            logger.warning("ENCRYPTION_MASTER_KEY not set! Using a temporary key - NOT SECURE FOR PRODUCTION")
            master_key = DEVELOPMENT_MASTER_KEY
        _crypto_util = CryptoUtil(master_key)
    return _crypto_util
