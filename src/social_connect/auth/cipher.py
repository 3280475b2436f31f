"""AES-256-GCM encryption for OAuth tokens at rest.

Every call to :meth:`TokenCipher.encrypt` draws a fresh 96-bit nonce, which is
stored next to the ciphertext as the record IV. The GCM tag is appended to
the ciphertext, so truncation, bit flips and key changes all surface as
:class:`DecryptionFailedError`.
"""

import base64
import binascii
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from structlog import get_logger

from social_connect.core.constants import ENCRYPTION_KEY_BYTES, ENCRYPTION_NONCE_BYTES
from social_connect.exceptions import DecryptionFailedError, InvalidConfigurationError


logger = get_logger(__name__)


@dataclass(frozen=True)
class EncryptedToken:
    """Ciphertext and IV, both URL-safe base64 encoded."""

    ciphertext: str
    iv: str


def generate_key() -> str:
    """Generate a new token-encryption key.

    Returns:
        URL-safe base64 encoding of 32 random bytes
    """
    return base64.urlsafe_b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value.encode("ascii"))


class TokenCipher:
    """Symmetric authenticated encryption with a process-wide key."""

    def __init__(self, key: bytes) -> None:
        """Initialize the cipher.

        Args:
            key: 32 raw key bytes

        Raises:
            InvalidConfigurationError: If the key has the wrong length
        """
        if len(key) != ENCRYPTION_KEY_BYTES:
            raise InvalidConfigurationError(
                f"Token encryption key must be {ENCRYPTION_KEY_BYTES} bytes, got {len(key)}"
            )
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_secret(cls, secret: str | None) -> "TokenCipher":
        """Build a cipher from the configured base64 key.

        Raises:
            InvalidConfigurationError: If the key is missing or not valid base64
        """
        if not secret:
            raise InvalidConfigurationError("Token encryption key is not configured")
        try:
            key = _b64decode(secret)
        except (binascii.Error, ValueError) as e:
            raise InvalidConfigurationError(
                "Token encryption key is not valid URL-safe base64"
            ) from e
        return cls(key)

    def encrypt(self, plaintext: str, associated_data: bytes | None = None) -> EncryptedToken:
        """Encrypt a token with a fresh random IV.

        Args:
            plaintext: Token to protect
            associated_data: Optional context bound to the ciphertext; the same
                value must be passed to :meth:`decrypt`

        Returns:
            EncryptedToken with ciphertext (including GCM tag) and IV
        """
        nonce = os.urandom(ENCRYPTION_NONCE_BYTES)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), associated_data)
        return EncryptedToken(
            ciphertext=base64.urlsafe_b64encode(ciphertext).decode("ascii"),
            iv=base64.urlsafe_b64encode(nonce).decode("ascii"),
        )

    def decrypt(
        self, ciphertext: str, iv: str, associated_data: bytes | None = None
    ) -> str:
        """Decrypt a token.

        Raises:
            DecryptionFailedError: If the key changed, the data was truncated or
                tampered with, or the stored values are not valid base64
        """
        try:
            nonce = _b64decode(iv)
            if len(nonce) != ENCRYPTION_NONCE_BYTES:
                raise ValueError("unexpected IV length")
            plaintext = self._aesgcm.decrypt(nonce, _b64decode(ciphertext), associated_data)
            return plaintext.decode("utf-8")
        except (InvalidTag, binascii.Error, ValueError, UnicodeDecodeError) as e:
            logger.error("token_decryption_failed", error_type=type(e).__name__)
            raise DecryptionFailedError() from e
