"""PKCE (Proof Key for Code Exchange) utilities for OAuth2.

Implements RFC 7636 for the authorization code flow:

- code_verifier: 43-128 characters from the unreserved set ``[A-Za-z0-9-._~]``
- code_challenge: Base64-URL(SHA256(code_verifier)) without padding
- code_challenge_method: always S256
"""

import base64
import hashlib
import secrets
import string
from typing import NamedTuple

from social_connect.core.constants import (
    CODE_VERIFIER_MAX_LENGTH,
    CODE_VERIFIER_MIN_LENGTH,
    DEFAULT_CODE_VERIFIER_LENGTH,
    STATE_TOKEN_BYTES,
)


UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"

CODE_CHALLENGE_METHOD = "S256"


class PKCEPair(NamedTuple):
    """PKCE verifier/challenge pair for one authorization request."""

    code_verifier: str  # Secret, never leaves the server
    code_challenge: str  # Sent to the provider in the authorize URL


def generate_verifier(length: int = DEFAULT_CODE_VERIFIER_LENGTH) -> str:
    """Generate a code verifier from a cryptographically secure source.

    Args:
        length: Number of characters, between 43 and 128

    Returns:
        Random verifier drawn from the unreserved character set

    Raises:
        ValueError: If length is outside the RFC 7636 range
    """
    if not CODE_VERIFIER_MIN_LENGTH <= length <= CODE_VERIFIER_MAX_LENGTH:
        raise ValueError(
            f"Code verifier length must be between {CODE_VERIFIER_MIN_LENGTH} "
            f"and {CODE_VERIFIER_MAX_LENGTH}, got {length}"
        )
    return "".join(secrets.choice(UNRESERVED_CHARACTERS) for _ in range(length))


def derive_challenge(verifier: str) -> str:
    """Derive the S256 code challenge for a verifier."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_pkce_pair(length: int = DEFAULT_CODE_VERIFIER_LENGTH) -> PKCEPair:
    """Generate a verifier and its S256 challenge."""
    verifier = generate_verifier(length)
    return PKCEPair(code_verifier=verifier, code_challenge=derive_challenge(verifier))


def generate_state() -> str:
    """Generate an opaque CSRF state value, independent of any verifier.

    Returns:
        32 random bytes, Base64-URL encoded (43 characters)
    """
    return secrets.token_urlsafe(STATE_TOKEN_BYTES)
