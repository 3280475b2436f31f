"""OAuth 2.0 PKCE building blocks: verifiers, state, URLs, tokens and encryption."""

from social_connect.auth.authorize_url import build_authorization_url
from social_connect.auth.cipher import EncryptedToken, TokenCipher, generate_key
from social_connect.auth.pkce import (
    PKCEPair,
    derive_challenge,
    generate_pkce_pair,
    generate_state,
    generate_verifier,
)
from social_connect.auth.profile import ProfileClient, ProviderProfile
from social_connect.auth.state_store import (
    InMemoryStateStore,
    OAuthStateStore,
    PendingAuthorization,
    RedisStateStore,
)
from social_connect.auth.token_exchange import TokenExchangeClient, TokenSet


__all__ = [
    "EncryptedToken",
    "InMemoryStateStore",
    "OAuthStateStore",
    "PKCEPair",
    "PendingAuthorization",
    "ProfileClient",
    "ProviderProfile",
    "RedisStateStore",
    "TokenCipher",
    "TokenExchangeClient",
    "TokenSet",
    "build_authorization_url",
    "derive_challenge",
    "generate_key",
    "generate_pkce_pair",
    "generate_state",
    "generate_verifier",
]
