"""Constants shared across the OAuth connection subsystem.

This module centralizes provider defaults and lifecycle tuning values so that
settings, services and tests agree on a single source of truth.
"""

# Twitter/X OAuth 2.0 endpoints
TWITTER_AUTHORIZE_URL = "https://twitter.com/i/oauth2/authorize"
TWITTER_TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
TWITTER_REVOKE_URL = "https://api.twitter.com/2/oauth2/revoke"
TWITTER_PROFILE_URL = "https://api.twitter.com/2/users/me"
TWITTER_PLATFORM_ID = 1

TWITTER_DEFAULT_SCOPES = [
    "tweet.read",
    "tweet.write",
    "users.read",
    "offline.access",  # Required to receive a refresh token
]

TWITTER_PROFILE_FIELDS = "profile_image_url,description,public_metrics,verified"

# PKCE (RFC 7636 section 4.1)
CODE_VERIFIER_MIN_LENGTH = 43
CODE_VERIFIER_MAX_LENGTH = 128
DEFAULT_CODE_VERIFIER_LENGTH = 64
STATE_TOKEN_BYTES = 32

# Pending authorization state
DEFAULT_STATE_TTL_SECONDS = 600
DEFAULT_STATE_MAX_ENTRIES = 10_000
DEFAULT_STATE_KEY_PREFIX = "social_connect:oauth_state:"

# Token lifecycle
DEFAULT_REFRESH_MARGIN_SECONDS = 60
DEFAULT_MAX_REFRESH_FAILURES = 3
DEFAULT_TOKEN_EXPIRY_SECONDS = 7200  # Twitter access tokens live 2 hours

# Provider I/O
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_PROVIDER_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 1.0
DEFAULT_RETRY_BACKOFF_MAX_SECONDS = 10.0
MAX_ERROR_TEXT_LENGTH = 500

# Background refresh sweep
DEFAULT_SWEEP_INTERVAL_SECONDS = 60
DEFAULT_SWEEP_REFRESH_BUFFER_SECONDS = 300

# AES-256-GCM
ENCRYPTION_KEY_BYTES = 32
ENCRYPTION_NONCE_BYTES = 12
