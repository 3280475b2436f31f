"""Authorization endpoint URL assembly."""

from collections.abc import Sequence
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from social_connect.auth.pkce import CODE_CHALLENGE_METHOD
from social_connect.exceptions import InvalidConfigurationError


def build_authorization_url(
    base_authorize_url: str,
    client_id: str,
    redirect_uri: str,
    scopes: Sequence[str],
    state: str,
    code_challenge: str,
) -> str:
    """Compose the provider authorization URL for a PKCE request.

    Query parameters already present on ``base_authorize_url`` are kept and
    the OAuth parameters are appended after them. Scopes are space-joined
    and percent-encoded as ``%20``.

    Args:
        base_authorize_url: Provider authorize endpoint
        client_id: OAuth client id
        redirect_uri: Callback URL registered with the provider
        scopes: Requested scopes
        state: CSRF state value
        code_challenge: S256 challenge derived from the verifier

    Returns:
        Absolute authorization URL

    Raises:
        InvalidConfigurationError: If the base URL is not an absolute http(s) URL
            or the client id is empty
    """
    parts = urlsplit(base_authorize_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidConfigurationError(
            f"Malformed authorization endpoint: {base_authorize_url!r}"
        )
    if not client_id:
        raise InvalidConfigurationError("OAuth client id is not configured")

    params = parse_qsl(parts.query, keep_blank_values=True)
    params.extend(
        [
            ("response_type", "code"),
            ("client_id", client_id),
            ("redirect_uri", redirect_uri),
            ("scope", " ".join(scopes)),
            ("state", state),
            ("code_challenge", code_challenge),
            ("code_challenge_method", CODE_CHALLENGE_METHOD),
        ]
    )
    query = urlencode(params, quote_via=quote)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))
