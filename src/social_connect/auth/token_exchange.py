"""OAuth 2.0 token endpoint client.

Handles both grants used by the connection lifecycle:

- ``authorization_code`` (+ PKCE verifier): single attempt only. Providers
  invalidate a code after first use, so a failed exchange is never replayed.
- ``refresh_token``: retried with bounded exponential backoff on
  :class:`ProviderUnavailableError`. Callers must persist whatever refresh
  token comes back, since providers may rotate it on every use.

Requests are form-encoded per RFC 6749. Confidential clients authenticate
with HTTP Basic; public clients send only ``client_id``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import httpx
from structlog import get_logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from social_connect.auth.provider_http import parse_json_object, send_provider_request
from social_connect.config.settings import ProviderSettings, TokenSettings
from social_connect.core.constants import DEFAULT_TOKEN_EXPIRY_SECONDS
from social_connect.core.validators import parse_scopes
from social_connect.exceptions import (
    InvalidConfigurationError,
    ProviderRejectedError,
    ProviderUnavailableError,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenSet:
    """Normalized token endpoint response. Plaintext; never persist as-is."""

    access_token: str = field(repr=False)
    refresh_token: str | None = field(repr=False)
    expires_in_seconds: int
    scopes: list[str] = field(default_factory=list)
    token_type: str | None = None

    @classmethod
    def from_response(cls, payload: dict[str, Any]) -> "TokenSet":
        """Build a TokenSet from a provider payload.

        Raises:
            ProviderRejectedError: If the payload has no access token
        """
        access_token = payload.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise ProviderRejectedError("Token response did not include an access_token")

        try:
            expires_in_seconds = int(payload.get("expires_in", DEFAULT_TOKEN_EXPIRY_SECONDS))
        except (TypeError, ValueError):
            expires_in_seconds = DEFAULT_TOKEN_EXPIRY_SECONDS

        raw_scope = payload.get("scope") or []
        try:
            scopes = parse_scopes(raw_scope)
        except ValueError:
            scopes = []

        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or None,
            expires_in_seconds=max(expires_in_seconds, 0),
            scopes=scopes,
            token_type=payload.get("token_type"),
        )

    def expires_at(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.expires_in_seconds)


class TokenExchangeClient:
    """Exchanges authorization codes and refresh tokens at the token endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        provider: ProviderSettings,
        tokens: TokenSettings | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            http_client: Shared async HTTP client owned by the process
            provider: Provider endpoints and credentials
            tokens: Timeout and retry tuning (defaults if not provided)
        """
        self._http = http_client
        self._provider = provider
        self._tokens = tokens or TokenSettings()

    def _client_auth(self) -> tuple[dict[str, str], httpx.BasicAuth | None]:
        if not self._provider.client_id:
            raise InvalidConfigurationError("OAuth client id is not configured")
        body = {"client_id": self._provider.client_id}
        secret = self._provider.client_secret
        if secret is not None and secret.get_secret_value():
            return body, httpx.BasicAuth(self._provider.client_id, secret.get_secret_value())
        return body, None

    async def _post_token(self, data: dict[str, str], operation: str) -> TokenSet:
        body, auth = self._client_auth()
        body.update(data)
        kwargs: dict[str, Any] = {
            "data": body,
            "headers": {"Accept": "application/json"},
        }
        if auth is not None:
            kwargs["auth"] = auth

        response = await send_provider_request(
            self._http,
            "POST",
            self._provider.token_url,
            operation=operation,
            timeout=self._tokens.http_timeout_seconds,
            **kwargs,
        )
        return TokenSet.from_response(parse_json_object(response, operation))

    async def exchange_code(
        self, code: str, code_verifier: str, redirect_uri: str
    ) -> TokenSet:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback
            code_verifier: PKCE verifier stored at initiate time
            redirect_uri: The exact redirect URI used in the authorize request

        Returns:
            TokenSet with access token, optional refresh token and lifetime

        Raises:
            ProviderRejectedError: Bad/expired code or verifier mismatch
            ProviderUnavailableError: Network failure or 5xx (not retried)
        """
        tokens = await self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            },
            "token_exchange",
        )
        logger.info(
            "oauth_code_exchanged",
            expires_in=tokens.expires_in_seconds,
            has_refresh_token=tokens.refresh_token is not None,
        )
        return tokens

    async def exchange_refresh_token(self, refresh_token: str) -> TokenSet:
        """Exchange a refresh token for a new access token.

        Returns:
            TokenSet; ``refresh_token`` is the rotated token or ``None`` when
            the provider kept the previous one

        Raises:
            ProviderRejectedError: Refresh token invalid or revoked
            ProviderUnavailableError: Still failing after the retry budget
        """

        def before_sleep_log(retry_state: RetryCallState) -> None:
            """Log retry attempts before sleeping."""
            logger.warning(
                "oauth_token_refresh_retry",
                attempt=retry_state.attempt_number,
                max_attempts=self._tokens.max_provider_attempts,
                wait_seconds=retry_state.next_action.sleep
                if retry_state.next_action
                else 0,
                error=str(retry_state.outcome.exception())
                if retry_state.outcome
                else None,
            )

        async for attempt in AsyncRetrying(
            wait=wait_exponential(
                multiplier=self._tokens.retry_backoff_seconds,
                max=self._tokens.retry_backoff_max_seconds,
            ),
            stop=stop_after_attempt(self._tokens.max_provider_attempts),
            retry=retry_if_exception_type(ProviderUnavailableError),
            before_sleep=before_sleep_log,
            reraise=True,
        ):
            with attempt:
                tokens = await self._post_token(
                    {"grant_type": "refresh_token", "refresh_token": refresh_token},
                    "token_refresh",
                )
        logger.info(
            "oauth_token_refreshed",
            expires_in=tokens.expires_in_seconds,
            rotated=tokens.refresh_token is not None and tokens.refresh_token != refresh_token,
        )
        return tokens

    async def revoke_token(self, token: str, token_type_hint: str = "access_token") -> None:
        """Revoke a token at the provider (RFC 7009).

        No-op when the provider has no revocation endpoint configured.
        """
        if not self._provider.revoke_url:
            return
        body, auth = self._client_auth()
        body.update({"token": token, "token_type_hint": token_type_hint})
        kwargs: dict[str, Any] = {"data": body}
        if auth is not None:
            kwargs["auth"] = auth
        await send_provider_request(
            self._http,
            "POST",
            self._provider.revoke_url,
            operation="token_revoke",
            timeout=self._tokens.http_timeout_seconds,
            **kwargs,
        )
        logger.info("oauth_token_revoked", token_type_hint=token_type_hint)
