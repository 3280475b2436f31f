"""Provider profile lookup used when linking an account."""

from dataclasses import dataclass, field
from typing import Any

import httpx
from structlog import get_logger

from social_connect.auth.provider_http import parse_json_object, send_provider_request
from social_connect.config.settings import ProviderSettings, TokenSettings
from social_connect.core.constants import TWITTER_PROFILE_FIELDS
from social_connect.exceptions import ProviderRejectedError


logger = get_logger(__name__)


@dataclass(frozen=True)
class ProviderProfile:
    """Profile of the provider-side account that granted access."""

    provider_account_id: str
    username: str | None = None
    display_name: str | None = None
    profile_image_url: str | None = None
    follower_count: int = 0
    following_count: int = 0
    verified: bool = False
    description: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_twitter(cls, payload: dict[str, Any]) -> "ProviderProfile":
        """Build a profile from a Twitter v2 ``users/me`` response.

        Raises:
            ProviderRejectedError: If the response has no user id
        """
        user = payload.get("data") or {}
        user_id = user.get("id")
        if not user_id:
            raise ProviderRejectedError("Profile response did not include a user id")
        metrics = user.get("public_metrics") or {}
        return cls(
            provider_account_id=str(user_id),
            username=user.get("username"),
            display_name=user.get("name"),
            profile_image_url=user.get("profile_image_url"),
            follower_count=int(metrics.get("followers_count") or 0),
            following_count=int(metrics.get("following_count") or 0),
            verified=bool(user.get("verified", False)),
            description=user.get("description"),
            extra={"tweet_count": metrics.get("tweet_count")},
        )


class ProfileClient:
    """Fetches the authenticated user's profile with a bearer token."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        provider: ProviderSettings,
        tokens: TokenSettings | None = None,
    ) -> None:
        self._http = http_client
        self._provider = provider
        self._tokens = tokens or TokenSettings()

    async def fetch_profile(self, access_token: str) -> ProviderProfile:
        """Fetch the profile for ``access_token``.

        Raises:
            ProviderRejectedError: Token not accepted or malformed profile
            ProviderUnavailableError: Network failure, timeout or 5xx
        """
        response = await send_provider_request(
            self._http,
            "GET",
            self._provider.profile_url,
            operation="profile_fetch",
            timeout=self._tokens.http_timeout_seconds,
            params={"user.fields": TWITTER_PROFILE_FIELDS},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        profile = ProviderProfile.from_twitter(parse_json_object(response, "profile_fetch"))
        logger.debug(
            "provider_profile_fetched",
            provider_account_id=profile.provider_account_id,
            username=profile.username,
        )
        return profile
