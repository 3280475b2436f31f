"""Shared fixtures: a scriptable fake provider, temp databases and services."""

import asyncio
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from social_connect.auth.cipher import TokenCipher, generate_key
from social_connect.auth.profile import ProfileClient
from social_connect.auth.state_store import InMemoryStateStore
from social_connect.auth.token_exchange import TokenExchangeClient
from social_connect.config.settings import ProviderSettings, TokenSettings
from social_connect.db.engine import Database
from social_connect.db.repositories import SocialAccountRepository
from social_connect.services.account_linker import AccountLinker
from social_connect.services.token_lifecycle import TokenLifecycleManager


AUTHORIZE_URL = "https://provider.example.com/i/oauth2/authorize"
TOKEN_URL = "https://api.provider.example.com/2/oauth2/token"
REVOKE_URL = "https://api.provider.example.com/2/oauth2/revoke"
PROFILE_URL = "https://api.provider.example.com/2/users/me"
PLATFORM_ID = 2


class FakeProvider:
    """In-process OAuth provider behind ``httpx.MockTransport``.

    Token responses are numbered: the code exchange issues AT1/RT1, the
    n-th refresh issues AT{n+1}/RT{n+1}.
    """

    def __init__(self) -> None:
        self.code_exchanges = 0
        self.refreshes = 0
        self.revocations: list[dict[str, str]] = []
        self.profile_calls = 0
        self.expires_in: int = 3600
        self.rotate_refresh_token = True
        self.code_status: int = 200
        self.refresh_statuses: list[int] = []
        self.refresh_delay: float = 0.0
        self.revoke_status: int = 200
        self.provider_account_id = "tw-42"
        self.token_requests: list[dict[str, str]] = []
        self.token_auth_headers: list[str | None] = []

    def _token_body(self, number: int, rotate: bool = True) -> dict[str, Any]:
        body: dict[str, Any] = {
            "token_type": "bearer",
            "access_token": f"AT{number}",
            "expires_in": self.expires_in,
            "scope": "tweet.read users.read offline.access",
        }
        if rotate:
            body["refresh_token"] = f"RT{number}"
        return body

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url).split("?")[0]
        if url == TOKEN_URL:
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.token_requests.append(form)
            self.token_auth_headers.append(request.headers.get("authorization"))
            if form.get("grant_type") == "authorization_code":
                self.code_exchanges += 1
                if self.code_status != 200:
                    return httpx.Response(self.code_status, json={"error": "invalid_grant"})
                return httpx.Response(200, json=self._token_body(1))
            return await self._refresh()
        if url == REVOKE_URL:
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.revocations.append(form)
            return httpx.Response(self.revoke_status, json={"revoked": True})
        if url == PROFILE_URL:
            self.profile_calls += 1
            return httpx.Response(
                200,
                json={
                    "data": {
                        "id": self.provider_account_id,
                        "username": "alice",
                        "name": "Alice Example",
                        "profile_image_url": "https://img.example.com/alice.png",
                        "verified": True,
                        "public_metrics": {"followers_count": 120, "following_count": 7},
                    }
                },
            )
        return httpx.Response(404, json={"error": "not_found"})

    async def _refresh(self) -> httpx.Response:
        self.refreshes += 1
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        if self.refresh_statuses:
            code = self.refresh_statuses.pop(0)
            if code != 200:
                return httpx.Response(code, json={"error": "invalid_grant"})
        return httpx.Response(
            200, json=self._token_body(self.refreshes + 1, self.rotate_refresh_token)
        )


class FakeRedis:
    """Dict-backed stand-in for the ``redis.asyncio`` calls the state store uses."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expirations: dict[str, int] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def set(
        self, key: str, value: str, nx: bool = False, ex: int | None = None
    ) -> bool | None:
        self._check()
        if nx and key in self.data:
            return None
        self.data[key] = value
        if ex is not None:
            self.expirations[key] = ex
        return True

    async def get(self, key: str) -> str | None:
        self._check()
        return self.data.get(key)

    async def getdel(self, key: str) -> str | None:
        self._check()
        self.expirations.pop(key, None)
        return self.data.pop(key, None)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def provider_settings() -> ProviderSettings:
    return ProviderSettings(
        name="twitter",
        platform_id=PLATFORM_ID,
        client_id="client-123",
        authorize_url=AUTHORIZE_URL,
        token_url=TOKEN_URL,
        revoke_url=REVOKE_URL,
        profile_url=PROFILE_URL,
        callback_base_url="https://app.example.com",
    )


@pytest.fixture
def token_settings() -> TokenSettings:
    return TokenSettings(
        retry_backoff_seconds=0,
        retry_backoff_max_seconds=0,
        max_provider_attempts=3,
        max_refresh_failures=3,
        http_timeout_seconds=5,
    )


@pytest.fixture
def encryption_key() -> str:
    return generate_key()


@pytest.fixture
def cipher(encryption_key) -> TokenCipher:
    return TokenCipher.from_secret(encryption_key)


@pytest.fixture
def http_client(fake_provider) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_provider.handler))


@pytest.fixture
async def database(tmp_path):
    """Initialized database in a temporary file."""
    db = Database(tmp_path / "social_connect.db")
    await db.init()
    yield db
    await db.dispose()


@pytest.fixture
def repository(database) -> SocialAccountRepository:
    return SocialAccountRepository(database)


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def token_client(http_client, provider_settings, token_settings) -> TokenExchangeClient:
    return TokenExchangeClient(http_client, provider_settings, token_settings)


@pytest.fixture
def profile_client(http_client, provider_settings, token_settings) -> ProfileClient:
    return ProfileClient(http_client, provider_settings, token_settings)


@pytest.fixture
def linker(repository, cipher, profile_client) -> AccountLinker:
    return AccountLinker(repository, cipher, profile_client)


@pytest.fixture
def manager(
    provider_settings, state_store, token_client, linker, repository, token_settings
) -> TokenLifecycleManager:
    return TokenLifecycleManager(
        provider=provider_settings,
        state_store=state_store,
        token_client=token_client,
        linker=linker,
        repository=repository,
        token_settings=token_settings,
        state_ttl_seconds=600,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
