"""Process-level wiring of clients and services.

Nothing here opens a connection at import time. The owner of a
:class:`ServiceContainer` (the FastAPI lifespan or a CLI command) calls
:meth:`ServiceContainer.start` and :meth:`ServiceContainer.close`.
"""

import httpx
from redis.asyncio import Redis
from structlog import get_logger

from social_connect.auth.cipher import TokenCipher
from social_connect.auth.profile import ProfileClient
from social_connect.auth.state_store import InMemoryStateStore, OAuthStateStore, RedisStateStore
from social_connect.auth.token_exchange import TokenExchangeClient
from social_connect.config.settings import Settings, StateStoreSettings
from social_connect.db.engine import Database
from social_connect.db.repositories import SocialAccountRepository
from social_connect.services.account_linker import AccountLinker
from social_connect.services.refresh_scheduler import TokenRefreshScheduler
from social_connect.services.token_lifecycle import TokenLifecycleManager


logger = get_logger(__name__)


def create_state_store(settings: StateStoreSettings, socket_timeout: float) -> OAuthStateStore:
    """Build the configured pending-state backend."""
    if settings.backend == "redis":
        client = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return RedisStateStore(client, key_prefix=settings.key_prefix)
    return InMemoryStateStore(maxsize=settings.max_entries)


class ServiceContainer:
    """Owns every long-lived client and the services built on them."""

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        state_store: OAuthStateStore | None = None,
        database: Database | None = None,
    ) -> None:
        """Build the object graph.

        Args:
            settings: Application settings
            http_client: Provider HTTP client; created (and closed) here if omitted
            state_store: Pending-state backend; built from settings if omitted
            database: Account database; built from settings if omitted
        """
        self.settings = settings
        timeout = settings.tokens.http_timeout_seconds

        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.state_store = state_store or create_state_store(settings.state_store, timeout)
        self.database = database or Database(settings.database.path, timeout_seconds=timeout)

        secret = settings.security.token_encryption_key
        self.cipher = TokenCipher.from_secret(secret.get_secret_value() if secret else None)
        self.repository = SocialAccountRepository(self.database)
        self.token_client = TokenExchangeClient(
            self.http_client, settings.provider, settings.tokens
        )
        self.profile_client = ProfileClient(self.http_client, settings.provider, settings.tokens)
        self.linker = AccountLinker(self.repository, self.cipher, self.profile_client)
        self.manager = TokenLifecycleManager(
            provider=settings.provider,
            state_store=self.state_store,
            token_client=self.token_client,
            linker=self.linker,
            repository=self.repository,
            token_settings=settings.tokens,
            state_ttl_seconds=settings.state_store.ttl_seconds,
        )
        self.scheduler = TokenRefreshScheduler(
            self.manager,
            check_interval=settings.scheduler.interval_seconds,
            refresh_buffer=settings.scheduler.refresh_buffer_seconds,
        )

    async def start(self, *, with_scheduler: bool = False) -> None:
        """Open the database and optionally start the refresh scheduler."""
        await self.database.init()
        if with_scheduler and self.settings.scheduler.enabled:
            await self.scheduler.start()
        logger.info(
            "service_container_started",
            provider=self.settings.provider.name,
            state_backend=self.settings.state_store.backend,
            scheduler=self.scheduler.running,
        )

    async def close(self) -> None:
        """Stop background work and release every client."""
        await self.scheduler.stop()
        await self.state_store.close()
        if self._owns_http_client:
            await self.http_client.aclose()
        await self.database.dispose()
        logger.info("service_container_closed")
