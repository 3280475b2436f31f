"""Pending OAuth authorization storage.

A :class:`PendingAuthorization` lives under its random ``state`` value from
``initiate`` until the provider redirects back. Entries are single-use
(:meth:`OAuthStateStore.take_and_delete` is atomic) and expire through the
backing store's native TTL, so nothing is retrievable once the TTL elapses.

Two backends are provided:

- :class:`InMemoryStateStore` for development and single-process deployments.
- :class:`RedisStateStore` for deployments where initiate and callback may be
  served by different instances.
"""

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from cachetools import TLRUCache
from pydantic import BaseModel, Field, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError
from structlog import get_logger

from social_connect.core.constants import (
    DEFAULT_STATE_KEY_PREFIX,
    DEFAULT_STATE_MAX_ENTRIES,
    DEFAULT_STATE_TTL_SECONDS,
)
from social_connect.exceptions import StateConflictError, StateStoreUnavailableError
from social_connect.utils.time import utc_now


logger = get_logger(__name__)


class PendingAuthorization(BaseModel):
    """Context of one in-flight connect attempt."""

    state: str
    user_id: str
    platform_id: int
    code_verifier: str = Field(repr=False)
    callback_url: str
    requested_scopes: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.ttl_seconds)


@runtime_checkable
class OAuthStateStore(Protocol):
    """Protocol for single-use, expiring OAuth state storage."""

    async def put(self, pending: PendingAuthorization, ttl_seconds: int) -> None:
        """Store ``pending`` under ``pending.state``.

        Raises:
            StateConflictError: If the state is already present
            StateStoreUnavailableError: If the store cannot be reached
        """
        ...

    async def take_and_delete(self, state: str) -> PendingAuthorization | None:
        """Atomically fetch and remove a pending authorization.

        Returns ``None`` when the state is unknown, expired or already taken.
        """
        ...

    async def peek(self, state: str) -> PendingAuthorization | None:
        """Fetch a pending authorization without consuming it."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


class InMemoryStateStore:
    """In-process :class:`OAuthStateStore` backed by a ``TLRUCache``.

    Each entry carries its own time-to-use, so the TTL passed to :meth:`put`
    is honored per state. Not shared across processes.
    """

    def __init__(
        self,
        maxsize: int = DEFAULT_STATE_MAX_ENTRIES,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: TLRUCache[str, tuple[PendingAuthorization, float]] = TLRUCache(
            maxsize=maxsize,
            ttu=lambda _key, value, now: now + value[1],
            timer=timer,
        )
        self._lock = asyncio.Lock()

    async def put(self, pending: PendingAuthorization, ttl_seconds: int) -> None:
        async with self._lock:
            if pending.state in self._cache:
                raise StateConflictError()
            self._cache[pending.state] = (pending, float(ttl_seconds))

    async def take_and_delete(self, state: str) -> PendingAuthorization | None:
        async with self._lock:
            entry = self._cache.pop(state, None)
        return entry[0] if entry else None

    async def peek(self, state: str) -> PendingAuthorization | None:
        async with self._lock:
            entry = self._cache.get(state)
        return entry[0] if entry else None

    async def close(self) -> None:
        async with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)


class RedisStateStore:
    """Shared :class:`OAuthStateStore` on Redis.

    ``SET NX EX`` rejects duplicate states and gives native expiry;
    ``GETDEL`` (Redis 6.2+) makes consumption atomic across instances.
    """

    def __init__(self, client: Redis, key_prefix: str = DEFAULT_STATE_KEY_PREFIX) -> None:
        self._client = client
        self._key_prefix = key_prefix

    def _key(self, state: str) -> str:
        return f"{self._key_prefix}{state}"

    async def put(self, pending: PendingAuthorization, ttl_seconds: int) -> None:
        try:
            stored = await self._client.set(
                self._key(pending.state),
                pending.model_dump_json(),
                nx=True,
                ex=ttl_seconds,
            )
        except RedisError as e:
            logger.error("oauth_state_store_write_failed", error=str(e))
            raise StateStoreUnavailableError() from e
        if not stored:
            raise StateConflictError()

    async def take_and_delete(self, state: str) -> PendingAuthorization | None:
        try:
            raw = await self._client.getdel(self._key(state))
        except RedisError as e:
            logger.error("oauth_state_store_read_failed", error=str(e))
            raise StateStoreUnavailableError(
                "Connection failed or expired, please retry"
            ) from e
        return self._decode(state, raw)

    async def peek(self, state: str) -> PendingAuthorization | None:
        try:
            raw = await self._client.get(self._key(state))
        except RedisError as e:
            logger.error("oauth_state_store_read_failed", error=str(e))
            raise StateStoreUnavailableError() from e
        return self._decode(state, raw)

    async def close(self) -> None:
        await self._client.aclose()

    def _decode(self, state: str, raw: str | bytes | None) -> PendingAuthorization | None:
        if raw is None:
            return None
        try:
            return PendingAuthorization.model_validate_json(raw)
        except ValidationError:
            logger.error("oauth_state_corrupt", state_prefix=state[:8])
            return None


__all__ = [
    "InMemoryStateStore",
    "OAuthStateStore",
    "PendingAuthorization",
    "RedisStateStore",
]
