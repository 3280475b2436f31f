"""Tests for the in-memory and Redis pending-state stores."""

import asyncio

import pytest

from social_connect.auth.state_store import (
    InMemoryStateStore,
    OAuthStateStore,
    PendingAuthorization,
    RedisStateStore,
)
from social_connect.exceptions import StateConflictError, StateStoreUnavailableError


class FakeTimer:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _pending(state: str = "state-1", user_id: str = "user-1") -> PendingAuthorization:
    return PendingAuthorization(
        state=state,
        user_id=user_id,
        platform_id=2,
        code_verifier="v" * 64,
        callback_url="https://app/x/callback",
        requested_scopes=["read"],
    )


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def memory_store(timer):
    return InMemoryStateStore(maxsize=100, timer=timer)


@pytest.fixture
def redis_store(fake_redis):
    return RedisStateStore(fake_redis, key_prefix="test:state:")


@pytest.fixture(params=["memory", "redis"])
def store(request, memory_store, redis_store):
    return memory_store if request.param == "memory" else redis_store


def test_backends_satisfy_protocol(memory_store, redis_store):
    assert isinstance(memory_store, OAuthStateStore)
    assert isinstance(redis_store, OAuthStateStore)


@pytest.mark.asyncio
async def test_take_returns_original_then_none(store):
    pending = _pending()
    await store.put(pending, 600)

    taken = await store.take_and_delete("state-1")
    assert taken == pending
    assert taken.code_verifier == "v" * 64
    assert await store.take_and_delete("state-1") is None


@pytest.mark.asyncio
async def test_peek_does_not_consume(store):
    await store.put(_pending(), 600)

    assert (await store.peek("state-1")).user_id == "user-1"
    assert await store.take_and_delete("state-1") is not None


@pytest.mark.asyncio
async def test_unknown_state(store):
    assert await store.take_and_delete("missing") is None
    assert await store.peek("missing") is None


@pytest.mark.asyncio
async def test_duplicate_state_conflicts(store):
    await store.put(_pending(), 600)
    with pytest.raises(StateConflictError):
        await store.put(_pending(user_id="someone-else"), 600)
    assert (await store.take_and_delete("state-1")).user_id == "user-1"


@pytest.mark.asyncio
async def test_concurrent_take_has_single_winner(store):
    await store.put(_pending(), 600)

    results = await asyncio.gather(*(store.take_and_delete("state-1") for _ in range(10)))

    assert sum(result is not None for result in results) == 1


@pytest.mark.asyncio
async def test_memory_entries_expire_after_ttl(memory_store, timer):
    await memory_store.put(_pending(), 600)
    timer.now += 599
    assert await memory_store.peek("state-1") is not None

    timer.now += 2
    assert await memory_store.peek("state-1") is None
    assert await memory_store.take_and_delete("state-1") is None


@pytest.mark.asyncio
async def test_memory_ttl_is_per_entry(memory_store, timer):
    await memory_store.put(_pending("short"), 30)
    await memory_store.put(_pending("long"), 600)
    timer.now += 60

    assert await memory_store.take_and_delete("short") is None
    assert await memory_store.take_and_delete("long") is not None


@pytest.mark.asyncio
async def test_memory_state_reusable_after_expiry(memory_store, timer):
    await memory_store.put(_pending(), 30)
    timer.now += 31
    await memory_store.put(_pending(), 30)
    assert len(memory_store) == 1


@pytest.mark.asyncio
async def test_redis_uses_prefix_nx_and_ttl(redis_store, fake_redis):
    await redis_store.put(_pending(), 600)

    assert list(fake_redis.data) == ["test:state:state-1"]
    assert fake_redis.expirations["test:state:state-1"] == 600


@pytest.mark.asyncio
async def test_redis_outage_is_unavailable(redis_store, fake_redis):
    fake_redis.fail = True
    with pytest.raises(StateStoreUnavailableError):
        await redis_store.put(_pending(), 600)
    with pytest.raises(StateStoreUnavailableError):
        await redis_store.take_and_delete("state-1")


@pytest.mark.asyncio
async def test_redis_corrupt_entry_is_treated_as_missing(redis_store, fake_redis):
    fake_redis.data["test:state:state-1"] = "{not json"
    assert await redis_store.take_and_delete("state-1") is None


@pytest.mark.asyncio
async def test_redis_close(redis_store, fake_redis):
    await redis_store.close()
    assert fake_redis.closed
