"""Tests for SocialAccountRepository."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from social_connect.db.engine import Database
from social_connect.db.models import ConnectionStatus, SocialAccount
from social_connect.exceptions import AccountStoreUnavailableError
from social_connect.utils.time import as_utc, utc_now


async def _create(repository, user_id="user-1", provider_account_id="tw-1", **fields):
    account, _ = await repository.upsert(user_id, 2, provider_account_id, **fields)
    return account


@pytest.mark.asyncio
async def test_upsert_creates_then_updates(repository):
    """Upserting the same identity twice keeps one row."""
    first, created = await repository.upsert(
        "user-1", 2, "tw-1", account_username="alice", scopes=["tweet.read"]
    )
    assert created is True
    assert first.account_username == "alice"
    assert first.scopes == ["tweet.read"]

    second, created = await repository.upsert("user-1", 2, "tw-1", account_username="alice2")
    assert created is False
    assert second.id == first.id
    assert second.account_username == "alice2"
    assert len(await repository.list_for_user("user-1")) == 1


@pytest.mark.asyncio
async def test_same_provider_account_for_different_users(repository):
    a = await _create(repository, user_id="user-1")
    b = await _create(repository, user_id="user-2")
    assert a.id != b.id


@pytest.mark.asyncio
async def test_upsert_ignores_identity_fields(repository):
    account, _ = await repository.upsert("user-1", 2, "tw-1", user_id="intruder")
    assert account.user_id == "user-1"


@pytest.mark.asyncio
async def test_get_and_get_by_identity(repository):
    account = await _create(repository)

    assert (await repository.get(account.id)).provider_account_id == "tw-1"
    assert (await repository.get_by_identity("user-1", 2, "tw-1")).id == account.id
    assert await repository.get("missing") is None
    assert await repository.get_by_identity("user-1", 3, "tw-1") is None


@pytest.mark.asyncio
async def test_update(repository):
    account = await _create(repository)

    updated = await repository.update(
        account.id, connection_status=ConnectionStatus.ERROR, error_count=2
    )

    assert updated.connection_status == ConnectionStatus.ERROR
    assert updated.error_count == 2
    assert as_utc(updated.updated_at) >= as_utc(account.updated_at)


@pytest.mark.asyncio
async def test_update_missing_returns_none(repository):
    assert await repository.update("missing", error_count=1) is None


@pytest.mark.asyncio
async def test_update_rejects_identity_fields(repository):
    account = await _create(repository)
    with pytest.raises(ValueError, match="identity"):
        await repository.update(account.id, user_id="someone-else")


@pytest.mark.asyncio
async def test_list_for_user_filters_by_platform(repository):
    await _create(repository, provider_account_id="tw-1")
    await repository.upsert("user-1", 3, "li-1")
    await _create(repository, user_id="user-2")

    assert len(await repository.list_for_user("user-1")) == 2
    only_twitter = await repository.list_for_user("user-1", platform_id=2)
    assert [a.provider_account_id for a in only_twitter] == ["tw-1"]


@pytest.mark.asyncio
async def test_list_due_for_refresh(repository):
    now = utc_now()
    due = await _create(
        repository,
        provider_account_id="due",
        token_expires_at=now + timedelta(minutes=1),
        encrypted_refresh_token="ct",
        connection_status=ConnectionStatus.CONNECTED,
    )
    await _create(
        repository,
        provider_account_id="later",
        token_expires_at=now + timedelta(hours=2),
        encrypted_refresh_token="ct",
        connection_status=ConnectionStatus.CONNECTED,
    )
    await _create(
        repository,
        provider_account_id="no-refresh-token",
        token_expires_at=now + timedelta(minutes=1),
        connection_status=ConnectionStatus.CONNECTED,
    )
    await _create(
        repository,
        provider_account_id="errored",
        token_expires_at=now - timedelta(minutes=1),
        encrypted_refresh_token="ct",
        connection_status=ConnectionStatus.ERROR,
    )

    result = await repository.list_due_for_refresh(now + timedelta(minutes=5))

    assert [a.id for a in result] == [due.id]


def test_new_account_defaults():
    account = SocialAccount(user_id="u", platform_id=2, provider_account_id="p")
    assert account.connection_status == ConnectionStatus.PENDING
    assert account.oauth_version == "2.0"
    assert account.error_count == 0
    assert account.id


@pytest.mark.asyncio
async def test_database_failure_is_store_unavailable(repository, monkeypatch):
    """A failing commit surfaces as a typed, retryable error and is rolled back."""
    account = await _create(repository)

    async def locked_commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "commit", locked_commit)
    with pytest.raises(AccountStoreUnavailableError):
        await repository.update(account.id, last_error="boom")
    monkeypatch.undo()

    assert (await repository.get(account.id)).last_error is None


@pytest.mark.asyncio
async def test_slow_session_times_out(tmp_path):
    db = Database(tmp_path / "slow.db", timeout_seconds=0.05)
    await db.init()
    try:
        with pytest.raises(AccountStoreUnavailableError):
            async with db.session():
                await asyncio.sleep(1)
    finally:
        await db.dispose()
