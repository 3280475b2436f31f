"""Tests for the OAuth connection HTTP routes."""

from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from social_connect.api.app import create_app
from social_connect.config.settings import Settings
from social_connect.container import ServiceContainer
from social_connect.db.engine import Database


BASE = "/api/v1/oauth/twitter"
USER = {"X-User-Id": "user-1"}


@pytest.fixture
def settings(tmp_path, provider_settings, token_settings, encryption_key):
    return Settings(
        provider=provider_settings,
        tokens=token_settings,
        security={"token_encryption_key": encryption_key},
        database={"path": tmp_path / "api.db"},
        scheduler={"enabled": False},
    )


@pytest.fixture
def client(settings, http_client, state_store):
    container = ServiceContainer(
        settings,
        http_client=http_client,
        state_store=state_store,
        database=Database(settings.database.path),
    )
    app = create_app(container=container)
    with TestClient(app) as test_client:
        yield test_client


def _connect(client, headers=USER):
    response = client.post(
        f"{BASE}/initiate",
        json={"callback_url": "https://app/x/callback", "scopes": ["read"]},
        headers=headers,
    )
    assert response.status_code == 200
    state = response.json()["state"]
    response = client.post(f"{BASE}/callback", json={"code": "abc", "state": state})
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["refresh_scheduler"] is False


def test_initiate(client):
    response = client.post(
        f"{BASE}/initiate",
        json={"callback_url": "https://app/x/callback", "scopes": ["read"]},
        headers=USER,
    )

    assert response.status_code == 200
    body = response.json()
    query = parse_qs(urlsplit(body["auth_url"]).query)
    assert query["state"] == [body["state"]]
    assert query["code_challenge_method"] == ["S256"]
    assert body["platform_id"] == 2
    assert body["scopes"] == ["read"]
    assert "x-request-id" in response.headers


def test_initiate_without_body_uses_defaults(client):
    response = client.post(f"{BASE}/initiate", headers=USER)
    assert response.status_code == 200
    assert "offline.access" in response.json()["scopes"]


def test_initiate_requires_user(client):
    response = client.post(f"{BASE}/initiate", json={})
    assert response.status_code == 401
    assert response.json()["error"]["type"] == "http_error"


def test_unknown_provider(client):
    response = client.post("/api/v1/oauth/myspace/initiate", json={}, headers=USER)
    assert response.status_code == 404


def test_callback_links_account(client):
    account = _connect(client)

    assert account["user_id"] == "user-1"
    assert account["connection_status"] == "connected"
    assert account["account_username"] == "alice"
    assert "encrypted_access_token" not in account
    assert "token_encryption_iv" not in account


def test_callback_with_unknown_state(client):
    response = client.post(f"{BASE}/callback", json={"code": "abc", "state": "unknown-state"})

    assert response.status_code == 400
    assert response.json() == {
        "error": {
            "type": "invalid_state_error",
            "message": "Connection failed or expired, please retry",
        }
    }


def test_get_callback_with_denied_consent(client):
    state = client.post(f"{BASE}/initiate", json={}, headers=USER).json()["state"]

    response = client.get(f"{BASE}/callback", params={"state": state, "error": "access_denied"})

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "provider_rejected_error"
    # State was consumed
    retry = client.get(f"{BASE}/callback", params={"state": state, "code": "abc"})
    assert retry.status_code == 400
    assert retry.json()["error"]["type"] == "invalid_state_error"


def test_get_callback_success(client):
    state = client.post(f"{BASE}/initiate", json={}, headers=USER).json()["state"]
    response = client.get(f"{BASE}/callback", params={"state": state, "code": "abc"})
    assert response.status_code == 200
    assert response.json()["connection_status"] == "connected"


def test_list_accounts_and_health(client):
    account = _connect(client)

    listed = client.get(f"{BASE}/accounts", headers=USER).json()
    assert [a["id"] for a in listed] == [account["id"]]
    assert client.get(f"{BASE}/accounts", headers={"X-User-Id": "other"}).json() == []

    health = client.get(f"{BASE}/accounts/{account['id']}/health", headers=USER)
    assert health.status_code == 200
    assert health.json()["connection_status"] == "connected"
    assert health.json()["needs_reconnect"] is False


def test_other_users_account_is_not_found(client):
    account = _connect(client)
    response = client.get(
        f"{BASE}/accounts/{account['id']}/health", headers={"X-User-Id": "other"}
    )
    assert response.status_code == 404
    assert response.json()["error"]["type"] == "not_found_error"


def test_refresh_account(client, fake_provider):
    account = _connect(client)

    response = client.post(f"{BASE}/accounts/{account['id']}/refresh", headers=USER)

    assert response.status_code == 200
    assert fake_provider.refreshes == 1


def test_disconnect_twice(client):
    account = _connect(client)

    first = client.delete(f"{BASE}/accounts/{account['id']}", headers=USER)
    second = client.delete(f"{BASE}/accounts/{account['id']}", headers=USER)

    assert first.status_code == 204
    assert second.status_code == 204
    assert client.get(f"{BASE}/accounts", headers=USER).json() == []


def test_stats(client):
    _connect(client)
    response = client.get(f"{BASE}/stats", headers=USER)
    assert response.status_code == 200
    assert response.json() == [
        {
            "platform_id": 2,
            "total_accounts": 1,
            "connected_accounts": 1,
            "error_accounts": 0,
            "expired_accounts": 0,
        }
    ]


def test_validate_state(client):
    state = client.post(f"{BASE}/initiate", json={}, headers=USER).json()["state"]

    own = client.get(f"{BASE}/state/{state}/validate", headers=USER)
    other = client.get(f"{BASE}/state/{state}/validate", headers={"X-User-Id": "other"})

    assert own.status_code == 200
    assert own.json()["user_id"] == "user-1"
    assert "code_verifier" not in own.json()
    assert other.status_code == 403


def test_invalid_body_is_422(client):
    response = client.post(f"{BASE}/callback", json={"code": "abc"})
    assert response.status_code == 422
    assert response.json()["error"]["type"] == "invalid_request_error"
