"""Data shapes handed to collaborators (UI, posting, dashboards).

None of these models carry plaintext tokens, ciphertext or IVs.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from social_connect.auth.state_store import PendingAuthorization
from social_connect.db.models import ConnectionStatus, SocialAccount
from social_connect.utils.time import as_utc


_RECONNECT_STATUSES = frozenset(
    {ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED, ConnectionStatus.EXPIRED}
)


def _aware(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


class ConnectionInitiation(BaseModel):
    """Result of starting a connect flow."""

    auth_url: str = Field(description="Provider URL to redirect the user to")
    state: str = Field(description="Opaque state round-tripped through the redirect")
    platform_id: int
    scopes: list[str]


class SocialAccountSummary(BaseModel):
    """Public view of a linked account."""

    id: str
    user_id: str
    platform_id: int
    provider_account_id: str
    account_name: str | None = None
    account_username: str | None = None
    profile_image_url: str | None = None
    follower_count: int = 0
    is_verified: bool = False
    oauth_version: str
    scopes: list[str] = Field(default_factory=list)
    connection_status: ConnectionStatus
    token_expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account: SocialAccount) -> "SocialAccountSummary":
        return cls(
            id=account.id,
            user_id=account.user_id,
            platform_id=account.platform_id,
            provider_account_id=account.provider_account_id,
            account_name=account.account_name,
            account_username=account.account_username,
            profile_image_url=account.profile_image_url,
            follower_count=account.follower_count,
            is_verified=account.is_verified,
            oauth_version=account.oauth_version,
            scopes=list(account.scopes or []),
            connection_status=ConnectionStatus(account.connection_status),
            token_expires_at=_aware(account.token_expires_at),
            created_at=as_utc(account.created_at),
            updated_at=as_utc(account.updated_at),
        )


class TokenHealth(BaseModel):
    """Operational token health, safe for dashboards and alerts."""

    account_id: str
    platform_id: int
    connection_status: ConnectionStatus
    token_expires_at: datetime | None = None
    error_count: int = 0
    token_refresh_attempts: int = 0
    last_error: str | None = None
    last_token_refresh: datetime | None = None
    needs_reconnect: bool = False

    @classmethod
    def from_account(cls, account: SocialAccount) -> "TokenHealth":
        status = ConnectionStatus(account.connection_status)
        return cls(
            account_id=account.id,
            platform_id=account.platform_id,
            connection_status=status,
            token_expires_at=_aware(account.token_expires_at),
            error_count=account.error_count,
            token_refresh_attempts=account.token_refresh_attempts,
            last_error=account.last_error,
            last_token_refresh=_aware(account.last_token_refresh),
            needs_reconnect=status in _RECONNECT_STATUSES,
        )


class PlatformAccountStats(BaseModel):
    """Per-platform account counts for one user."""

    platform_id: int
    total_accounts: int = 0
    connected_accounts: int = 0
    error_accounts: int = 0
    expired_accounts: int = 0


class PendingStateView(BaseModel):
    """Non-secret view of a pending authorization."""

    state: str
    user_id: str
    platform_id: int
    callback_url: str
    requested_scopes: list[str]
    created_at: datetime
    expires_at: datetime

    @classmethod
    def from_pending(cls, pending: PendingAuthorization) -> "PendingStateView":
        return cls(
            state=pending.state,
            user_id=pending.user_id,
            platform_id=pending.platform_id,
            callback_url=pending.callback_url,
            requested_scopes=pending.requested_scopes,
            created_at=pending.created_at,
            expires_at=pending.expires_at,
        )
