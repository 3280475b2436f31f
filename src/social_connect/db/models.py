"""SQLModel database models."""

from datetime import datetime
from enum import StrEnum

import shortuuid
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from social_connect.utils.time import utc_now


class ConnectionStatus(StrEnum):
    """Derived health label for a linked account."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    EXPIRED = "expired"
    ERROR = "error"
    PENDING = "pending"


class OAuthVersion(StrEnum):
    """Token protocol variant in use for an account."""

    OAUTH1A = "1.0a"
    OAUTH2 = "2.0"


class SocialAccount(SQLModel, table=True):
    """Linked provider account with encrypted OAuth tokens."""

    __tablename__ = "social_accounts"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "platform_id",
            "provider_account_id",
            name="uq_social_accounts_identity",
        ),
    )

    id: str = Field(default_factory=shortuuid.uuid, primary_key=True)
    user_id: str = Field(index=True)
    platform_id: int = Field(index=True)
    provider_account_id: str

    # Profile metadata
    account_name: str | None = None
    account_username: str | None = None
    profile_image_url: str | None = None
    follower_count: int = Field(default=0)
    following_count: int = Field(default=0)
    is_verified: bool = Field(default=False)

    # Tokens (ciphertext only; each token has its own IV)
    oauth_version: str = Field(default=OAuthVersion.OAUTH2)
    scopes: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    encrypted_access_token: str | None = None
    encrypted_refresh_token: str | None = None
    token_encryption_iv: str | None = None
    refresh_token_encryption_iv: str | None = None
    token_expires_at: datetime | None = None

    # Health
    connection_status: str = Field(default=ConnectionStatus.PENDING, index=True)
    last_error: str | None = None
    error_count: int = Field(default=0)
    token_refresh_attempts: int = Field(default=0)
    last_token_refresh: datetime | None = None
    last_sync_at: datetime | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
