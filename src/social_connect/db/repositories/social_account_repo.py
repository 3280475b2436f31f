"""Social account repository for database operations."""

from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from structlog import get_logger

from social_connect.db.engine import Database
from social_connect.db.models import ConnectionStatus, SocialAccount
from social_connect.utils.time import utc_now


logger = get_logger(__name__)

# Columns that identify an account and must never change through update()
_IDENTITY_FIELDS = frozenset({"id", "user_id", "platform_id", "provider_account_id", "created_at"})


class SocialAccountRepository:
    """Repository for SocialAccount operations."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get(self, account_id: str) -> SocialAccount | None:
        """Get an account by id."""
        async with self._db.session() as session:
            result = await session.execute(
                select(SocialAccount).where(SocialAccount.id == account_id)
            )
            return result.scalar_one_or_none()

    async def get_by_identity(
        self, user_id: str, platform_id: int, provider_account_id: str
    ) -> SocialAccount | None:
        """Get the account linked by ``user_id`` for a provider-side account."""
        async with self._db.session() as session:
            result = await session.execute(
                select(SocialAccount).where(
                    SocialAccount.user_id == user_id,
                    SocialAccount.platform_id == platform_id,
                    SocialAccount.provider_account_id == provider_account_id,
                )
            )
            return result.scalar_one_or_none()

    async def upsert(
        self,
        user_id: str,
        platform_id: int,
        provider_account_id: str,
        **fields: Any,
    ) -> tuple[SocialAccount, bool]:
        """Insert or update the row for (user, platform, provider account).

        Returns:
            Tuple of the stored account and whether it was newly created
        """
        try:
            return await self._upsert_once(user_id, platform_id, provider_account_id, fields)
        except IntegrityError:
            # A concurrent callback inserted the same identity; update it instead
            logger.info(
                "social_account_upsert_race",
                user_id=user_id,
                platform_id=platform_id,
            )
            return await self._upsert_once(user_id, platform_id, provider_account_id, fields)

    async def _upsert_once(
        self,
        user_id: str,
        platform_id: int,
        provider_account_id: str,
        fields: dict[str, Any],
    ) -> tuple[SocialAccount, bool]:
        async with self._db.session() as session:
            result = await session.execute(
                select(SocialAccount).where(
                    SocialAccount.user_id == user_id,
                    SocialAccount.platform_id == platform_id,
                    SocialAccount.provider_account_id == provider_account_id,
                )
            )
            account = result.scalar_one_or_none()
            created = account is None
            if account is None:
                account = SocialAccount(
                    user_id=user_id,
                    platform_id=platform_id,
                    provider_account_id=provider_account_id,
                )
            for key, value in fields.items():
                if key not in _IDENTITY_FIELDS:
                    setattr(account, key, value)
            account.updated_at = utc_now()
            session.add(account)
            await session.commit()
            await session.refresh(account)
            return account, created

    async def update(self, account_id: str, **fields: Any) -> SocialAccount | None:
        """Update mutable columns of an account.

        Returns:
            The updated account, or None if it does not exist
        """
        async with self._db.session() as session:
            result = await session.execute(
                select(SocialAccount).where(SocialAccount.id == account_id)
            )
            account = result.scalar_one_or_none()
            if account is None:
                return None
            for key, value in fields.items():
                if key in _IDENTITY_FIELDS:
                    raise ValueError(f"Cannot update identity field {key!r}")
                setattr(account, key, value)
            account.updated_at = utc_now()
            session.add(account)
            await session.commit()
            await session.refresh(account)
            return account

    async def list_for_user(
        self, user_id: str, platform_id: int | None = None
    ) -> list[SocialAccount]:
        """List a user's accounts, newest first."""
        async with self._db.session() as session:
            query = select(SocialAccount).where(SocialAccount.user_id == user_id)
            if platform_id is not None:
                query = query.where(SocialAccount.platform_id == platform_id)
            query = query.order_by(col(SocialAccount.created_at).desc())
            result = await session.execute(query)
            return list(result.scalars().all())

    async def list_due_for_refresh(self, before: datetime) -> list[SocialAccount]:
        """List refreshable accounts whose access token expires before ``before``."""
        async with self._db.session() as session:
            result = await session.execute(
                select(SocialAccount).where(
                    col(SocialAccount.token_expires_at).is_not(None),
                    col(SocialAccount.token_expires_at) <= before,
                    col(SocialAccount.encrypted_refresh_token).is_not(None),
                    col(SocialAccount.connection_status).in_(
                        [ConnectionStatus.CONNECTED, ConnectionStatus.EXPIRED]
                    ),
                )
            )
            return list(result.scalars().all())
