"""Account linking: profile lookup, token encryption and SocialAccount upsert."""

from typing import Any

from structlog import get_logger

from social_connect.auth.cipher import TokenCipher
from social_connect.auth.profile import ProfileClient, ProviderProfile
from social_connect.auth.token_exchange import TokenSet
from social_connect.db.models import ConnectionStatus, OAuthVersion, SocialAccount
from social_connect.db.repositories import SocialAccountRepository
from social_connect.exceptions import AccountNotFoundError
from social_connect.utils.time import utc_now


logger = get_logger(__name__)

# Bound as GCM associated data so the two ciphertext columns cannot be swapped
ACCESS_TOKEN_AAD = b"access_token"
REFRESH_TOKEN_AAD = b"refresh_token"


class AccountLinker:
    """Creates, refreshes and disconnects SocialAccount rows.

    This is the only component that turns plaintext tokens into stored
    ciphertext; callers hand it a :class:`TokenSet` and get an account back.
    """

    def __init__(
        self,
        repository: SocialAccountRepository,
        cipher: TokenCipher,
        profile_client: ProfileClient,
    ) -> None:
        self._repository = repository
        self._cipher = cipher
        self._profile_client = profile_client

    def encrypt_tokens(self, access_token: str, refresh_token: str | None) -> dict[str, Any]:
        """Encrypt a token pair into SocialAccount column values."""
        access = self._cipher.encrypt(access_token, ACCESS_TOKEN_AAD)
        fields: dict[str, Any] = {
            "encrypted_access_token": access.ciphertext,
            "token_encryption_iv": access.iv,
            "encrypted_refresh_token": None,
            "refresh_token_encryption_iv": None,
        }
        if refresh_token:
            refresh = self._cipher.encrypt(refresh_token, REFRESH_TOKEN_AAD)
            fields["encrypted_refresh_token"] = refresh.ciphertext
            fields["refresh_token_encryption_iv"] = refresh.iv
        return fields

    def decrypt_access_token(self, account: SocialAccount) -> str | None:
        """Decrypt the stored access token, or None if the account has none.

        Raises:
            DecryptionFailedError: If the stored ciphertext is unreadable
        """
        if not account.encrypted_access_token or not account.token_encryption_iv:
            return None
        return self._cipher.decrypt(
            account.encrypted_access_token, account.token_encryption_iv, ACCESS_TOKEN_AAD
        )

    def decrypt_refresh_token(self, account: SocialAccount) -> str | None:
        """Decrypt the stored refresh token, or None if the account has none.

        Raises:
            DecryptionFailedError: If the stored ciphertext is unreadable
        """
        if not account.encrypted_refresh_token or not account.refresh_token_encryption_iv:
            return None
        return self._cipher.decrypt(
            account.encrypted_refresh_token,
            account.refresh_token_encryption_iv,
            REFRESH_TOKEN_AAD,
        )

    async def link_or_update(
        self,
        user_id: str,
        platform_id: int,
        tokens: TokenSet,
        profile: ProviderProfile | None = None,
        requested_scopes: list[str] | None = None,
    ) -> SocialAccount:
        """Upsert the account that granted ``tokens``.

        Args:
            user_id: Application user who initiated the connection
            platform_id: Target platform
            tokens: Fresh tokens from the code exchange
            profile: Provider profile; fetched with the new access token if omitted
            requested_scopes: Scopes asked for, used when the provider does not
                echo the granted scopes

        Returns:
            The stored account, status ``connected`` with counters reset
        """
        if profile is None:
            profile = await self._profile_client.fetch_profile(tokens.access_token)

        now = utc_now()
        account, created = await self._repository.upsert(
            user_id,
            platform_id,
            profile.provider_account_id,
            account_name=profile.display_name,
            account_username=profile.username,
            profile_image_url=profile.profile_image_url,
            follower_count=profile.follower_count,
            following_count=profile.following_count,
            is_verified=profile.verified,
            oauth_version=OAuthVersion.OAUTH2,
            scopes=tokens.scopes or list(requested_scopes or []),
            token_expires_at=tokens.expires_at(now),
            connection_status=ConnectionStatus.CONNECTED,
            last_error=None,
            error_count=0,
            token_refresh_attempts=0,
            last_sync_at=now,
            **self.encrypt_tokens(tokens.access_token, tokens.refresh_token),
        )
        logger.info(
            "social_account_linked" if created else "social_account_relinked",
            account_id=account.id,
            user_id=user_id,
            platform_id=platform_id,
            username=profile.username,
        )
        return account

    async def store_refreshed_tokens(
        self,
        account_id: str,
        tokens: TokenSet,
        previous_refresh_token: str,
    ) -> SocialAccount:
        """Persist tokens from a successful refresh.

        The refresh token returned by the provider wins; the previous one is
        kept only when the provider did not rotate it.

        Raises:
            AccountNotFoundError: If the account vanished mid-refresh
        """
        now = utc_now()
        refresh_token = tokens.refresh_token or previous_refresh_token
        fields = self.encrypt_tokens(tokens.access_token, refresh_token)
        if tokens.scopes:
            fields["scopes"] = tokens.scopes
        account = await self._repository.update(
            account_id,
            token_expires_at=tokens.expires_at(now),
            connection_status=ConnectionStatus.CONNECTED,
            token_refresh_attempts=0,
            last_token_refresh=now,
            last_error=None,
            **fields,
        )
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def disconnect(self, account_id: str) -> SocialAccount:
        """Soft-invalidate an account and drop its ciphertext.

        Idempotent: an already disconnected account is returned unchanged.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        account = await self._repository.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        if account.connection_status == ConnectionStatus.DISCONNECTED:
            logger.debug("social_account_already_disconnected", account_id=account_id)
            return account

        updated = await self._repository.update(
            account_id,
            connection_status=ConnectionStatus.DISCONNECTED,
            encrypted_access_token=None,
            encrypted_refresh_token=None,
            token_encryption_iv=None,
            refresh_token_encryption_iv=None,
            token_expires_at=None,
        )
        if updated is None:
            raise AccountNotFoundError(account_id)
        logger.info(
            "social_account_disconnected",
            account_id=account_id,
            user_id=account.user_id,
            platform_id=account.platform_id,
        )
        return updated
