"""Connection and token lifecycle orchestration.

:class:`TokenLifecycleManager` drives one connect attempt from ``initiate``
to a linked account, and keeps linked accounts usable afterwards:

    IDLE --initiate--> PENDING --callback--> LINKED
    PENDING --TTL expiry / unknown state--> FAILED
    LINKED --near expiry--> REFRESHING --success--> LINKED
    REFRESHING --provider rejected--> EXPIRED (ERROR after repeated rejections)
    LINKED/EXPIRED --disconnect--> DISCONNECTED

Refreshes and disconnects for one account are serialized by an in-process
lock keyed by account id. Callers waiting on the lock reuse the outcome of a
refresh that finished while they waited: a success is picked up by
re-reading the account, a failure is re-raised without calling the provider
again.
"""

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TypeVar
from urllib.parse import urlsplit

from structlog import get_logger
from typing_extensions import TypedDict

from social_connect.auth.authorize_url import build_authorization_url
from social_connect.auth.pkce import generate_pkce_pair, generate_state
from social_connect.auth.state_store import OAuthStateStore, PendingAuthorization
from social_connect.auth.token_exchange import TokenExchangeClient
from social_connect.config.settings import ProviderSettings, TokenSettings
from social_connect.core.constants import DEFAULT_STATE_TTL_SECONDS
from social_connect.core.validators import parse_scopes
from social_connect.db.models import ConnectionStatus, SocialAccount
from social_connect.db.repositories import SocialAccountRepository
from social_connect.exceptions import (
    AccountNotFoundError,
    AccountStoreUnavailableError,
    DecryptionFailedError,
    InvalidRequestError,
    InvalidStateError,
    ProviderRejectedError,
    ProviderUnavailableError,
    ReconnectRequiredError,
    SocialConnectError,
    StateConflictError,
    StateOwnershipError,
    StateStoreUnavailableError,
    UnsupportedPlatformError,
)
from social_connect.schemas import (
    ConnectionInitiation,
    PendingStateView,
    PlatformAccountStats,
    SocialAccountSummary,
    TokenHealth,
)
from social_connect.services.account_linker import AccountLinker
from social_connect.utils.time import as_utc, utc_now


logger = get_logger(__name__)

T = TypeVar("T")

_UNUSABLE_STATUSES = frozenset({ConnectionStatus.DISCONNECTED, ConnectionStatus.ERROR})


class RefreshSweepResult(TypedDict):
    """Outcome of one pass over accounts due for refresh."""

    checked: int
    refreshed: int
    skipped: int
    failed: int


class _RefreshGate:
    """Per-account lock plus the outcome of the last refresh run under it.

    ``generation`` increases after every refresh attempt. A caller that read
    it before queueing on ``lock`` and finds it changed knows another caller
    refreshed in the meantime, and reuses that result instead of calling the
    provider again.
    """

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.generation = 0
        self.last_error: SocialConnectError | None = None


class TokenLifecycleManager:
    """Orchestrates PKCE connect flows, token refresh and disconnects."""

    def __init__(
        self,
        *,
        provider: ProviderSettings,
        state_store: OAuthStateStore,
        token_client: TokenExchangeClient,
        linker: AccountLinker,
        repository: SocialAccountRepository,
        token_settings: TokenSettings | None = None,
        state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the manager.

        Args:
            provider: Provider this manager connects accounts to
            state_store: Pending authorization storage
            token_client: Token endpoint client
            linker: Persists linked accounts and their encrypted tokens
            repository: SocialAccount repository
            token_settings: Refresh margin, failure cap and I/O timeouts
            state_ttl_seconds: Lifetime of a pending authorization
            clock: Returns the current UTC time
        """
        self._provider = provider
        self._state_store = state_store
        self._token_client = token_client
        self._linker = linker
        self._repository = repository
        self._tokens = token_settings or TokenSettings()
        self._state_ttl_seconds = state_ttl_seconds
        self._clock = clock
        self._gates: weakref.WeakValueDictionary[str, _RefreshGate] = (
            weakref.WeakValueDictionary()
        )

    @property
    def platform_id(self) -> int:
        return self._provider.platform_id

    def _gate_for(self, account_id: str) -> _RefreshGate:
        gate = self._gates.get(account_id)
        if gate is None:
            gate = _RefreshGate()
            self._gates[account_id] = gate
        return gate

    def _check_platform(self, platform_id: int) -> None:
        if platform_id != self._provider.platform_id:
            raise UnsupportedPlatformError(platform_id)

    async def _with_store_timeout(self, operation: Awaitable[T]) -> T:
        try:
            async with asyncio.timeout(self._tokens.http_timeout_seconds):
                return await operation
        except TimeoutError as e:
            logger.error("oauth_state_store_timeout")
            raise StateStoreUnavailableError() from e

    # ------------------------------------------------------------------
    # Connect flow
    # ------------------------------------------------------------------

    async def initiate_connection(
        self,
        user_id: str,
        platform_id: int,
        callback_url: str | None = None,
        scopes: list[str] | str | None = None,
    ) -> ConnectionInitiation:
        """Start a PKCE connect flow.

        Args:
            user_id: Application user starting the flow
            platform_id: Platform to connect
            callback_url: Redirect URI; the provider default when omitted
            scopes: Requested scopes; the provider defaults when omitted or empty

        Returns:
            Authorization URL to redirect the user to, and its state

        Raises:
            UnsupportedPlatformError: Platform not served by this provider
            InvalidRequestError: Malformed callback URL or scopes
            InvalidConfigurationError: Provider endpoints or client id missing
            StateStoreUnavailableError: Pending state could not be stored
        """
        self._check_platform(platform_id)
        if not user_id:
            raise InvalidRequestError("User id is required")

        try:
            requested_scopes = parse_scopes(scopes) if scopes else []
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e
        requested_scopes = requested_scopes or list(self._provider.default_scopes)

        redirect_uri = callback_url or self._provider.default_callback_url
        parts = urlsplit(redirect_uri)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidRequestError("Callback URL must be an absolute http(s) URL")

        pkce = generate_pkce_pair()
        state = generate_state()
        auth_url = build_authorization_url(
            self._provider.authorize_url,
            self._provider.client_id,
            redirect_uri,
            requested_scopes,
            state,
            pkce.code_challenge,
        )

        pending = PendingAuthorization(
            state=state,
            user_id=user_id,
            platform_id=platform_id,
            code_verifier=pkce.code_verifier,
            callback_url=redirect_uri,
            requested_scopes=requested_scopes,
            created_at=self._clock(),
            ttl_seconds=self._state_ttl_seconds,
        )
        try:
            await self._with_store_timeout(
                self._state_store.put(pending, self._state_ttl_seconds)
            )
        except StateConflictError:
            logger.error(
                "oauth_state_conflict",
                user_id=user_id,
                platform_id=platform_id,
                state_prefix=state[:8],
            )
            raise

        logger.info(
            "oauth_connection_initiated",
            user_id=user_id,
            platform_id=platform_id,
            scopes=requested_scopes,
        )
        return ConnectionInitiation(
            auth_url=auth_url,
            state=state,
            platform_id=platform_id,
            scopes=requested_scopes,
        )

    async def _take_pending(self, state: str) -> PendingAuthorization:
        if not state:
            raise InvalidStateError()
        pending = await self._with_store_timeout(self._state_store.take_and_delete(state))
        if pending is None:
            logger.warning("oauth_state_invalid", state_prefix=state[:8])
            raise InvalidStateError()
        if as_utc(pending.expires_at) <= self._clock():
            logger.warning(
                "oauth_state_expired",
                user_id=pending.user_id,
                state_prefix=state[:8],
            )
            raise InvalidStateError()
        return pending

    async def complete_connection(self, code: str, state: str) -> SocialAccountSummary:
        """Finish a connect flow from the provider callback.

        The state is consumed before anything else, so a replayed callback
        fails even if the first one is still exchanging its code.

        Raises:
            InvalidStateError: State unknown, expired or already used
            InvalidRequestError: Callback carried no code
            ProviderRejectedError: Provider refused the code or verifier
            ProviderUnavailableError: Provider unreachable (code is not retried)
        """
        if not code:
            raise InvalidRequestError("Authorization code is required")
        pending = await self._take_pending(state)

        tokens = await self._token_client.exchange_code(
            code, pending.code_verifier, pending.callback_url
        )
        account = await self._linker.link_or_update(
            pending.user_id,
            pending.platform_id,
            tokens,
            requested_scopes=pending.requested_scopes,
        )
        logger.info(
            "oauth_connection_completed",
            account_id=account.id,
            user_id=pending.user_id,
            platform_id=pending.platform_id,
        )
        return SocialAccountSummary.from_account(account)

    async def abandon_connection(
        self, state: str, error: str, description: str | None = None
    ) -> None:
        """Handle a callback where the user denied consent.

        Consumes the state and always raises.

        Raises:
            InvalidStateError: State unknown, expired or already used
            ProviderRejectedError: The provider reported ``error``
        """
        pending = await self._take_pending(state)
        logger.info(
            "oauth_connection_denied",
            user_id=pending.user_id,
            platform_id=pending.platform_id,
            error=error,
        )
        message = f"Authorization was not granted: {error}"
        if description:
            message = f"{message} ({description})"
        raise ProviderRejectedError(message)

    async def inspect_pending_state(self, state: str, user_id: str) -> PendingStateView:
        """Look up a pending authorization without consuming it.

        Raises:
            InvalidStateError: State unknown or expired
            StateOwnershipError: State belongs to another user
        """
        pending = await self._with_store_timeout(self._state_store.peek(state))
        if pending is None or as_utc(pending.expires_at) <= self._clock():
            raise InvalidStateError()
        if pending.user_id != user_id:
            logger.warning(
                "oauth_state_ownership_mismatch",
                user_id=user_id,
                state_prefix=state[:8],
            )
            raise StateOwnershipError()
        return PendingStateView.from_pending(pending)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def _get_account(self, account_id: str, user_id: str | None = None) -> SocialAccount:
        account = await self._repository.get(account_id)
        if account is None or (user_id is not None and account.user_id != user_id):
            raise AccountNotFoundError(account_id)
        return account

    def _ensure_usable(self, account: SocialAccount) -> None:
        if account.connection_status in _UNUSABLE_STATUSES:
            raise ReconnectRequiredError(account.id, account.connection_status)

    def _needs_refresh(self, account: SocialAccount, margin_seconds: int | None = None) -> bool:
        if account.connection_status == ConnectionStatus.EXPIRED:
            return True
        if account.token_expires_at is None:
            return False
        margin = timedelta(
            seconds=self._tokens.refresh_margin_seconds
            if margin_seconds is None
            else margin_seconds
        )
        return as_utc(account.token_expires_at) - margin <= self._clock()

    async def _mark_error(self, account: SocialAccount, message: str) -> None:
        await self._repository.update(
            account.id,
            connection_status=ConnectionStatus.ERROR,
            last_error=message,
            error_count=account.error_count + 1,
        )

    async def _decrypt(
        self, account: SocialAccount, reader: Callable[[SocialAccount], str | None]
    ) -> str | None:
        try:
            return reader(account)
        except DecryptionFailedError as e:
            logger.error(
                "social_account_token_unreadable",
                account_id=account.id,
                user_id=account.user_id,
            )
            await self._mark_error(account, e.message)
            raise

    async def _access_token(self, account: SocialAccount) -> str:
        token = await self._decrypt(account, self._linker.decrypt_access_token)
        if token is None:
            raise ReconnectRequiredError(account.id, account.connection_status)
        return token

    async def _refresh_locked(
        self, gate: _RefreshGate, account: SocialAccount
    ) -> SocialAccount:
        """Refresh ``account`` and record the outcome on ``gate``.

        The caller holds ``gate.lock``.
        """
        try:
            updated = await self._run_refresh(account)
        except SocialConnectError as e:
            gate.last_error = e
            raise
        else:
            gate.last_error = None
        finally:
            gate.generation += 1
        return updated

    async def _run_refresh(self, account: SocialAccount) -> SocialAccount:
        refresh_token = await self._decrypt(account, self._linker.decrypt_refresh_token)
        if refresh_token is None:
            await self._repository.update(
                account.id,
                connection_status=ConnectionStatus.EXPIRED,
                last_error="No refresh token available",
            )
            logger.warning("social_account_refresh_unavailable", account_id=account.id)
            raise ReconnectRequiredError(account.id, ConnectionStatus.EXPIRED)

        logger.info(
            "social_account_refresh_started",
            account_id=account.id,
            attempts=account.token_refresh_attempts,
        )
        try:
            tokens = await self._token_client.exchange_refresh_token(refresh_token)
        except ProviderRejectedError as e:
            attempts = account.token_refresh_attempts + 1
            status = (
                ConnectionStatus.ERROR
                if attempts >= self._tokens.max_refresh_failures
                else ConnectionStatus.EXPIRED
            )
            await self._repository.update(
                account.id,
                connection_status=status,
                token_refresh_attempts=attempts,
                error_count=account.error_count + 1,
                last_error=e.message,
            )
            logger.warning(
                "social_account_refresh_rejected",
                account_id=account.id,
                attempts=attempts,
                status=status,
                provider_status=e.provider_status,
            )
            raise
        except ProviderUnavailableError as e:
            # Token may still be valid for a while; status is left alone
            await self._repository.update(
                account.id,
                error_count=account.error_count + 1,
                last_error=e.message,
            )
            logger.error(
                "social_account_refresh_failed",
                account_id=account.id,
                provider_status=e.provider_status,
            )
            raise

        try:
            updated = await self._linker.store_refreshed_tokens(account.id, tokens, refresh_token)
        except AccountStoreUnavailableError:
            # The provider may already have invalidated the stored refresh token
            logger.error(
                "social_account_rotated_token_lost",
                account_id=account.id,
                rotated=bool(tokens.refresh_token and tokens.refresh_token != refresh_token),
            )
            raise
        logger.info(
            "social_account_refreshed",
            account_id=account.id,
            expires_at=as_utc(updated.token_expires_at).isoformat()
            if updated.token_expires_at
            else None,
        )
        return updated

    async def get_valid_access_token(self, account_id: str) -> str:
        """Return a plaintext access token that is not about to expire.

        Refreshes first when the token expires within the refresh margin.
        Concurrent callers for the same account share one refresh.

        Raises:
            AccountNotFoundError: Unknown account
            ReconnectRequiredError: Account disconnected or refresh exhausted
            DecryptionFailedError: Stored tokens unreadable; account marked error
            ProviderRejectedError: Provider refused the refresh token
            ProviderUnavailableError: Provider unreachable after retries
        """
        gate = self._gate_for(account_id)
        seen = gate.generation
        account = await self._get_account(account_id)
        self._ensure_usable(account)
        if not self._needs_refresh(account):
            return await self._access_token(account)

        async with gate.lock:
            if gate.generation != seen and gate.last_error is not None:
                # Another caller's refresh failed while this one waited
                raise gate.last_error
            account = await self._get_account(account_id)
            self._ensure_usable(account)
            if self._needs_refresh(account):
                account = await self._refresh_locked(gate, account)
            return await self._access_token(account)

    async def refresh_account(
        self, account_id: str, user_id: str | None = None
    ) -> SocialAccountSummary:
        """Refresh an account's tokens now, regardless of expiry.

        Raises:
            AccountNotFoundError: Unknown account or not owned by ``user_id``
            ReconnectRequiredError: Account disconnected or refresh exhausted
            ProviderRejectedError: Provider refused the refresh token
            ProviderUnavailableError: Provider unreachable after retries
        """
        gate = self._gate_for(account_id)
        async with gate.lock:
            account = await self._get_account(account_id, user_id)
            self._ensure_usable(account)
            account = await self._refresh_locked(gate, account)
        return SocialAccountSummary.from_account(account)

    async def refresh_due_accounts(
        self, buffer_seconds: int | None = None
    ) -> RefreshSweepResult:
        """Proactively refresh accounts whose tokens expire within ``buffer_seconds``.

        Failures are recorded on each account and logged; they never stop the
        sweep.
        """
        buffer = self._tokens.refresh_margin_seconds if buffer_seconds is None else buffer_seconds
        due = await self._repository.list_due_for_refresh(
            self._clock() + timedelta(seconds=buffer)
        )
        result = RefreshSweepResult(checked=len(due), refreshed=0, skipped=0, failed=0)

        for candidate in due:
            gate = self._gate_for(candidate.id)
            async with gate.lock:
                try:
                    account = await self._repository.get(candidate.id)
                    if (
                        account is None
                        or account.connection_status in _UNUSABLE_STATUSES
                        or not self._needs_refresh(account, buffer)
                    ):
                        result["skipped"] += 1
                        continue
                    await self._refresh_locked(gate, account)
                except SocialConnectError as e:
                    result["failed"] += 1
                    logger.warning(
                        "social_account_sweep_refresh_failed",
                        account_id=candidate.id,
                        error_type=e.error_type,
                    )
                    continue
                result["refreshed"] += 1

        if due:
            logger.info("social_account_refresh_sweep_completed", **result)
        return result

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------

    async def _revoke_quietly(self, account: SocialAccount) -> None:
        try:
            refresh_token = self._linker.decrypt_refresh_token(account)
            if refresh_token:
                await self._token_client.revoke_token(refresh_token, "refresh_token")
                return
            access_token = self._linker.decrypt_access_token(account)
            if access_token:
                await self._token_client.revoke_token(access_token, "access_token")
        except SocialConnectError as e:
            logger.warning(
                "social_account_revoke_failed",
                account_id=account.id,
                error_type=e.error_type,
            )

    async def disconnect_account(self, account_id: str, user_id: str | None = None) -> None:
        """Disconnect an account, revoking its tokens at the provider when possible.

        Idempotent: disconnecting an already disconnected account succeeds.

        Raises:
            AccountNotFoundError: Unknown account or not owned by ``user_id``
        """
        gate = self._gate_for(account_id)
        async with gate.lock:
            account = await self._get_account(account_id, user_id)
            if account.connection_status != ConnectionStatus.DISCONNECTED:
                await self._revoke_quietly(account)
            await self._linker.disconnect(account_id)

    async def list_connected_accounts(
        self,
        user_id: str,
        platform_id: int | None = None,
        include_disconnected: bool = False,
    ) -> list[SocialAccountSummary]:
        """List a user's linked accounts, newest first."""
        accounts = await self._repository.list_for_user(user_id, platform_id)
        return [
            SocialAccountSummary.from_account(account)
            for account in accounts
            if include_disconnected
            or account.connection_status != ConnectionStatus.DISCONNECTED
        ]

    async def get_token_health(
        self, account_id: str, user_id: str | None = None
    ) -> TokenHealth:
        """Return token health for one account."""
        return TokenHealth.from_account(await self._get_account(account_id, user_id))

    async def list_token_health(
        self, user_id: str, platform_id: int | None = None
    ) -> list[TokenHealth]:
        """Return token health for every account of a user, disconnected included."""
        accounts = await self._repository.list_for_user(user_id, platform_id)
        return [TokenHealth.from_account(account) for account in accounts]

    async def get_account_stats(self, user_id: str) -> list[PlatformAccountStats]:
        """Count a user's linked accounts per platform.

        Disconnected accounts are not counted.
        """
        stats: dict[int, PlatformAccountStats] = {}
        for account in await self._repository.list_for_user(user_id):
            status = account.connection_status
            if status == ConnectionStatus.DISCONNECTED:
                continue
            entry = stats.setdefault(
                account.platform_id, PlatformAccountStats(platform_id=account.platform_id)
            )
            entry.total_accounts += 1
            if status == ConnectionStatus.CONNECTED:
                entry.connected_accounts += 1
            elif status == ConnectionStatus.ERROR:
                entry.error_accounts += 1
            elif status == ConnectionStatus.EXPIRED:
                entry.expired_accounts += 1
        return sorted(stats.values(), key=lambda s: s.platform_id)
