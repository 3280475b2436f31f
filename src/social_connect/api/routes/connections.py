"""OAuth connection routes.

Endpoints (prefix ``/api/v1/oauth/{provider}``):
    POST   /initiate                 - Start a PKCE connect flow
    POST   /callback                 - Complete a flow with code and state
    GET    /callback                 - Provider redirect target
    GET    /accounts                 - List linked accounts
    GET    /accounts/{id}/health     - Token health for one account
    POST   /accounts/{id}/refresh    - Refresh tokens now
    DELETE /accounts/{id}            - Disconnect an account
    GET    /stats                    - Per-platform account counts
    GET    /state/{state}/validate   - Inspect a pending authorization

No endpoint returns access or refresh tokens.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, Field

from social_connect.api.dependencies import ManagerDep, UserIdDep
from social_connect.schemas import (
    ConnectionInitiation,
    PendingStateView,
    PlatformAccountStats,
    SocialAccountSummary,
    TokenHealth,
)


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/oauth/{provider}", tags=["oauth"])


# ============================================================================
# Request Models
# ============================================================================


class InitiateConnectionRequest(BaseModel):
    """Body for starting a connect flow."""

    callback_url: str | None = Field(
        default=None, description="Redirect URI; provider default when omitted"
    )
    scopes: list[str] | None = Field(
        default=None, description="Requested scopes; provider defaults when omitted"
    )


class CompleteConnectionRequest(BaseModel):
    """Body forwarded by the frontend after the provider redirect."""

    code: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)


# ============================================================================
# Connect flow
# ============================================================================


@router.post("/initiate", response_model=ConnectionInitiation)
async def initiate_connection(
    manager: ManagerDep,
    user_id: UserIdDep,
    body: InitiateConnectionRequest | None = None,
) -> ConnectionInitiation:
    """Start a connect flow and return the provider authorization URL."""
    body = body or InitiateConnectionRequest()
    return await manager.initiate_connection(
        user_id,
        manager.platform_id,
        callback_url=body.callback_url,
        scopes=body.scopes,
    )


@router.post("/callback", response_model=SocialAccountSummary)
async def complete_connection(
    manager: ManagerDep, body: CompleteConnectionRequest
) -> SocialAccountSummary:
    """Complete a connect flow.

    The state alone identifies the initiating user, so this route does not
    require the user header.
    """
    return await manager.complete_connection(body.code, body.state)


@router.get("/callback", response_model=SocialAccountSummary)
async def provider_callback(
    manager: ManagerDep,
    state: Annotated[str, Query()] = "",
    code: Annotated[str | None, Query()] = None,
    error: Annotated[str | None, Query()] = None,
    error_description: Annotated[str | None, Query()] = None,
) -> SocialAccountSummary:
    """Provider redirect target; handles both granted and denied consent."""
    if error:
        await manager.abandon_connection(state, error, error_description)
    return await manager.complete_connection(code or "", state)


@router.get("/state/{state}/validate", response_model=PendingStateView)
async def validate_state(
    state: str, manager: ManagerDep, user_id: UserIdDep
) -> PendingStateView:
    """Check that a pending authorization exists and belongs to the caller."""
    return await manager.inspect_pending_state(state, user_id)


# ============================================================================
# Accounts
# ============================================================================


@router.get("/accounts", response_model=list[SocialAccountSummary])
async def list_accounts(
    manager: ManagerDep,
    user_id: UserIdDep,
    platform_id: Annotated[int | None, Query()] = None,
    include_disconnected: Annotated[bool, Query()] = False,
) -> list[SocialAccountSummary]:
    """List the caller's linked accounts."""
    return await manager.list_connected_accounts(
        user_id, platform_id, include_disconnected=include_disconnected
    )


@router.get("/accounts/{account_id}/health", response_model=TokenHealth)
async def account_health(
    account_id: str, manager: ManagerDep, user_id: UserIdDep
) -> TokenHealth:
    return await manager.get_token_health(account_id, user_id)


@router.post("/accounts/{account_id}/refresh", response_model=SocialAccountSummary)
async def refresh_account(
    account_id: str, manager: ManagerDep, user_id: UserIdDep
) -> SocialAccountSummary:
    """Refresh an account's tokens now."""
    return await manager.refresh_account(account_id, user_id)


@router.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_account(
    account_id: str, manager: ManagerDep, user_id: UserIdDep
) -> Response:
    """Disconnect an account. Repeating the call succeeds."""
    await manager.disconnect_account(account_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/stats", response_model=list[PlatformAccountStats])
async def account_stats(manager: ManagerDep, user_id: UserIdDep) -> list[PlatformAccountStats]:
    return await manager.get_account_stats(user_id)


__all__ = ["router"]
