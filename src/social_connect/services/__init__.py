"""Service layer: account linking, token lifecycle and background refresh."""

from social_connect.services.account_linker import AccountLinker
from social_connect.services.refresh_scheduler import TokenRefreshScheduler
from social_connect.services.token_lifecycle import RefreshSweepResult, TokenLifecycleManager


__all__ = [
    "AccountLinker",
    "RefreshSweepResult",
    "TokenLifecycleManager",
    "TokenRefreshScheduler",
]
