"""Background scheduler for proactive OAuth token refresh.

Runs :meth:`TokenLifecycleManager.refresh_due_accounts` on an interval so
tokens are rotated before a posting job needs them. Started and stopped by
the process that owns the service container.
"""

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from structlog import get_logger

from social_connect.core.constants import (
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    DEFAULT_SWEEP_REFRESH_BUFFER_SECONDS,
)
from social_connect.services.token_lifecycle import RefreshSweepResult, TokenLifecycleManager


logger = get_logger(__name__)

REFRESH_JOB_ID = "social_account_token_refresh"


class TokenRefreshScheduler:
    """Interval job that refreshes accounts expiring within a buffer.

    Features:
    - Checks all refreshable accounts every ``check_interval`` seconds
    - Uses the same per-account lock as on-demand refresh
    - Never overlaps runs (``max_instances=1``)
    """

    def __init__(
        self,
        manager: TokenLifecycleManager,
        check_interval: int = DEFAULT_SWEEP_INTERVAL_SECONDS,
        refresh_buffer: int = DEFAULT_SWEEP_REFRESH_BUFFER_SECONDS,
    ) -> None:
        """Initialize token refresh scheduler.

        Args:
            manager: Lifecycle manager that performs the refreshes
            check_interval: Seconds between refresh checks
            refresh_buffer: Refresh when expiring within this many seconds
        """
        self.manager = manager
        self.check_interval = check_interval
        self.refresh_buffer = refresh_buffer
        self._scheduler: AsyncIOScheduler | None = None
        self._initial_run: asyncio.Task[RefreshSweepResult | None] | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    async def start(self) -> None:
        """Start the refresh scheduler."""
        if self._scheduler is not None:
            logger.warning("refresh_scheduler_already_running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            "interval",
            seconds=self.check_interval,
            id=REFRESH_JOB_ID,
            name="Social Account Token Refresh",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()

        logger.info(
            "token_refresh_scheduler_started",
            check_interval=self.check_interval,
            refresh_buffer=self.refresh_buffer,
        )

        # Run initial check immediately
        self._initial_run = asyncio.create_task(self.run_once())

    async def stop(self) -> None:
        """Stop the refresh scheduler."""
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None

        if self._initial_run is not None and not self._initial_run.done():
            self._initial_run.cancel()
            try:
                await self._initial_run
            except asyncio.CancelledError:
                pass
        self._initial_run = None

        logger.info("token_refresh_scheduler_stopped")

    async def run_once(self) -> RefreshSweepResult | None:
        """Run one refresh sweep.

        Returns:
            Sweep counts, or None if the sweep itself failed
        """
        try:
            return await self.manager.refresh_due_accounts(self.refresh_buffer)
        except Exception:
            # Keep the interval job alive; per-account failures are handled inside
            logger.exception("token_refresh_sweep_failed")
            return None
