"""Token refresh scheduler - periodic proactive refresh of expiring credentials."""

import asyncio
from typing import Optional

from src.config.settings import settings
from src.services.integrations.token_manager import TokenManager
from src.utils.logger import logger


class TokenRefreshScheduler:
    """
    Run TokenManager.refresh_all_expiring on a fixed interval.

    Overlapping triggers inside one process (timer tick vs. admin endpoint)
    are serialized by a lock; a trigger that finds a run in progress returns
    a skipped summary instead of waiting. Separate processes may still
    overlap, which refresh_all_expiring tolerates by re-reading each profile
    before refreshing it.
    """

    def __init__(
        self,
        token_manager: Optional[TokenManager] = None,
        interval_seconds: Optional[int] = None,
    ):
        self.token_manager = token_manager or TokenManager()
        self.interval_seconds = interval_seconds or settings.token_refresh_interval_seconds
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_once(self, triggered_by: str = "scheduler") -> dict:
        """Refresh all expiring tokens now, unless a run is already in progress."""
        if self._lock.locked():
            logger.info(f"[TokenRefreshScheduler] Refresh already running, skipping ({triggered_by})")
            return {
                "run_skipped": True,
                "total": 0,
                "refreshed": 0,
                "failed": 0,
                "skipped": 0,
                "results": [],
                "message": "A token refresh run is already in progress",
            }

        async with self._lock:
            try:
                result = await self.token_manager.refresh_all_expiring(triggered_by=triggered_by)
            finally:
                self.token_manager.cleanup_transactions()
            return {"run_skipped": False, **result}

    async def run_forever(self):
        """Refresh loop. Errors are logged and the loop keeps going."""
        logger.info(f"[TokenRefreshScheduler] Starting token refresh loop (interval: {self.interval_seconds}s)")

        while True:
            try:
                result = await self.run_once()
                if result.get("total"):
                    logger.info(
                        f"[TokenRefreshScheduler] {result['refreshed']} refreshed, "
                        f"{result['failed']} failed of {result['total']} expiring"
                    )
            except Exception as e:
                logger.error(f"[TokenRefreshScheduler] Error in token refresh loop: {e}", exc_info=True)

            await asyncio.sleep(self.interval_seconds)
