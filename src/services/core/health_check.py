"""Health check service - system health monitoring."""

from datetime import datetime, timedelta

from src.config.constants import PostStatus
from src.config.settings import settings
from src.repositories.base_repository import BaseRepository
from src.repositories.post_repository import PostRepository
from src.repositories.profile_repository import ProfileRepository
from src.repositories.queue_repository import QueueRepository
from src.services.base_service import BaseService
from src.utils.logger import logger
from src.utils.validators import ConfigValidator


class HealthCheckService(BaseService):
    """System health monitoring."""

    QUEUE_BACKLOG_THRESHOLD = 50

    def __init__(self):
        super().__init__()
        self.queue_repo = QueueRepository()
        self.post_repo = PostRepository()
        self.profile_repo = ProfileRepository()

    def check_all(self) -> dict:
        """
        Run all health checks.

        Returns:
            Dict with overall status and individual check results
        """
        checks = {
            "database": self._check_database(),
            "encryption": self._check_encryption(),
            "platforms": self._check_platform_config(),
            "queue": self._check_queue(),
            "profiles": self._check_profiles(),
            "background_runs": self._check_background_runs(),
        }

        all_healthy = all(check["healthy"] for check in checks.values())
        overall_status = "healthy" if all_healthy else "unhealthy"

        return {
            "status": overall_status,
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        }

    def _check_database(self) -> dict:
        """Check database connectivity."""
        try:
            BaseRepository.check_connection()
            return {"healthy": True, "message": "Database connection OK"}
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"healthy": False, "message": f"Database error: {str(e)}"}

    def _check_encryption(self) -> dict:
        if not settings.ENCRYPTION_KEY:
            return {"healthy": False, "message": "ENCRYPTION_KEY not configured"}
        return {"healthy": True, "message": "Token encryption configured"}

    def _check_platform_config(self) -> dict:
        """App credentials needed for token refresh. Missing ones degrade refresh only."""
        missing = ConfigValidator.missing_platform_credentials()
        if missing:
            return {
                "healthy": True,
                "message": f"Token refresh unavailable for: {', '.join(sorted(missing))}",
                "missing": sorted(missing),
            }
        return {"healthy": True, "message": "All platform app credentials configured", "missing": []}

    def _check_queue(self) -> dict:
        """Check publish queue health."""
        try:
            stats = self.queue_repo.stats()
            stalled = self.queue_repo.get_stalled(
                datetime.utcnow() - timedelta(seconds=settings.STALLED_JOB_TIMEOUT_SECONDS)
            )

            if stalled:
                return {
                    "healthy": False,
                    "message": f"{len(stalled)} job(s) stalled in active state",
                    "stats": stats,
                }

            if stats["waiting"] > self.QUEUE_BACKLOG_THRESHOLD:
                return {
                    "healthy": False,
                    "message": f"Queue backlog: {stats['waiting']} jobs due and waiting",
                    "stats": stats,
                }

            return {
                "healthy": True,
                "message": (
                    f"Queue healthy ({stats['waiting']} waiting, {stats['delayed']} delayed, "
                    f"{stats['active']} active)"
                ),
                "stats": stats,
            }

        except Exception as e:
            return {"healthy": False, "message": f"Queue check error: {str(e)}"}

    def _check_profiles(self) -> dict:
        """Inactive profiles and tokens close to expiry."""
        try:
            profiles = self.profile_repo.get_all()
            inactive = [p for p in profiles if not p.is_active]
            expiring = self.profile_repo.get_expiring(
                datetime.utcnow() + timedelta(hours=settings.TOKEN_REFRESH_THRESHOLD_HOURS)
            )
            failed_posts = self.post_repo.count_by_status().get(PostStatus.FAILED.value, 0)

            response = {
                "healthy": not inactive,
                "total": len(profiles),
                "inactive": len(inactive),
                "expiring_soon": len(expiring),
                "failed_posts": failed_posts,
            }
            if inactive:
                response["message"] = f"{len(inactive)} profile(s) need to be reconnected"
            elif expiring:
                response["message"] = f"{len(expiring)} token(s) expiring soon, refresh pending"
            else:
                response["message"] = f"{len(profiles)} profile(s) OK"
            return response

        except Exception as e:
            return {"healthy": False, "message": f"Profile check error: {str(e)}"}

    def _check_background_runs(self) -> dict:
        """Tracked refresh/reconcile/sync runs that failed in the last day."""
        try:
            failed = self.service_run_repo.get_failed_runs(since_hours=24)
            if not failed:
                return {"healthy": True, "message": "No failed background runs in the last 24h"}

            names = sorted({f"{run.service_name}.{run.method_name}" for run in failed})
            return {
                "healthy": False,
                "message": f"{len(failed)} failed run(s) in the last 24h: {', '.join(names)}",
                "latest_error": failed[0].error_message,
            }

        except Exception as e:
            return {"healthy": False, "message": f"Background run check error: {str(e)}"}
