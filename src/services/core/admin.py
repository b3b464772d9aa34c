"""Admin service - operator actions behind the admin HTTP routes and the CLI."""

from datetime import datetime
from typing import Callable, Optional

from src.config.constants import JobState, PostStatus
from src.exceptions import (
    PostAlreadyPublishedError,
    PostAlreadyPublishingError,
    PostNotFoundError,
    PostNotRetryableError,
    ProfileInactiveError,
)
from src.models.post import Post
from src.models.publish_job import PublishJob
from src.repositories.post_repository import PostRepository
from src.repositories.profile_repository import ProfileRepository
from src.repositories.queue_repository import QueueRepository
from src.services.base_service import BaseService
from src.services.core.refresh_scheduler import TokenRefreshScheduler
from src.services.integrations.token_manager import RefreshOutcome, TokenManager
from src.utils.logger import logger

QUEUE_STATES = ("waiting", "active", "delayed", "completed", "failed")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_job(job: PublishJob, now: Optional[datetime] = None) -> dict:
    return {
        "id": job.id,
        "post_id": job.post_id,
        "state": job.display_state(now),
        "attempt_count": job.attempt_count,
        "not_before": _iso(job.not_before),
        "enqueued_at": _iso(job.enqueued_at),
        "claimed_by": job.claimed_by,
        "finished_at": _iso(job.finished_at),
        "last_error": job.last_error,
    }


class AdminService(BaseService):
    """
    Manual publish, retry, queue inspection and token maintenance.

    Raises publishing exceptions (PostNotFoundError, PostStateError
    subclasses, ProfileInactiveError, ProfileNotFoundError) that the API
    layer maps to HTTP status codes.
    """

    def __init__(
        self,
        post_repo: Optional[PostRepository] = None,
        profile_repo: Optional[ProfileRepository] = None,
        queue_repo: Optional[QueueRepository] = None,
        refresh_scheduler: Optional[TokenRefreshScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__()
        self.post_repo = post_repo or PostRepository()
        self.profile_repo = profile_repo or ProfileRepository()
        self.queue_repo = queue_repo or QueueRepository()
        self.clock = clock or datetime.utcnow
        self._owns_scheduler = refresh_scheduler is None
        self.refresh_scheduler = refresh_scheduler or TokenRefreshScheduler(
            TokenManager(profile_repo=self.profile_repo, clock=self.clock)
        )

    @property
    def token_manager(self) -> TokenManager:
        return self.refresh_scheduler.token_manager

    def close(self):
        super().close()
        if self._owns_scheduler:
            self.token_manager.close()

    # ==================== Posts ====================

    def _get_post(self, post_id: str) -> Post:
        post = self.post_repo.get_by_id(post_id)
        if post is None:
            raise PostNotFoundError(post_id)
        return post

    def _require_active_profile(self, post: Post):
        profile = self.profile_repo.get_by_id(post.profile_id)
        if profile is None or not profile.is_active:
            raise ProfileInactiveError(post.profile_id)

    def publish_post(self, post_id: str, triggered_by: str = "admin") -> dict:
        """
        Publish a post now, bypassing its schedule.

        FAILED posts are reset to SCHEDULED first (error cleared, attempt
        count kept).

        Raises:
            PostNotFoundError: Unknown post
            PostAlreadyPublishedError: Post is PUBLISHED
            PostAlreadyPublishingError: Post is PUBLISHING, its job is claimed,
                or its status changed before the reset could be written
            ProfileInactiveError: Target profile is inactive
        """
        post = self._get_post(post_id)
        status = PostStatus(post.status)
        scheduled_at = post.scheduled_at
        if status == PostStatus.PUBLISHED:
            raise PostAlreadyPublishedError(post_id)
        if status == PostStatus.PUBLISHING:
            raise PostAlreadyPublishingError(post_id)

        live_job = self.queue_repo.get_live_job(post_id)
        if live_job is not None and live_job.state == JobState.ACTIVE.value:
            raise PostAlreadyPublishingError(post_id)

        self._require_active_profile(post)

        now = self.clock()
        # Both writes are conditional on the status read above
        if status == PostStatus.FAILED:
            written = self.post_repo.reset_for_retry(post_id)
        else:
            written = self.post_repo.set_schedule(
                post_id, PostStatus.SCHEDULED, scheduled_at or now, expected=status
            )
        if not written:
            logger.warning(f"[AdminService] Post {post_id} left {status.value} before publish-now could queue it")
            raise PostAlreadyPublishingError(post_id)

        job = self.queue_repo.enqueue(post_id, user_id=post.user_id, now=now)
        logger.info(f"[AdminService] Post {post_id} queued for immediate publishing by {triggered_by} (job {job.id})")
        return {
            "success": True,
            "post_id": post_id,
            "job_id": job.id,
            "status": PostStatus.SCHEDULED.value,
            "message": "Post queued for publishing",
        }

    def retry_post(self, post_id: str, triggered_by: str = "admin") -> dict:
        """
        Retry a FAILED post with a fresh job.

        Raises:
            PostNotFoundError: Unknown post
            PostNotRetryableError: Post is not FAILED
            ProfileInactiveError: Target profile is inactive (reconnect first)
        """
        post = self._get_post(post_id)
        if post.status != PostStatus.FAILED.value:
            raise PostNotRetryableError(post_id, post.status)

        self._require_active_profile(post)

        if not self.post_repo.reset_for_retry(post_id):
            # Someone else retried it between the read and the update
            current = self._get_post(post_id)
            raise PostNotRetryableError(post_id, current.status)

        job = self.queue_repo.enqueue(post_id, user_id=post.user_id, now=self.clock())
        logger.info(f"[AdminService] Post {post_id} reset for retry by {triggered_by} (job {job.id})")
        return {
            "success": True,
            "post_id": post_id,
            "job_id": job.id,
            "status": PostStatus.SCHEDULED.value,
            "attempt_count": post.attempt_count,
            "message": "Post queued for retry",
        }

    def get_publish_status(self, post_id: str) -> dict:
        """Status snapshot of a post and its latest job."""
        post = self._get_post(post_id)
        now = self.clock()
        job = self.queue_repo.get_latest_job(post_id)

        status = {
            "post_id": post.id,
            "status": post.status,
            "platform": post.platform,
            "profile_id": post.profile_id,
            "scheduled_at": _iso(post.scheduled_at),
            "published_at": _iso(post.published_at),
            "failed_at": _iso(post.failed_at),
            "error_message": post.error_message,
            "attempt_count": post.attempt_count,
            "platform_post_id": post.platform_post_id,
            "job": serialize_job(job, now) if job else None,
        }
        if post.status == PostStatus.FAILED.value:
            profile = self.profile_repo.get_by_id(post.profile_id)
            status["can_retry"] = bool(profile and profile.is_active)
        return status

    # ==================== Queue ====================

    def queue_overview(self, recent_limit: int = 10) -> dict:
        """Queue counts plus the most recent jobs in each state."""
        now = self.clock()
        return {
            "counts": self.queue_repo.stats(now=now),
            "recent": {
                state: [serialize_job(job, now) for job in self.queue_repo.list_jobs(state, recent_limit, now=now)]
                for state in QUEUE_STATES
            },
        }

    # ==================== Tokens ====================

    async def refresh_tokens(self, triggered_by: str = "admin") -> dict:
        """Run the token refresh pass now."""
        return await self.refresh_scheduler.run_once(triggered_by=triggered_by)

    def tokens_needing_refresh(self, threshold_hours: Optional[int] = None) -> dict:
        threshold = threshold_hours or self.token_manager.threshold_hours
        profiles = self.token_manager.get_profiles_needing_refresh(threshold)
        return {"threshold_hours": threshold, "count": len(profiles), "profiles": profiles}

    async def refresh_profile_token(self, profile_id: str, triggered_by: str = "admin") -> RefreshOutcome:
        """
        Raises:
            ProfileNotFoundError: Unknown profile
        """
        return await self.token_manager.refresh_profile(profile_id, triggered_by=triggered_by)

    def check_profile_token(self, profile_id: str) -> dict:
        """
        Token status for one profile (expiry, refresh need, deactivation reason).

        Raises:
            ProfileNotFoundError: Unknown profile
        """
        return self.token_manager.check_token_health(profile_id)
