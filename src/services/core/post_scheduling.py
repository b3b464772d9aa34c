"""Post scheduling - keeps the publish queue in step with post status edits."""

from datetime import datetime
from typing import Callable, Optional

from src.config.constants import PostStatus
from src.exceptions import (
    PostAlreadyPublishedError,
    PostAlreadyPublishingError,
    PostNotFoundError,
)
from src.models.post import Post
from src.repositories.post_repository import PostRepository
from src.repositories.queue_repository import QueueRepository
from src.services.base_service import BaseService
from src.utils.logger import logger


class PostSchedulingService(BaseService):
    """
    Status/schedule changes made from the post editor.

    Every change cancels the post's pending job before (optionally) adding
    a new one, so a post never has two live jobs. A job a worker has
    already claimed cannot be cancelled; its attempt runs to completion.
    """

    def __init__(
        self,
        post_repo: Optional[PostRepository] = None,
        queue_repo: Optional[QueueRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__()
        self.post_repo = post_repo or PostRepository()
        self.queue_repo = queue_repo or QueueRepository()
        self.clock = clock or datetime.utcnow

    def _get_editable(self, post_id: str) -> Post:
        post = self.post_repo.get_by_id(post_id)
        if post is None:
            raise PostNotFoundError(post_id)
        if post.status == PostStatus.PUBLISHED.value:
            raise PostAlreadyPublishedError(post_id)
        if post.status == PostStatus.PUBLISHING.value:
            raise PostAlreadyPublishingError(post_id)
        return post

    def _write_schedule(self, post: Post, status: PostStatus, scheduled_at: Optional[datetime]):
        """Write the new status/schedule only if the post still has the status just read."""
        expected = PostStatus(post.status)
        if not self.post_repo.set_schedule(post.id, status, scheduled_at, expected=expected):
            logger.warning(f"[PostScheduling] Post {post.id} left {expected.value} before the edit was written")
            raise PostAlreadyPublishingError(post.id)

    def schedule(self, post_id: str, scheduled_at: datetime):
        """
        Schedule (or reschedule) a post.

        Raises:
            PostNotFoundError, PostAlreadyPublishedError
            PostAlreadyPublishingError: Post is PUBLISHING, or a worker claimed it
                before the new schedule was written
        """
        post = self._get_editable(post_id)
        self._write_schedule(post, PostStatus.SCHEDULED, scheduled_at)
        job = self.queue_repo.enqueue(post.id, user_id=post.user_id, not_before=scheduled_at, now=self.clock())
        logger.info(f"[PostScheduling] Post {post.id} scheduled for {scheduled_at} (job {job.id})")
        return job

    def publish_now(self, post_id: str):
        """Schedule a post for immediate publishing."""
        post = self._get_editable(post_id)
        now = self.clock()
        self._write_schedule(post, PostStatus.SCHEDULED, now)
        job = self.queue_repo.enqueue(post.id, user_id=post.user_id, now=now)
        logger.info(f"[PostScheduling] Post {post.id} queued for immediate publishing (job {job.id})")
        return job

    def revert_to_draft(self, post_id: str) -> bool:
        """Move a post back to DRAFT and drop its pending job. Returns whether a job was cancelled."""
        post = self._get_editable(post_id)
        self._write_schedule(post, PostStatus.DRAFT, None)
        cancelled = self.queue_repo.cancel(post.id)
        logger.info(f"[PostScheduling] Post {post.id} reverted to draft (job cancelled: {cancelled})")
        return cancelled

    def delete_post(self, post_id: str) -> bool:
        """
        Delete a post and its pending job.

        A post being published right now may still be published by the
        worker holding it; its terminal write then hits no row.
        """
        post = self.post_repo.get_by_id(post_id)
        if post is None:
            raise PostNotFoundError(post_id)
        self.queue_repo.cancel(post_id)
        deleted = self.post_repo.delete(post_id)
        logger.info(f"[PostScheduling] Post {post_id} deleted")
        return deleted
