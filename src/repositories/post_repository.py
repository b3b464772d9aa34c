"""Post repository - post status transitions used by the publisher."""
from typing import Optional, List
from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from src.config.constants import PostStatus
from src.repositories.base_repository import BaseRepository
from src.models.post import Post


class PostRepository(BaseRepository):
    """
    Repository for Post operations.

    Status changes that race with other writers are conditional updates
    (WHERE status = :expected) and report whether they applied.
    """

    def __init__(self, db: Optional[Session] = None):
        super().__init__(db)

    def get_by_id(self, post_id: str) -> Optional[Post]:
        result = self.db.query(Post).filter(Post.id == post_id).first()
        self.end_read_transaction()
        return result

    def get_by_status(self, status: PostStatus, limit: Optional[int] = None) -> List[Post]:
        query = (
            self.db.query(Post)
            .filter(Post.status == PostStatus(status).value)
            .order_by(Post.scheduled_at.asc())
        )
        if limit:
            query = query.limit(limit)
        result = query.all()
        self.end_read_transaction()
        return result

    def get_scheduled(self) -> List[Post]:
        """SCHEDULED posts that have a scheduled time."""
        result = (
            self.db.query(Post)
            .filter(Post.status == PostStatus.SCHEDULED.value, Post.scheduled_at.isnot(None))
            .order_by(Post.scheduled_at.asc())
            .all()
        )
        self.end_read_transaction()
        return result

    def count_by_status(self) -> dict:
        rows = self.db.query(Post.status, func.count(Post.id)).group_by(Post.status).all()
        self.end_read_transaction()
        counts = {status.value: 0 for status in PostStatus}
        counts.update({status: count for status, count in rows})
        return counts

    def create(
        self,
        user_id: str,
        profile_id: str,
        platform: str,
        content: str = "",
        media_urls: Optional[list] = None,
        media_type: Optional[str] = None,
        post_format: str = "POST",
        status: PostStatus = PostStatus.DRAFT,
        scheduled_at: Optional[datetime] = None,
    ) -> Post:
        post = Post(
            user_id=user_id,
            profile_id=profile_id,
            platform=platform,
            content=content,
            media_urls=media_urls or [],
            media_type=media_type,
            post_format=post_format,
            status=PostStatus(status).value,
            scheduled_at=scheduled_at,
        )
        self.db.add(post)
        self.commit()
        self.db.refresh(post)
        return post

    def delete(self, post_id: str) -> bool:
        deleted = self.db.query(Post).filter(Post.id == post_id).delete(synchronize_session=False)
        self.commit()
        return deleted > 0

    def _update(self, post_id: str, expected: Optional[PostStatus] = None, **values) -> bool:
        """Apply an UPDATE, optionally only when the post is in the expected status."""
        values.setdefault("updated_at", datetime.utcnow())
        statement = update(Post).where(Post.id == post_id)
        if expected is not None:
            statement = statement.where(Post.status == PostStatus(expected).value)
        result = self.db.execute(statement.values(**values))
        self.commit()
        return result.rowcount == 1

    def transition_status(
        self, post_id: str, expected: PostStatus, new_status: PostStatus
    ) -> bool:
        """Compare-and-set the status. Returns False if the post moved on meanwhile."""
        return self._update(post_id, expected=expected, status=PostStatus(new_status).value)

    def set_schedule(
        self,
        post_id: str,
        status: PostStatus,
        scheduled_at: Optional[datetime],
        expected: Optional[PostStatus] = None,
    ) -> bool:
        """
        Editor-side status/schedule change (clears any previous failure).

        Pass the status the caller read as expected; the write then hits
        no row if a worker claimed the post in between.
        """
        return self._update(
            post_id,
            expected=expected,
            status=PostStatus(status).value,
            scheduled_at=scheduled_at,
            failed_at=None,
            error_message=None,
        )

    def mark_published(
        self,
        post_id: str,
        platform_post_id: str,
        metadata: Optional[dict] = None,
        published_at: Optional[datetime] = None,
    ) -> bool:
        """Terminal success. Unconditional: the in-flight worker is the last writer."""
        return self._update(
            post_id,
            status=PostStatus.PUBLISHED.value,
            published_at=published_at or datetime.utcnow(),
            platform_post_id=platform_post_id,
            post_metadata=metadata,
            error_message=None,
            failed_at=None,
            attempt_count=Post.attempt_count + 1,
        )

    def mark_failed(
        self,
        post_id: str,
        error_message: str,
        failed_at: Optional[datetime] = None,
        count_attempt: bool = True,
    ) -> bool:
        """Terminal failure."""
        values = {
            "status": PostStatus.FAILED.value,
            "failed_at": failed_at or datetime.utcnow(),
            "error_message": error_message,
        }
        if count_attempt:
            values["attempt_count"] = Post.attempt_count + 1
        return self._update(post_id, **values)

    def mark_retrying(self, post_id: str, error_message: str, count_attempt: bool = True) -> bool:
        """Return a PUBLISHING post to SCHEDULED while its job waits out the backoff."""
        values = {"status": PostStatus.SCHEDULED.value, "error_message": error_message}
        if count_attempt:
            values["attempt_count"] = Post.attempt_count + 1
        return self._update(post_id, expected=PostStatus.PUBLISHING, **values)

    def reset_for_retry(self, post_id: str) -> bool:
        """FAILED -> SCHEDULED, clearing the error. attempt_count is preserved."""
        return self._update(
            post_id,
            expected=PostStatus.FAILED,
            status=PostStatus.SCHEDULED.value,
            failed_at=None,
            error_message=None,
        )
