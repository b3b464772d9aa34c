"""Post model - content scheduled for a single platform profile."""

from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from datetime import datetime
import uuid

from src.config.constants import PostStatus
from src.config.database import Base, JSONType


class Post(Base):
    """
    Post model.

    Status lifecycle:
        DRAFT -> SCHEDULED -> PUBLISHING -> PUBLISHED
                                         -> FAILED (admin retry resets to SCHEDULED)

    Once a job is dequeued, only the publish worker mutates status.
    attempt_count is cumulative across retries and manual resets; the
    worker decides retries from the job's own counter.
    """

    __tablename__ = "posts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    profile_id = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Content
    content = Column(Text, nullable=False, default="")
    media_urls = Column(JSONType, default=list)  # ["https://..."]
    media_type = Column(String(20))  # 'IMAGE', 'VIDEO' (informational)
    post_format = Column(String(20), default="POST")  # 'POST', 'REEL'
    platform = Column(String(20), nullable=False)  # Platform enum value

    # Lifecycle
    status = Column(String(20), nullable=False, default=PostStatus.DRAFT.value)
    scheduled_at = Column(DateTime)
    published_at = Column(DateTime)
    failed_at = Column(DateTime)
    error_message = Column(Text)
    attempt_count = Column(Integer, nullable=False, default=0)

    # Platform result (set only on success)
    platform_post_id = Column(String(255))
    post_metadata = Column(JSONType)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_posts_status_scheduled_at", "status", "scheduled_at"),
        UniqueConstraint("platform", "platform_post_id", name="unique_platform_post_id"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (PostStatus.PUBLISHED.value, PostStatus.FAILED.value)

    def __repr__(self):
        return f"<Post {self.id} {self.platform} ({self.status})>"
