"""Publish job model - the durable delayed job queue."""

from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Text,
    Index,
    CheckConstraint,
    text,
)
from datetime import datetime
from typing import Optional
import uuid

from src.config.constants import JobState, TERMINAL_JOB_STATES
from src.config.database import Base


class PublishJob(Base):
    """
    One publish attempt chain for a post.

    State machine:
        pending -> active -> completed
                          -> failed
                          -> pending   (retry with backoff)
        pending -> (deleted)           (cancel / reschedule)
        active  -> cancelled           (superseded by a newer enqueue)

    A pending job is "waiting" when not_before <= now and "delayed"
    otherwise. At most one pending job may exist per post; the partial
    unique index enforces it at the store level.

    Terminal rows stay around for queue statistics and are purged after
    JOB_RETENTION_HOURS.
    """

    __tablename__ = "publish_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    post_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36))

    state = Column(String(20), nullable=False, default=JobState.PENDING.value, index=True)
    not_before = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    enqueued_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Retry logic
    attempt_count = Column(Integer, nullable=False, default=0)
    next_retry_at = Column(DateTime)
    last_error = Column(Text)

    # Claim tracking
    claimed_by = Column(String(100))
    claimed_at = Column(DateTime)
    finished_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint(
            "state IN ('pending', 'active', 'completed', 'failed', 'cancelled')",
            name="check_publish_job_state",
        ),
        Index(
            "uq_publish_jobs_pending_post",
            "post_id",
            unique=True,
            postgresql_where=text("state = 'pending'"),
            sqlite_where=text("state = 'pending'"),
        ),
        Index("ix_publish_jobs_due", "state", "not_before", "enqueued_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.state in {s.value for s in TERMINAL_JOB_STATES}

    def is_delayed(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return self.state == JobState.PENDING.value and self.not_before > now

    def display_state(self, now: Optional[datetime] = None) -> str:
        """State as shown in queue stats: pending splits into waiting/delayed."""
        if self.state == JobState.PENDING.value:
            return "delayed" if self.is_delayed(now) else "waiting"
        return self.state

    def __repr__(self):
        return f"<PublishJob {self.id} post={self.post_id} ({self.state}) not_before={self.not_before}>"
