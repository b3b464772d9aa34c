"""Publish queue repository - durable delayed jobs with atomic claims."""
from typing import Optional, List
from datetime import datetime, timedelta

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config.constants import JobState
from src.repositories.base_repository import BaseRepository
from src.models.publish_job import PublishJob
from src.utils.logger import logger

PENDING = JobState.PENDING.value
ACTIVE = JobState.ACTIVE.value


class QueueRepository(BaseRepository):
    """
    Repository for the publish job queue.

    Guarantees:
    - At most one pending job per post (cancel-then-add plus a partial
      unique index).
    - A job is claimed by exactly one worker: dequeue_due only accepts a
      claim whose conditional UPDATE (state = 'pending') hit one row.
    """

    CLAIM_BATCH_SIZE = 5

    def __init__(self, db: Optional[Session] = None):
        super().__init__(db)

    def get_by_id(self, job_id: str) -> Optional[PublishJob]:
        result = self.db.query(PublishJob).filter(PublishJob.id == job_id).first()
        self.end_read_transaction()
        return result

    def get_live_job(self, post_id: str) -> Optional[PublishJob]:
        """The pending or active job for a post, if any."""
        result = (
            self.db.query(PublishJob)
            .filter(PublishJob.post_id == post_id, PublishJob.state.in_((PENDING, ACTIVE)))
            .order_by(PublishJob.enqueued_at.desc())
            .first()
        )
        self.end_read_transaction()
        return result

    def has_live_job(self, post_id: str) -> bool:
        return self.get_live_job(post_id) is not None

    def get_latest_job(self, post_id: str) -> Optional[PublishJob]:
        result = (
            self.db.query(PublishJob)
            .filter(PublishJob.post_id == post_id)
            .order_by(PublishJob.enqueued_at.desc())
            .first()
        )
        self.end_read_transaction()
        return result

    def enqueue(
        self,
        post_id: str,
        user_id: Optional[str] = None,
        not_before: Optional[datetime] = None,
        attempt_count: int = 0,
        now: Optional[datetime] = None,
    ) -> PublishJob:
        """
        Add a job for a post, replacing any pending one (idempotent).

        A not_before in the past (or None) makes the job ready immediately.
        Losing a race against a concurrent enqueue for the same post trips
        the unique index; the cancel-then-add is retried once.
        """
        now = now or datetime.utcnow()
        due = not_before if not_before and not_before > now else now

        for attempt in range(2):
            try:
                self.db.query(PublishJob).filter(
                    PublishJob.post_id == post_id, PublishJob.state == PENDING
                ).delete(synchronize_session=False)

                job = PublishJob(
                    post_id=post_id,
                    user_id=user_id,
                    state=PENDING,
                    not_before=due,
                    enqueued_at=now,
                    attempt_count=attempt_count,
                    next_retry_at=due if attempt_count else None,
                )
                self.db.add(job)
                self.commit()
                self.db.refresh(job)
                return job
            except IntegrityError:
                if attempt:
                    raise
                logger.warning(f"[Queue] Concurrent enqueue for post {post_id}, retrying")

    def cancel(self, post_id: str) -> bool:
        """
        Remove the pending job for a post.

        Returns False when there was none; a job already claimed by a worker
        cannot be cancelled and its in-flight attempt runs to completion.
        """
        deleted = (
            self.db.query(PublishJob)
            .filter(PublishJob.post_id == post_id, PublishJob.state == PENDING)
            .delete(synchronize_session=False)
        )
        self.commit()
        return deleted > 0

    def dequeue_due(self, now: Optional[datetime] = None, worker_id: str = "worker") -> Optional[PublishJob]:
        """
        Claim the oldest due job.

        Candidates are read FIFO (due time, then enqueue time) and claimed
        with a conditional UPDATE. On PostgreSQL the candidate read also
        skips rows locked by other workers.
        """
        now = now or datetime.utcnow()
        candidates = (
            self.db.query(PublishJob.id)
            .filter(PublishJob.state == PENDING, PublishJob.not_before <= now)
            .order_by(PublishJob.not_before.asc(), PublishJob.enqueued_at.asc(), PublishJob.id.asc())
            .limit(self.CLAIM_BATCH_SIZE)
            .with_for_update(skip_locked=True)
            .all()
        )

        for (job_id,) in candidates:
            if self.claim(job_id, worker_id, now):
                return self.get_by_id(job_id)

        self.end_read_transaction()
        return None

    def claim(self, job_id: str, worker_id: str, now: Optional[datetime] = None) -> bool:
        """Atomically move one pending job to active. True only for the winning worker."""
        now = now or datetime.utcnow()
        result = self.db.execute(
            update(PublishJob)
            .where(PublishJob.id == job_id, PublishJob.state == PENDING)
            .values(state=ACTIVE, claimed_by=worker_id, claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        self.commit()
        return result.rowcount == 1

    def requeue(
        self,
        job_id: str,
        delay_ms: int,
        error: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Return an active job to pending after a failed attempt.

        Increments attempt_count and delays the job by delay_ms. If a newer
        pending job already exists for the post (rescheduled while in
        flight), this job is cancelled instead and False is returned.
        """
        now = now or datetime.utcnow()
        job = self.db.query(PublishJob).filter(PublishJob.id == job_id).first()
        if job is None:
            self.end_read_transaction()
            return False

        retry_at = now + timedelta(milliseconds=delay_ms)
        newer_pending = (
            self.db.query(PublishJob.id)
            .filter(PublishJob.post_id == job.post_id, PublishJob.state == PENDING)
            .first()
        )
        if newer_pending is None:
            job.state = PENDING
            job.attempt_count = (job.attempt_count or 0) + 1
            job.not_before = retry_at
            job.next_retry_at = retry_at
            job.last_error = error
            job.claimed_by = None
            job.claimed_at = None
            try:
                self.commit()
                return True
            except IntegrityError:
                logger.info(f"[Queue] Job {job_id} superseded during requeue")
                job = self.db.query(PublishJob).filter(PublishJob.id == job_id).first()

        job.state = JobState.CANCELLED.value
        job.attempt_count = (job.attempt_count or 0) + 1
        job.last_error = error
        job.finished_at = now
        self.commit()
        logger.info(f"[Queue] Job {job_id} superseded by a newer enqueue for post {job.post_id}")
        return False

    def _finish(self, job_id: str, state: JobState, error: Optional[str], now: Optional[datetime], count_attempt: bool):
        values = {"state": state.value, "finished_at": now or datetime.utcnow()}
        if error is not None:
            values["last_error"] = error
        if count_attempt:
            values["attempt_count"] = PublishJob.attempt_count + 1
        result = self.db.execute(
            update(PublishJob)
            .where(PublishJob.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.commit()
        return result.rowcount == 1

    def complete(self, job_id: str, now: Optional[datetime] = None) -> bool:
        return self._finish(job_id, JobState.COMPLETED, None, now, count_attempt=True)

    def fail(
        self,
        job_id: str,
        error: str,
        now: Optional[datetime] = None,
        count_attempt: bool = True,
    ) -> bool:
        return self._finish(job_id, JobState.FAILED, error, now, count_attempt)

    def discard(self, job_id: str, reason: str, now: Optional[datetime] = None) -> bool:
        """Drop a claimed job that has nothing to do (post gone or no longer scheduled)."""
        return self._finish(job_id, JobState.CANCELLED, reason, now, count_attempt=False)

    def get_stalled(self, claimed_before: datetime) -> List[PublishJob]:
        """Active jobs claimed before the cutoff (their worker most likely died)."""
        result = (
            self.db.query(PublishJob)
            .filter(PublishJob.state == ACTIVE, PublishJob.claimed_at < claimed_before)
            .order_by(PublishJob.claimed_at.asc())
            .all()
        )
        self.end_read_transaction()
        return result

    def stats(self, now: Optional[datetime] = None) -> dict:
        """Counts of waiting, active, completed, failed and delayed jobs."""
        now = now or datetime.utcnow()
        rows = (
            self.db.query(PublishJob.state, func.count(PublishJob.id))
            .filter(PublishJob.state != PENDING)
            .group_by(PublishJob.state)
            .all()
        )
        by_state = {state: count for state, count in rows}
        waiting = (
            self.db.query(func.count(PublishJob.id))
            .filter(PublishJob.state == PENDING, PublishJob.not_before <= now)
            .scalar()
        )
        delayed = (
            self.db.query(func.count(PublishJob.id))
            .filter(PublishJob.state == PENDING, PublishJob.not_before > now)
            .scalar()
        )
        self.end_read_transaction()

        stats = {
            "waiting": waiting or 0,
            "active": by_state.get(ACTIVE, 0),
            "completed": by_state.get(JobState.COMPLETED.value, 0),
            "failed": by_state.get(JobState.FAILED.value, 0),
            "delayed": delayed or 0,
        }
        stats["total"] = sum(stats.values())
        return stats

    def list_jobs(
        self,
        state: Optional[str] = None,
        limit: int = 20,
        now: Optional[datetime] = None,
    ) -> List[PublishJob]:
        """
        Recent jobs, newest first.

        state accepts a stored state or one of the derived 'waiting'/'delayed'.
        """
        now = now or datetime.utcnow()
        query = self.db.query(PublishJob)
        if state == "waiting":
            query = query.filter(PublishJob.state == PENDING, PublishJob.not_before <= now)
        elif state == "delayed":
            query = query.filter(PublishJob.state == PENDING, PublishJob.not_before > now)
        elif state:
            query = query.filter(PublishJob.state == state)

        result = query.order_by(PublishJob.enqueued_at.desc()).limit(limit).all()
        self.end_read_transaction()
        return result

    def clean_finished(self, older_than_hours: int, now: Optional[datetime] = None) -> int:
        """Delete terminal jobs finished more than older_than_hours ago."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(hours=older_than_hours)
        deleted = (
            self.db.query(PublishJob)
            .filter(
                PublishJob.state.in_(
                    (JobState.COMPLETED.value, JobState.FAILED.value, JobState.CANCELLED.value)
                ),
                PublishJob.finished_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
        self.commit()
        return deleted
