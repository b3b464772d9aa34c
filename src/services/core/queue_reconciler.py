"""Queue reconciliation - repair state left behind by crashed workers and keep the queue in sync with posts."""

from datetime import datetime, timedelta
from typing import Callable, Optional

from src.config.constants import PostStatus
from src.config.settings import settings
from src.repositories.post_repository import PostRepository
from src.repositories.queue_repository import QueueRepository
from src.services.base_service import BaseService
from src.services.core.publish_worker import OutcomeKind, PublishWorker
from src.utils.logger import logger


class QueueReconciler(BaseService):
    """
    Keep posts and publish jobs consistent.

    - reconcile_stuck_posts: run on worker startup and then every
      RECONCILE_INTERVAL_SECONDS. Active jobs claimed more than
      STALLED_JOB_TIMEOUT_SECONDS ago (their worker died) are settled as
      a failed attempt, then every PUBLISHING post left without a live
      job goes through the same retry/fail path.
    - sync_scheduled_posts: enqueue SCHEDULED posts that have no live job.
    - cleanup_finished_jobs: purge terminal jobs past retention.
    """

    def __init__(
        self,
        worker: Optional[PublishWorker] = None,
        queue_repo: Optional[QueueRepository] = None,
        post_repo: Optional[PostRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__()
        self.queue_repo = queue_repo or QueueRepository()
        self.post_repo = post_repo or PostRepository()
        self.clock = clock or datetime.utcnow
        self.worker = worker or PublishWorker(
            queue_repo=self.queue_repo, post_repo=self.post_repo, clock=self.clock
        )

    def reconcile_stuck_posts(self, triggered_by: str = "system") -> dict:
        """
        Recover jobs and posts interrupted mid-publish.

        Returns:
            dict with stalled_jobs, stuck_posts, requeued and failed counts
        """
        with self.track_execution("reconcile_stuck_posts", triggered_by=triggered_by) as run_id:
            now = self.clock()
            cutoff = now - timedelta(seconds=settings.STALLED_JOB_TIMEOUT_SECONDS)

            summary = {"stalled_jobs": 0, "stuck_posts": 0, "requeued": 0, "failed": 0}

            for job in self.queue_repo.get_stalled(cutoff):
                summary["stalled_jobs"] += 1
                logger.warning(
                    f"[QueueReconciler] Job {job.id} for post {job.post_id} stalled "
                    f"(claimed by {job.claimed_by} at {job.claimed_at})"
                )
                self._count(summary, self.worker.recover_stalled_job(job).kind)

            for post in self.post_repo.get_by_status(PostStatus.PUBLISHING):
                if self.queue_repo.has_live_job(post.id):
                    continue
                summary["stuck_posts"] += 1
                logger.warning(f"[QueueReconciler] Post {post.id} stuck in PUBLISHING with no job")
                self._count(summary, self.worker.recover_stuck_post(post).kind)

            if summary["stalled_jobs"] or summary["stuck_posts"]:
                logger.info(
                    f"[QueueReconciler] Reconciled {summary['stalled_jobs']} stalled jobs and "
                    f"{summary['stuck_posts']} stuck posts ({summary['requeued']} requeued, "
                    f"{summary['failed']} failed)"
                )
            self.set_result_summary(run_id, summary)
            return summary

    @staticmethod
    def _count(summary: dict, kind: OutcomeKind):
        if kind == OutcomeKind.RETRY_SCHEDULED:
            summary["requeued"] += 1
        elif kind == OutcomeKind.FAILED:
            summary["failed"] += 1

    def sync_scheduled_posts(self, triggered_by: str = "scheduler") -> dict:
        """
        Enqueue every SCHEDULED post that has a time but no live job.

        Covers posts scheduled while no worker was running and jobs lost
        with the queue. Past times are due immediately.
        """
        with self.track_execution("sync_scheduled_posts", triggered_by=triggered_by) as run_id:
            now = self.clock()
            posts = self.post_repo.get_scheduled()
            enqueued = 0

            for post in posts:
                if self.queue_repo.has_live_job(post.id):
                    continue
                self.queue_repo.enqueue(post.id, user_id=post.user_id, not_before=post.scheduled_at, now=now)
                enqueued += 1
                logger.info(f"[QueueReconciler] Enqueued scheduled post {post.id} for {post.scheduled_at}")

            result = {"scheduled_posts": len(posts), "enqueued": enqueued}
            self.set_result_summary(run_id, result)
            return result

    def cleanup_finished_jobs(self, retention_hours: Optional[int] = None, triggered_by: str = "scheduler") -> int:
        """Delete completed, failed and cancelled jobs older than the retention window."""
        retention = retention_hours or settings.JOB_RETENTION_HOURS
        with self.track_execution(
            "cleanup_finished_jobs",
            triggered_by=triggered_by,
            input_params={"retention_hours": retention},
        ) as run_id:
            deleted = self.queue_repo.clean_finished(retention, now=self.clock())
            if deleted:
                logger.info(f"[QueueReconciler] Removed {deleted} finished jobs older than {retention}h")
            self.set_result_summary(run_id, {"deleted": deleted})
            return deleted
