"""Tests for QueueReconciler."""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from src.config.constants import JobState, PostStatus
from src.config.settings import settings
from src.repositories.post_repository import PostRepository
from src.repositories.queue_repository import QueueRepository
from src.services.core.publish_worker import PublishWorker
from src.services.core.queue_reconciler import QueueReconciler
from src.services.integrations.platforms import build_adapters


@pytest.fixture
def now():
    return datetime.utcnow().replace(microsecond=0)


@pytest.fixture
def queue_repo(test_db):
    return QueueRepository(test_db)


@pytest.fixture
def post_repo(test_db):
    return PostRepository(test_db)


@pytest.fixture
def reconciler(test_db, queue_repo, post_repo, now):
    with patch("src.services.base_service.ServiceRunRepository"):
        clock = lambda: now  # noqa: E731
        worker = PublishWorker(
            queue_repo=queue_repo,
            post_repo=post_repo,
            adapters=build_adapters(),
            clock=clock,
            max_attempts=3,
            backoff_base_ms=2000,
        )
        yield QueueReconciler(worker=worker, queue_repo=queue_repo, post_repo=post_repo, clock=clock)


def _claim(queue_repo, post_repo, post, claimed_at, attempt_count=0):
    """Simulate a worker that claimed the post's job and then died."""
    job = queue_repo.enqueue(post.id, user_id=post.user_id, now=claimed_at)
    job.attempt_count = attempt_count
    queue_repo.db.commit()
    queue_repo.claim(job.id, "dead-worker", claimed_at)
    post_repo.transition_status(post.id, PostStatus.SCHEDULED, PostStatus.PUBLISHING)
    return job.id


@pytest.mark.unit
class TestReconcileStuckPosts:
    def test_stalled_job_requeued(self, reconciler, make_profile, make_post, queue_repo, post_repo, now):
        post = make_post(make_profile())
        job_id = _claim(queue_repo, post_repo, post, claimed_at=now - timedelta(hours=1))

        summary = reconciler.reconcile_stuck_posts()

        assert summary == {"stalled_jobs": 1, "stuck_posts": 0, "requeued": 1, "failed": 0}
        job = queue_repo.get_by_id(job_id)
        assert job.state == JobState.PENDING.value
        assert job.attempt_count == 1
        assert job.not_before == now + timedelta(seconds=2)
        assert post_repo.get_by_id(post.id).status == PostStatus.SCHEDULED.value

    def test_recently_claimed_job_left_alone(self, reconciler, make_profile, make_post, queue_repo, post_repo, now):
        post = make_post(make_profile())
        job_id = _claim(queue_repo, post_repo, post, claimed_at=now - timedelta(seconds=30))

        summary = reconciler.reconcile_stuck_posts()

        assert summary["stalled_jobs"] == 0
        assert summary["stuck_posts"] == 0
        assert queue_repo.get_by_id(job_id).state == JobState.ACTIVE.value

    def test_recent_claim_recovered_once_it_times_out(
        self, test_db, make_profile, make_post, queue_repo, post_repo, now
    ):
        # A worker crashed shortly after claiming; the next pass is too early, a later one is not
        current = [now + timedelta(seconds=60)]
        clock = lambda: current[0]  # noqa: E731
        with patch("src.services.base_service.ServiceRunRepository"):
            worker = PublishWorker(
                queue_repo=queue_repo, post_repo=post_repo, adapters=build_adapters(), clock=clock, max_attempts=3
            )
            reconciler = QueueReconciler(worker=worker, queue_repo=queue_repo, post_repo=post_repo, clock=clock)
        post = make_post(make_profile())
        job_id = _claim(queue_repo, post_repo, post, claimed_at=now)

        first = reconciler.reconcile_stuck_posts(triggered_by="startup")

        assert first["stalled_jobs"] == 0
        assert queue_repo.get_by_id(job_id).state == JobState.ACTIVE.value
        assert post_repo.get_by_id(post.id).status == PostStatus.PUBLISHING.value

        current[0] = now + timedelta(seconds=settings.STALLED_JOB_TIMEOUT_SECONDS + 1)
        second = reconciler.reconcile_stuck_posts(triggered_by="scheduler")

        assert second == {"stalled_jobs": 1, "stuck_posts": 0, "requeued": 1, "failed": 0}
        assert queue_repo.get_by_id(job_id).state == JobState.PENDING.value
        assert post_repo.get_by_id(post.id).status == PostStatus.SCHEDULED.value

    def test_stalled_job_on_last_attempt_fails_post(
        self, reconciler, make_profile, make_post, queue_repo, post_repo, now
    ):
        post = make_post(make_profile())
        _claim(queue_repo, post_repo, post, claimed_at=now - timedelta(hours=1), attempt_count=2)

        summary = reconciler.reconcile_stuck_posts()

        assert summary["failed"] == 1
        stored = post_repo.get_by_id(post.id)
        assert stored.status == PostStatus.FAILED.value
        assert "(after 3 attempts)" in stored.error_message

    def test_publishing_post_without_job(self, reconciler, make_profile, make_post, queue_repo, post_repo, now):
        post = make_post(make_profile(), status=PostStatus.PUBLISHING)

        summary = reconciler.reconcile_stuck_posts()

        assert summary == {"stalled_jobs": 0, "stuck_posts": 1, "requeued": 1, "failed": 0}
        assert post_repo.get_by_id(post.id).status == PostStatus.SCHEDULED.value
        job = queue_repo.get_live_job(post.id)
        assert job.attempt_count == 1
        assert job.not_before == now + timedelta(seconds=2)

    def test_nothing_to_reconcile(self, reconciler, make_profile, make_post):
        make_post(make_profile())

        summary = reconciler.reconcile_stuck_posts()

        assert summary == {"stalled_jobs": 0, "stuck_posts": 0, "requeued": 0, "failed": 0}


@pytest.mark.unit
class TestSyncScheduledPosts:
    def test_enqueues_posts_without_jobs(self, reconciler, make_profile, make_post, queue_repo, now):
        profile = make_profile()
        past = make_post(profile, scheduled_at=now - timedelta(hours=2))
        future = make_post(profile, scheduled_at=now + timedelta(hours=2))
        queued = make_post(profile, scheduled_at=now + timedelta(hours=3))
        queue_repo.enqueue(queued.id, not_before=queued.scheduled_at, now=now)
        make_post(profile, status=PostStatus.DRAFT)

        result = reconciler.sync_scheduled_posts()

        assert result == {"scheduled_posts": 3, "enqueued": 2}
        assert queue_repo.get_live_job(past.id).not_before == now
        assert queue_repo.get_live_job(future.id).not_before == future.scheduled_at

    def test_sync_is_idempotent(self, reconciler, make_profile, make_post):
        make_post(make_profile())

        reconciler.sync_scheduled_posts()

        assert reconciler.sync_scheduled_posts()["enqueued"] == 0


@pytest.mark.unit
class TestCleanupFinishedJobs:
    def test_removes_old_terminal_jobs(self, reconciler, queue_repo, now):
        old_id = queue_repo.enqueue("post-old", now=now - timedelta(days=3)).id
        queue_repo.claim(old_id, "worker-a", now - timedelta(days=3))
        queue_repo.complete(old_id, now=now - timedelta(days=3))
        recent_id = queue_repo.enqueue("post-recent", now=now).id

        deleted = reconciler.cleanup_finished_jobs(retention_hours=24)

        assert deleted == 1
        assert queue_repo.get_by_id(old_id) is None
        assert queue_repo.get_by_id(recent_id) is not None
