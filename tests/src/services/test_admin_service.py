"""Tests for AdminService."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock, patch

import pytest

from src.config.constants import PostStatus
from src.exceptions import (
    PostAlreadyPublishedError,
    PostAlreadyPublishingError,
    PostNotFoundError,
    PostNotRetryableError,
    ProfileInactiveError,
)
from src.repositories.post_repository import PostRepository
from src.repositories.profile_repository import ProfileRepository
from src.repositories.queue_repository import QueueRepository
from src.services.core.admin import QUEUE_STATES, AdminService, serialize_job

NOW = datetime(2030, 1, 1, 9, 0, 0)


@pytest.fixture
def queue_repo(test_db):
    return QueueRepository(test_db)


@pytest.fixture
def post_repo(test_db):
    return PostRepository(test_db)


@pytest.fixture
def refresh_scheduler():
    scheduler = Mock()
    scheduler.run_once = AsyncMock(return_value={"run_skipped": False, "total": 0})
    scheduler.token_manager.threshold_hours = 24
    scheduler.token_manager.refresh_profile = AsyncMock()
    return scheduler


@pytest.fixture
def admin(test_db, post_repo, queue_repo, refresh_scheduler):
    with patch("src.services.base_service.ServiceRunRepository"):
        yield AdminService(
            post_repo=post_repo,
            profile_repo=ProfileRepository(test_db),
            queue_repo=queue_repo,
            refresh_scheduler=refresh_scheduler,
            clock=lambda: NOW,
        )


def _failed_post(make_post, post_repo, profile, message="Duplicate content"):
    post = make_post(profile, status=PostStatus.PUBLISHING)
    post_repo.mark_failed(post.id, message)
    return post


@pytest.mark.unit
class TestPublishPost:
    def test_publish_scheduled_post_now(self, admin, make_profile, make_post, queue_repo):
        post = make_post(make_profile(), scheduled_at=NOW + timedelta(days=2))
        queue_repo.enqueue(post.id, not_before=post.scheduled_at, now=NOW)

        result = admin.publish_post(post.id)

        assert result["success"] is True
        assert result["status"] == "SCHEDULED"
        job = queue_repo.get_live_job(post.id)
        assert job.id == result["job_id"]
        assert job.not_before == NOW

    def test_publish_draft(self, admin, make_profile, make_post, post_repo):
        post = make_post(make_profile(), status=PostStatus.DRAFT)

        admin.publish_post(post.id)

        assert post_repo.get_by_id(post.id).status == PostStatus.SCHEDULED.value

    def test_publish_failed_post_resets_it(self, admin, make_profile, make_post, post_repo):
        post = _failed_post(make_post, post_repo, make_profile())

        admin.publish_post(post.id)

        stored = post_repo.get_by_id(post.id)
        assert stored.status == PostStatus.SCHEDULED.value
        assert stored.error_message is None
        assert stored.attempt_count == 1

    def test_publish_published_post(self, admin, make_profile, make_post, post_repo):
        post = make_post(make_profile(), status=PostStatus.PUBLISHING)
        post_repo.mark_published(post.id, "fb-1")

        with pytest.raises(PostAlreadyPublishedError):
            admin.publish_post(post.id)

    def test_publish_publishing_post(self, admin, make_profile, make_post):
        post = make_post(make_profile(), status=PostStatus.PUBLISHING)

        with pytest.raises(PostAlreadyPublishingError):
            admin.publish_post(post.id)

    def test_publish_while_job_claimed(self, admin, make_profile, make_post, queue_repo):
        post = make_post(make_profile())
        job = queue_repo.enqueue(post.id, now=NOW)
        queue_repo.claim(job.id, "worker-a", NOW)

        with pytest.raises(PostAlreadyPublishingError):
            admin.publish_post(post.id)

    def test_publish_loses_race_with_worker_claim(self, admin, make_profile, make_post, queue_repo, post_repo):
        post = make_post(make_profile(), scheduled_at=NOW)
        queue_repo.enqueue(post.id, now=NOW)

        def worker_claims_first(post_id):
            # A worker claims the job after the status was read but before the write
            job = queue_repo.dequeue_due(now=NOW, worker_id="worker-a")
            assert post_repo.transition_status(post_id, PostStatus.SCHEDULED, PostStatus.PUBLISHING)
            assert job is not None
            return None

        with patch.object(queue_repo, "get_live_job", side_effect=worker_claims_first):
            with pytest.raises(PostAlreadyPublishingError):
                admin.publish_post(post.id)

        assert post_repo.get_by_id(post.id).status == PostStatus.PUBLISHING.value
        assert queue_repo.dequeue_due(now=NOW, worker_id="worker-b") is None

    def test_publish_failed_post_retried_concurrently(self, admin, make_profile, make_post, queue_repo, post_repo):
        post = _failed_post(make_post, post_repo, make_profile())

        with patch.object(post_repo, "reset_for_retry", return_value=False):
            with pytest.raises(PostAlreadyPublishingError):
                admin.publish_post(post.id)

        assert queue_repo.get_live_job(post.id) is None

    def test_publish_inactive_profile(self, admin, make_profile, make_post, queue_repo):
        post = make_post(make_profile(is_active=False))

        with pytest.raises(ProfileInactiveError):
            admin.publish_post(post.id)

        assert queue_repo.get_live_job(post.id) is None

    def test_publish_unknown_post(self, admin):
        with pytest.raises(PostNotFoundError):
            admin.publish_post("missing")


@pytest.mark.unit
class TestRetryPost:
    def test_retry_failed_post(self, admin, make_profile, make_post, post_repo, queue_repo):
        post = _failed_post(make_post, post_repo, make_profile())

        result = admin.retry_post(post.id)

        assert result["status"] == "SCHEDULED"
        assert result["attempt_count"] == 1
        stored = post_repo.get_by_id(post.id)
        assert stored.status == PostStatus.SCHEDULED.value
        assert stored.error_message is None
        job = queue_repo.get_live_job(post.id)
        assert job.attempt_count == 0
        assert job.not_before == NOW

    def test_retry_requires_failed(self, admin, make_profile, make_post):
        post = make_post(make_profile())

        with pytest.raises(PostNotRetryableError, match="current status: SCHEDULED"):
            admin.retry_post(post.id)

    def test_retry_with_inactive_profile(self, admin, make_profile, make_post, post_repo):
        post = _failed_post(make_post, post_repo, make_profile(is_active=False))

        with pytest.raises(ProfileInactiveError):
            admin.retry_post(post.id)

        assert post_repo.get_by_id(post.id).status == PostStatus.FAILED.value


@pytest.mark.unit
class TestPublishStatus:
    def test_status_with_job(self, admin, make_profile, make_post, queue_repo):
        post = make_post(make_profile(), scheduled_at=NOW + timedelta(hours=1))
        queue_repo.enqueue(post.id, not_before=post.scheduled_at, now=NOW)

        status = admin.get_publish_status(post.id)

        assert status["status"] == "SCHEDULED"
        assert status["job"]["state"] == "delayed"
        assert "can_retry" not in status

    def test_failed_status_reports_retryability(self, admin, make_profile, make_post, post_repo):
        active = _failed_post(make_post, post_repo, make_profile())
        inactive = _failed_post(make_post, post_repo, make_profile(is_active=False))

        assert admin.get_publish_status(active.id)["can_retry"] is True
        assert admin.get_publish_status(inactive.id)["can_retry"] is False
        assert admin.get_publish_status(active.id)["job"] is None


@pytest.mark.unit
class TestQueueOverview:
    def test_overview(self, admin, queue_repo):
        queue_repo.enqueue("post-1", now=NOW)
        queue_repo.enqueue("post-2", not_before=NOW + timedelta(hours=1), now=NOW)
        done = queue_repo.enqueue("post-3", now=NOW)
        queue_repo.claim(done.id, "worker-a", NOW)
        queue_repo.complete(done.id, now=NOW)

        overview = admin.queue_overview()

        assert overview["counts"]["waiting"] == 1
        assert overview["counts"]["delayed"] == 1
        assert overview["counts"]["completed"] == 1
        assert set(overview["recent"]) == set(QUEUE_STATES)
        assert [job["post_id"] for job in overview["recent"]["completed"]] == ["post-3"]

    def test_serialize_job(self, queue_repo):
        job = queue_repo.enqueue("post-1", not_before=NOW + timedelta(hours=1), now=NOW)

        data = serialize_job(job, NOW)

        assert data["state"] == "delayed"
        assert data["not_before"] == (NOW + timedelta(hours=1)).isoformat()
        assert data["finished_at"] is None


@pytest.mark.unit
class TestTokens:
    @pytest.mark.asyncio
    async def test_refresh_tokens_uses_scheduler(self, admin, refresh_scheduler):
        result = await admin.refresh_tokens()

        assert result["run_skipped"] is False
        refresh_scheduler.run_once.assert_awaited_once_with(triggered_by="admin")

    def test_tokens_needing_refresh(self, admin, refresh_scheduler):
        refresh_scheduler.token_manager.get_profiles_needing_refresh.return_value = [{"profile_id": "p1"}]

        result = admin.tokens_needing_refresh(48)

        assert result == {"threshold_hours": 48, "count": 1, "profiles": [{"profile_id": "p1"}]}
        refresh_scheduler.token_manager.get_profiles_needing_refresh.assert_called_once_with(48)

    def test_tokens_needing_refresh_default_threshold(self, admin):
        assert admin.tokens_needing_refresh()["threshold_hours"] == 24

    @pytest.mark.asyncio
    async def test_refresh_profile_token(self, admin, refresh_scheduler):
        await admin.refresh_profile_token("profile-1")

        refresh_scheduler.token_manager.refresh_profile.assert_awaited_once_with(
            "profile-1", triggered_by="admin"
        )

    def test_check_profile_token(self, admin, refresh_scheduler):
        refresh_scheduler.token_manager.check_token_health.return_value = {"profile_id": "profile-1", "valid": True}

        assert admin.check_profile_token("profile-1") == {"profile_id": "profile-1", "valid": True}
        refresh_scheduler.token_manager.check_token_health.assert_called_once_with("profile-1")

    def test_close_keeps_injected_scheduler(self, admin, refresh_scheduler):
        admin.close()

        refresh_scheduler.token_manager.close.assert_not_called()
