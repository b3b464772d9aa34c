"""Tests for publish queue CLI commands."""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from cli.commands.queue import list_jobs, publish_now, queue_stats, reconcile, retry_post, sync_scheduled
from src.exceptions import PostNotFoundError, PostNotRetryableError
from src.repositories.queue_repository import QueueRepository


@pytest.mark.unit
class TestQueueCommands:
    """Test suite for queue CLI commands."""

    def test_queue_stats(self, test_db):
        queue_repo = QueueRepository(test_db)
        queue_repo.enqueue("post-1")
        queue_repo.enqueue("post-2", not_before=datetime.utcnow() + timedelta(hours=1))

        result = CliRunner().invoke(queue_stats, [])

        assert result.exit_code == 0
        assert "waiting" in result.output
        assert "delayed" in result.output
        assert "total" in result.output

    def test_list_jobs_empty(self, test_db):
        result = CliRunner().invoke(list_jobs, [])

        assert result.exit_code == 0
        assert "No jobs found" in result.output

    def test_list_jobs_filtered(self, test_db):
        queue_repo = QueueRepository(test_db)
        queue_repo.enqueue("p-due")
        queue_repo.enqueue("p-later", not_before=datetime.utcnow() + timedelta(hours=1))

        result = CliRunner().invoke(list_jobs, ["--state", "delayed"])

        assert result.exit_code == 0
        assert "p-later" in result.output
        assert "p-due" not in result.output

    def test_list_jobs_rejects_unknown_state(self, test_db):
        result = CliRunner().invoke(list_jobs, ["--state", "exploded"])

        assert result.exit_code != 0

    @patch("cli.commands.queue.AdminService")
    def test_publish_now(self, mock_service_class):
        mock_service = mock_service_class.return_value
        mock_service.publish_post.return_value = {"post_id": "post-1", "job_id": "job-1"}

        result = CliRunner().invoke(publish_now, ["post-1"])

        assert result.exit_code == 0
        assert "Post queued for publishing" in result.output
        mock_service.publish_post.assert_called_once_with("post-1", triggered_by="cli")
        mock_service.close.assert_called_once()

    @patch("cli.commands.queue.AdminService")
    def test_publish_now_unknown_post(self, mock_service_class):
        mock_service = mock_service_class.return_value
        mock_service.publish_post.side_effect = PostNotFoundError("post-1")

        result = CliRunner().invoke(publish_now, ["post-1"])

        assert result.exit_code != 0
        assert "Post post-1 not found" in result.output
        mock_service.close.assert_called_once()

    @patch("cli.commands.queue.AdminService")
    def test_retry_post(self, mock_service_class):
        mock_service = mock_service_class.return_value
        mock_service.retry_post.return_value = {"post_id": "post-1", "job_id": "job-2", "attempt_count": 3}

        result = CliRunner().invoke(retry_post, ["post-1"])

        assert result.exit_code == 0
        assert "Previous attempts: 3" in result.output

    @patch("cli.commands.queue.AdminService")
    def test_retry_post_not_failed(self, mock_service_class):
        mock_service_class.return_value.retry_post.side_effect = PostNotRetryableError("post-1", "PUBLISHED")

        result = CliRunner().invoke(retry_post, ["post-1"])

        assert result.exit_code != 0
        assert "current status: PUBLISHED" in result.output

    @patch("cli.commands.queue.QueueReconciler")
    def test_sync_scheduled(self, mock_reconciler_class):
        mock_reconciler_class.return_value.sync_scheduled_posts.return_value = {
            "scheduled_posts": 4,
            "enqueued": 1,
        }

        result = CliRunner().invoke(sync_scheduled, [])

        assert result.exit_code == 0
        assert "Enqueued: 1" in result.output

    @patch("cli.commands.queue.QueueReconciler")
    def test_reconcile_with_cleanup(self, mock_reconciler_class):
        mock_reconciler = mock_reconciler_class.return_value
        mock_reconciler.reconcile_stuck_posts.return_value = {
            "stalled_jobs": 1,
            "stuck_posts": 2,
            "requeued": 2,
            "failed": 1,
        }
        mock_reconciler.cleanup_finished_jobs.return_value = 7

        result = CliRunner().invoke(reconcile, ["--cleanup"])

        assert result.exit_code == 0
        assert "Stuck posts: 2" in result.output
        assert "Finished jobs removed: 7" in result.output
        mock_reconciler.cleanup_finished_jobs.assert_called_once_with(triggered_by="cli")

    @patch("cli.commands.queue.QueueReconciler")
    def test_reconcile_error(self, mock_reconciler_class):
        mock_reconciler = mock_reconciler_class.return_value
        mock_reconciler.reconcile_stuck_posts.side_effect = RuntimeError("db down")

        result = CliRunner().invoke(reconcile, [])

        assert result.exit_code != 0
        assert "db down" in result.output
        mock_reconciler.close.assert_called_once()
