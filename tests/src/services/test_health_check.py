"""Tests for HealthCheckService."""

import pytest
from unittest.mock import Mock, patch
from datetime import datetime, timedelta

from src.services.core.health_check import HealthCheckService


def _stats(waiting=0, delayed=0, active=0):
    return {
        "waiting": waiting,
        "active": active,
        "completed": 0,
        "failed": 0,
        "delayed": delayed,
        "total": waiting + delayed + active,
    }


@pytest.mark.unit
class TestHealthCheckService:
    """Test suite for HealthCheckService."""

    @pytest.fixture
    def health_service(self):
        """Create HealthCheckService with mocked dependencies."""
        with patch("src.services.base_service.ServiceRunRepository"):
            service = HealthCheckService()
        service.queue_repo = Mock()
        service.post_repo = Mock()
        service.profile_repo = Mock()
        service.queue_repo.stats.return_value = _stats(waiting=2, delayed=5)
        service.queue_repo.get_stalled.return_value = []
        service.profile_repo.get_all.return_value = []
        service.profile_repo.get_expiring.return_value = []
        service.post_repo.count_by_status.return_value = {"FAILED": 0}
        service.service_run_repo = Mock()
        service.service_run_repo.get_failed_runs.return_value = []
        return service

    @patch("src.services.core.health_check.BaseRepository")
    def test_check_database_healthy(self, mock_base_repo, health_service):
        result = health_service._check_database()

        mock_base_repo.check_connection.assert_called_once()
        assert result["healthy"] is True
        assert "Database connection OK" in result["message"]

    @patch("src.services.core.health_check.BaseRepository")
    def test_check_database_unhealthy(self, mock_base_repo, health_service):
        mock_base_repo.check_connection.side_effect = Exception("Connection refused")

        result = health_service._check_database()

        assert result["healthy"] is False
        assert "Connection refused" in result["message"]

    @patch("src.services.core.health_check.settings")
    def test_check_encryption_missing_key(self, mock_settings, health_service):
        mock_settings.ENCRYPTION_KEY = None

        result = health_service._check_encryption()

        assert result["healthy"] is False
        assert "ENCRYPTION_KEY" in result["message"]

    def test_check_encryption_configured(self, health_service):
        assert health_service._check_encryption()["healthy"] is True

    @patch("src.services.core.health_check.ConfigValidator")
    def test_missing_platform_credentials_do_not_fail_health(self, mock_validator, health_service):
        mock_validator.missing_platform_credentials.return_value = ["TWITTER", "TIKTOK"]

        result = health_service._check_platform_config()

        assert result["healthy"] is True
        assert result["missing"] == ["TIKTOK", "TWITTER"]
        assert "TIKTOK, TWITTER" in result["message"]

    @patch("src.services.core.health_check.ConfigValidator")
    def test_all_platform_credentials_configured(self, mock_validator, health_service):
        mock_validator.missing_platform_credentials.return_value = []

        result = health_service._check_platform_config()

        assert result["missing"] == []

    def test_check_queue_healthy(self, health_service):
        result = health_service._check_queue()

        assert result["healthy"] is True
        assert "2 waiting, 5 delayed" in result["message"]
        assert result["stats"]["delayed"] == 5

    def test_check_queue_backlog(self, health_service):
        health_service.queue_repo.stats.return_value = _stats(waiting=60)

        result = health_service._check_queue()

        assert result["healthy"] is False
        assert "backlog" in result["message"].lower()

    def test_delayed_jobs_are_not_backlog(self, health_service):
        health_service.queue_repo.stats.return_value = _stats(waiting=1, delayed=500)

        assert health_service._check_queue()["healthy"] is True

    def test_check_queue_stalled_jobs(self, health_service):
        health_service.queue_repo.get_stalled.return_value = [Mock(), Mock()]

        result = health_service._check_queue()

        assert result["healthy"] is False
        assert "2 job(s) stalled" in result["message"]

        cutoff = health_service.queue_repo.get_stalled.call_args[0][0]
        assert cutoff < datetime.utcnow() - timedelta(minutes=9)

    def test_check_queue_error(self, health_service):
        health_service.queue_repo.stats.side_effect = Exception("DB error")

        result = health_service._check_queue()

        assert result["healthy"] is False
        assert "error" in result["message"].lower()

    def test_check_profiles_ok(self, health_service):
        health_service.profile_repo.get_all.return_value = [Mock(is_active=True), Mock(is_active=True)]

        result = health_service._check_profiles()

        assert result["healthy"] is True
        assert result["total"] == 2
        assert result["message"] == "2 profile(s) OK"

    def test_check_profiles_inactive(self, health_service):
        health_service.profile_repo.get_all.return_value = [Mock(is_active=True), Mock(is_active=False)]
        health_service.post_repo.count_by_status.return_value = {"FAILED": 3}

        result = health_service._check_profiles()

        assert result["healthy"] is False
        assert result["inactive"] == 1
        assert result["failed_posts"] == 3
        assert "reconnected" in result["message"]

    def test_check_profiles_expiring(self, health_service):
        health_service.profile_repo.get_all.return_value = [Mock(is_active=True)]
        health_service.profile_repo.get_expiring.return_value = [Mock()]

        result = health_service._check_profiles()

        assert result["healthy"] is True
        assert result["expiring_soon"] == 1
        assert "expiring soon" in result["message"]

    def test_check_profiles_error(self, health_service):
        health_service.profile_repo.get_all.side_effect = Exception("DB error")

        result = health_service._check_profiles()

        assert result["healthy"] is False

    def test_background_runs_ok(self, health_service):
        result = health_service._check_background_runs()

        assert result["healthy"] is True
        health_service.service_run_repo.get_failed_runs.assert_called_once_with(since_hours=24)

    def test_background_runs_failed(self, health_service):
        health_service.service_run_repo.get_failed_runs.return_value = [
            Mock(service_name="TokenManager", method_name="refresh_all_expiring", error_message="db down"),
            Mock(service_name="TokenManager", method_name="refresh_all_expiring", error_message="timeout"),
        ]

        result = health_service._check_background_runs()

        assert result["healthy"] is False
        assert "2 failed run(s)" in result["message"]
        assert "TokenManager.refresh_all_expiring" in result["message"]
        assert result["latest_error"] == "db down"

    @patch("src.services.core.health_check.BaseRepository")
    def test_check_all_healthy(self, mock_base_repo, health_service):
        result = health_service.check_all()

        assert result["status"] == "healthy"
        assert set(result["checks"]) == {"database", "encryption", "platforms", "queue", "profiles", "background_runs"}
        assert "timestamp" in result

    @patch("src.services.core.health_check.BaseRepository")
    def test_check_all_unhealthy_when_any_check_fails(self, mock_base_repo, health_service):
        health_service.queue_repo.get_stalled.return_value = [Mock()]

        result = health_service.check_all()

        assert result["status"] == "unhealthy"
        assert result["checks"]["queue"]["healthy"] is False
