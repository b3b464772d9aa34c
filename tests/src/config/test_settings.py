"""Tests for Settings configuration model."""

import pytest

from src.config.settings import Settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Tests for Settings default values via model field definitions."""

    def test_environment_defaults_to_development(self):
        assert Settings.model_fields["ENVIRONMENT"].default == "development"

    def test_db_host_defaults_to_localhost(self):
        assert Settings.model_fields["DB_HOST"].default == "localhost"

    def test_db_port_defaults_to_5432(self):
        assert Settings.model_fields["DB_PORT"].default == 5432

    def test_publish_max_attempts_defaults_to_3(self):
        assert Settings.model_fields["PUBLISH_MAX_ATTEMPTS"].default == 3

    def test_publish_backoff_base_defaults_to_2000ms(self):
        assert Settings.model_fields["PUBLISH_BACKOFF_BASE_MS"].default == 2000

    def test_token_refresh_threshold_defaults_to_24h(self):
        assert Settings.model_fields["TOKEN_REFRESH_THRESHOLD_HOURS"].default == 24

    def test_token_refresh_call_delay_defaults_to_1s(self):
        assert Settings.model_fields["TOKEN_REFRESH_CALL_DELAY_SECONDS"].default == 1.0

    def test_adapter_timeout_defaults_to_30s(self):
        assert Settings.model_fields["ADAPTER_HTTP_TIMEOUT_SECONDS"].default == 30.0

    def test_dry_run_mode_defaults_to_false(self):
        assert Settings.model_fields["DRY_RUN_MODE"].default is False

    def test_log_level_defaults_to_info(self):
        assert Settings.model_fields["LOG_LEVEL"].default == "INFO"

    def test_optional_fields_default_to_none(self):
        for name in (
            "DATABASE_URL",
            "FACEBOOK_APP_ID",
            "FACEBOOK_APP_SECRET",
            "TWITTER_CLIENT_ID",
            "TWITTER_CLIENT_SECRET",
            "TIKTOK_CLIENT_KEY",
            "TIKTOK_CLIENT_SECRET",
            "ENCRYPTION_KEY",
            "TOKEN_REFRESH_INTERVAL_SECONDS",
            "POSTS_SYNC_INTERVAL_SECONDS",
        ):
            assert Settings.model_fields[name].default is None, name


def _make_settings(**overrides):
    defaults = {
        "DATABASE_URL": None,
        "DB_USER": "publisher_user",
        "DB_NAME": "social_publisher",
        "ENVIRONMENT": "development",
        "TOKEN_REFRESH_INTERVAL_SECONDS": None,
        "POSTS_SYNC_INTERVAL_SECONDS": None,
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


@pytest.mark.unit
class TestSettingsDatabaseUrl:
    """Tests for the database_url computed property."""

    def test_database_url_with_password(self):
        url = _make_settings(DB_PASSWORD="secret123").database_url

        assert url.startswith("postgresql://")
        assert "publisher_user:secret123@" in url
        assert url.endswith("/social_publisher")

    def test_database_url_without_password(self):
        url = _make_settings(DB_PASSWORD="").database_url

        assert ":@" not in url
        assert "publisher_user@" in url

    def test_database_url_includes_host_and_port(self):
        url = _make_settings(DB_HOST="myhost", DB_PORT=5433, DB_PASSWORD="pw").database_url

        assert "@myhost:5433/" in url

    def test_database_url_appends_sslmode(self):
        url = _make_settings(DB_PASSWORD="pw", DB_SSLMODE="require").database_url

        assert url.endswith("?sslmode=require")

    def test_explicit_database_url_wins(self):
        url = _make_settings(DATABASE_URL="sqlite:///local.db", DB_PASSWORD="pw").database_url

        assert url == "sqlite:///local.db"


@pytest.mark.unit
class TestSettingsIntervals:
    """Environment-dependent defaults for periodic jobs."""

    def test_token_refresh_hourly_in_development(self):
        assert _make_settings().token_refresh_interval_seconds == 3600

    def test_token_refresh_daily_in_production(self):
        assert _make_settings(ENVIRONMENT="production").token_refresh_interval_seconds == 86400

    def test_token_refresh_override(self):
        assert _make_settings(TOKEN_REFRESH_INTERVAL_SECONDS=120).token_refresh_interval_seconds == 120

    def test_posts_sync_interval_defaults(self):
        assert _make_settings().posts_sync_interval_seconds == 300
        assert _make_settings(ENVIRONMENT="Production").posts_sync_interval_seconds == 600

    def test_cors_origins_split_and_trimmed(self):
        s = _make_settings(ADMIN_CORS_ORIGINS="https://a.example, https://b.example,")

        assert s.cors_origins == ["https://a.example", "https://b.example"]
