"""Configuration validation on startup."""

from typing import List, Tuple

from src.config.settings import settings


class ConfigValidator:
    """Validate configuration on startup."""

    # Platform -> (settings attributes needed to refresh its tokens)
    PLATFORM_CREDENTIALS = {
        "Facebook/Instagram": ("FACEBOOK_APP_ID", "FACEBOOK_APP_SECRET"),
        "Twitter": ("TWITTER_CLIENT_ID", "TWITTER_CLIENT_SECRET"),
        "TikTok": ("TIKTOK_CLIENT_KEY", "TIKTOK_CLIENT_SECRET"),
    }

    @staticmethod
    def validate_all() -> Tuple[bool, List[str]]:
        """
        Validate all configuration settings.

        Returns:
            (is_valid, error_messages)
        """
        errors = []

        if settings.PUBLISH_MAX_ATTEMPTS < 1:
            errors.append("PUBLISH_MAX_ATTEMPTS must be at least 1")

        if settings.PUBLISH_BACKOFF_BASE_MS < 0:
            errors.append("PUBLISH_BACKOFF_BASE_MS must not be negative")

        if settings.WORKER_CONCURRENCY < 1:
            errors.append("WORKER_CONCURRENCY must be at least 1")

        if settings.WORKER_POLL_INTERVAL_SECONDS <= 0:
            errors.append("WORKER_POLL_INTERVAL_SECONDS must be positive")

        if settings.TOKEN_REFRESH_THRESHOLD_HOURS < 1:
            errors.append("TOKEN_REFRESH_THRESHOLD_HOURS must be at least 1")

        if settings.ADAPTER_HTTP_TIMEOUT_SECONDS <= 0:
            errors.append("ADAPTER_HTTP_TIMEOUT_SECONDS must be positive")

        if not settings.ENCRYPTION_KEY:
            errors.append("ENCRYPTION_KEY is required (tokens are encrypted at rest)")

        if not settings.DATABASE_URL and not settings.DB_NAME:
            errors.append("DATABASE_URL or DB_NAME is required")

        return len(errors) == 0, errors

    @staticmethod
    def missing_platform_credentials() -> List[str]:
        """
        List platforms whose app credentials are not configured.

        Not fatal: tokens for those platforms simply cannot be refreshed.
        """
        missing = []
        for label, keys in ConfigValidator.PLATFORM_CREDENTIALS.items():
            if not all(getattr(settings, key) for key in keys):
                missing.append(label)
        return missing
