"""Application settings and configuration management."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Runtime environment ('development' or 'production')
    ENVIRONMENT: str = "development"

    # Database Configuration
    DATABASE_URL: Optional[str] = None  # Full URL (overrides DB_* components if set)
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "social_publisher"
    DB_USER: str = "publisher_user"
    DB_PASSWORD: Optional[str] = ""
    DB_SSLMODE: Optional[str] = None  # e.g., "require" for managed Postgres
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    TEST_DATABASE_URL: Optional[str] = None

    # Platform app credentials (used for token refresh)
    FACEBOOK_APP_ID: Optional[str] = None
    FACEBOOK_APP_SECRET: Optional[str] = None
    TWITTER_CLIENT_ID: Optional[str] = None
    TWITTER_CLIENT_SECRET: Optional[str] = None
    TIKTOK_CLIENT_KEY: Optional[str] = None
    TIKTOK_CLIENT_SECRET: Optional[str] = None

    # Publish worker
    PUBLISH_MAX_ATTEMPTS: int = 3
    PUBLISH_BACKOFF_BASE_MS: int = 2000  # 2s, 4s, 8s...
    WORKER_CONCURRENCY: int = 1
    WORKER_POLL_INTERVAL_SECONDS: float = 2.0
    STALLED_JOB_TIMEOUT_SECONDS: int = 600  # Active jobs older than this were orphaned
    RECONCILE_INTERVAL_SECONDS: int = 300  # Stalled job / stuck post recovery pass
    JOB_RETENTION_HOURS: int = 24  # Completed/failed jobs kept for stats
    JOB_CLEANUP_INTERVAL_SECONDS: int = 3600
    POSTS_SYNC_INTERVAL_SECONDS: Optional[int] = None  # Defaults per environment

    # Token refresh
    TOKEN_REFRESH_THRESHOLD_HOURS: int = 24
    TOKEN_REFRESH_CALL_DELAY_SECONDS: float = 1.0
    TOKEN_REFRESH_INTERVAL_SECONDS: Optional[int] = None  # Defaults per environment

    # Platform HTTP
    ADAPTER_HTTP_TIMEOUT_SECONDS: float = 30.0

    # Admin API
    ADMIN_CORS_ORIGINS: str = "http://localhost:3000"  # Comma-separated
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Security (required for token encryption)
    ENCRYPTION_KEY: Optional[str] = None  # Fernet key for encrypting tokens in DB

    # Development Settings
    DRY_RUN_MODE: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def token_refresh_interval_seconds(self) -> int:
        """Daily in production, hourly in development unless overridden."""
        if self.TOKEN_REFRESH_INTERVAL_SECONDS:
            return self.TOKEN_REFRESH_INTERVAL_SECONDS
        return 86400 if self.is_production else 3600

    @property
    def posts_sync_interval_seconds(self) -> int:
        """Every 10 minutes in production, 5 in development unless overridden."""
        if self.POSTS_SYNC_INTERVAL_SECONDS:
            return self.POSTS_SYNC_INTERVAL_SECONDS
        return 600 if self.is_production else 300

    @property
    def cors_origins(self) -> list:
        return [o.strip() for o in self.ADMIN_CORS_ORIGINS.split(",") if o.strip()]

    @property
    def database_url(self) -> str:
        """Get database URL for SQLAlchemy.

        If DATABASE_URL is set, use it directly (standard for PaaS platforms).
        Otherwise, assemble from individual DB_* components.
        Appends ?sslmode= if DB_SSLMODE is set.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.DB_PASSWORD:
            url = f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        else:
            url = f"postgresql://{self.DB_USER}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

        if self.DB_SSLMODE:
            url += f"?sslmode={self.DB_SSLMODE}"
        return url


# Global settings instance
settings = Settings()
