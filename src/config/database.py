"""Database connection and session management."""

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator

from src.config.settings import settings


def _engine_options(url: str) -> dict:
    """Pool options for the configured backend (SQLite ignores pooling)."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "echo": False}
    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_recycle": 300,  # Recycle connections after 5 minutes
        "pool_timeout": 30,  # Wait up to 30 seconds for connection
        "echo": False,  # Set to True for SQL debugging
    }


# Create database engine
engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

# JSON column type: JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def get_db() -> Generator[Session, None, None]:
    """
    Get database session.

    Yields:
        Database session

    Usage:
        db = next(get_db())
        try:
            # Use db
        finally:
            db.close()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database (create all tables).

    Call this after importing all models.
    """
    # Import all models here to ensure they're registered
    from src.models import (  # noqa: F401
        post,
        profile,
        publish_job,
        service_run,
    )

    Base.metadata.create_all(bind=engine)
