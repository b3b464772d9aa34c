"""Pytest configuration and fixtures."""

import os
import tempfile
from datetime import datetime, timedelta

import pytest
from cryptography.fernet import Fernet
from dotenv import load_dotenv
from sqlalchemy import text

# Load test environment variables before importing any application code
load_dotenv(".env.test", override=True)

# Tests run against a throwaway SQLite file unless TEST_DATABASE_URL points elsewhere
_test_db_dir = tempfile.mkdtemp(prefix="social-publisher-tests-")
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL") or (
    f"sqlite:///{os.path.join(_test_db_dir, 'test.db')}"
)
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ["DRY_RUN_MODE"] = "false"

from src.config.database import Base, SessionLocal, engine  # noqa: E402
from src.config.constants import Platform, PostStatus  # noqa: E402
from src import models  # noqa: E402,F401
from src.repositories.post_repository import PostRepository  # noqa: E402
from src.repositories.profile_repository import ProfileRepository  # noqa: E402
from src.utils.encryption import TokenEncryption  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")
    config.addinivalue_line("markers", "integration: tests that exercise several layers together")


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create all tables once per test session and drop them afterwards."""
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(setup_test_database):
    """
    Function-scoped database session.

    Repositories commit as they go, so isolation comes from emptying every
    table after the test instead of rolling back.
    """
    session = SessionLocal()

    yield session

    session.rollback()
    session.close()
    with setup_test_database.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(text(f"DELETE FROM {table.name}"))


@pytest.fixture
def encryption():
    return TokenEncryption()


@pytest.fixture
def make_profile(test_db, encryption):
    """Factory for stored profiles with encrypted tokens."""
    counter = {"n": 0}

    def _make(
        platform=Platform.FACEBOOK,
        access_token="access-token",
        refresh_token="refresh-token",
        expires_in=timedelta(days=30),
        is_active=True,
        metadata=None,
    ):
        counter["n"] += 1
        repo = ProfileRepository(test_db)
        profile = repo.create(
            user_id="user-1",
            name=f"Profile {counter['n']}",
            platform=Platform(platform).value,
            platform_user_id=f"ext-{counter['n']}",
            platform_username=f"account{counter['n']}",
            access_token=encryption.encrypt(access_token),
            refresh_token=encryption.encrypt_optional(refresh_token),
            token_expires_at=datetime.utcnow() + expires_in if expires_in is not None else None,
            profile_metadata=metadata,
        )
        if not is_active:
            repo.deactivate(profile.id, reason="Token refresh failed: revoked")
            profile = repo.get_by_id(profile.id)
        return profile

    return _make


@pytest.fixture
def make_post(test_db):
    """Factory for stored posts."""

    def _make(
        profile,
        status=PostStatus.SCHEDULED,
        content="Hello world",
        media_urls=None,
        scheduled_at=None,
        post_format="POST",
    ):
        return PostRepository(test_db).create(
            user_id=profile.user_id,
            profile_id=profile.id,
            platform=profile.platform,
            content=content,
            media_urls=media_urls,
            post_format=post_format,
            status=status,
            scheduled_at=scheduled_at or datetime.utcnow(),
        )

    return _make
