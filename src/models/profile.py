"""Profile model - a connected social media account and its credentials."""

from sqlalchemy import Column, String, Boolean, DateTime, Text, UniqueConstraint
from datetime import datetime
from typing import Optional
import uuid

from src.config.database import Base, JSONType


class Profile(Base):
    """
    Connected platform account.

    Tokens are encrypted at the application level (TokenEncryption) before
    storage. token_expires_at NULL means the token never expires.

    An inactive profile is never published to; only a successful refresh
    (proactive or manual) reactivates it.
    """

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(100), nullable=False)

    # Account identification
    platform = Column(String(20), nullable=False, index=True)
    platform_user_id = Column(String(100), nullable=False)
    platform_username = Column(String(100))

    # Credentials (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    token_expires_at = Column(DateTime, index=True)
    last_refreshed_at = Column(DateTime)

    # Status
    is_active = Column(Boolean, nullable=False, default=True)
    deactivated_at = Column(DateTime)
    deactivation_reason = Column(Text)

    profile_metadata = Column(JSONType)  # e.g. {"page_id": ..., "instagram_account_id": ...}

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("platform", "platform_user_id", name="unique_platform_user"),
    )

    @property
    def display_name(self) -> str:
        return self.platform_username or self.name

    def hours_until_expiry(self, now: Optional[datetime] = None) -> Optional[float]:
        """Hours until the access token expires, or None if it never does."""
        if self.token_expires_at is None:
            return None
        now = now or datetime.utcnow()
        return (self.token_expires_at - now).total_seconds() / 3600

    def __repr__(self):
        state = "active" if self.is_active else "inactive"
        return f"<Profile {self.platform} @{self.display_name} ({state})>"
