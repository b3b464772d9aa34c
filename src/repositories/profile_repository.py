"""Profile repository - connected accounts and their credentials."""
from typing import Optional, List
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from src.repositories.base_repository import BaseRepository
from src.models.profile import Profile


class ProfileRepository(BaseRepository):
    """
    Repository for Profile operations.

    Token fields are written with targeted UPDATE statements so a refresh
    never clobbers unrelated columns edited concurrently (last writer wins
    on token/expiry only). Token values arrive already encrypted.
    """

    def __init__(self, db: Optional[Session] = None):
        super().__init__(db)

    def get_by_id(self, profile_id: str) -> Optional[Profile]:
        result = self.db.query(Profile).filter(Profile.id == profile_id).first()
        self.end_read_transaction()
        return result

    def get_all(self, active_only: bool = False) -> List[Profile]:
        query = self.db.query(Profile)
        if active_only:
            query = query.filter(Profile.is_active.is_(True))
        result = query.order_by(Profile.created_at.asc()).all()
        self.end_read_transaction()
        return result

    def get_expiring(self, before: datetime) -> List[Profile]:
        """Active profiles whose token expires at or before the given time, soonest first."""
        result = (
            self.db.query(Profile)
            .filter(
                Profile.is_active.is_(True),
                Profile.token_expires_at.isnot(None),
                Profile.token_expires_at <= before,
            )
            .order_by(Profile.token_expires_at.asc())
            .all()
        )
        self.end_read_transaction()
        return result

    def create(
        self,
        user_id: str,
        name: str,
        platform: str,
        platform_user_id: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        token_expires_at: Optional[datetime] = None,
        platform_username: Optional[str] = None,
        profile_metadata: Optional[dict] = None,
    ) -> Profile:
        """Store a newly connected profile (tokens must already be encrypted)."""
        profile = Profile(
            user_id=user_id,
            name=name,
            platform=platform,
            platform_user_id=platform_user_id,
            platform_username=platform_username,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=token_expires_at,
            profile_metadata=profile_metadata,
            is_active=True,
        )
        self.db.add(profile)
        self.commit()
        self.db.refresh(profile)
        return profile

    def update_tokens(
        self,
        profile_id: str,
        access_token: str,
        token_expires_at: Optional[datetime],
        refresh_token: Optional[str] = None,
        refreshed_at: Optional[datetime] = None,
    ) -> bool:
        """
        Store refreshed credentials and reactivate the profile.

        refresh_token is only overwritten when a new one is supplied.
        """
        refreshed_at = refreshed_at or datetime.utcnow()
        values = {
            "access_token": access_token,
            "token_expires_at": token_expires_at,
            "last_refreshed_at": refreshed_at,
            "is_active": True,
            "deactivated_at": None,
            "deactivation_reason": None,
            "updated_at": refreshed_at,
        }
        if refresh_token:
            values["refresh_token"] = refresh_token

        result = self.db.execute(
            update(Profile).where(Profile.id == profile_id).values(**values)
        )
        self.commit()
        return result.rowcount == 1

    def deactivate(self, profile_id: str, reason: str, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        result = self.db.execute(
            update(Profile)
            .where(Profile.id == profile_id)
            .values(is_active=False, deactivated_at=now, deactivation_reason=reason, updated_at=now)
        )
        self.commit()
        return result.rowcount == 1
