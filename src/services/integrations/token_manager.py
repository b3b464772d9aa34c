"""Token manager - credential validity checks and refresh for connected profiles."""
import asyncio
import math
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from src.config.constants import Platform
from src.config.settings import settings
from src.exceptions import ErrorKind, PlatformAPIError, ProfileNotFoundError
from src.models.profile import Profile
from src.repositories.profile_repository import ProfileRepository
from src.services.base_service import BaseService
from src.services.integrations.platforms import PlatformAdapter, PlatformCredentials, build_adapters
from src.utils.encryption import TokenEncryption
from src.utils.logger import logger


@dataclass
class RefreshOutcome:
    """Result of one refresh attempt. Only the Profile update is persisted."""

    profile_id: str
    platform: str
    username: Optional[str]
    success: bool
    message: str
    expires_at: Optional[datetime] = None
    error_kind: Optional[ErrorKind] = None
    deactivated: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat() if self.expires_at else None
        data["error_kind"] = self.error_kind.value if self.error_kind else None
        return data


class TokenManager(BaseService):
    """
    Keep profile credentials valid.

    Handles:
    - Expiry checks (pure, null expiry means the token never expires)
    - Blocking refresh before a publish when the token already expired
    - Best-effort refresh when the token expires within the threshold
    - Sequential bulk refresh for the scheduler and admin endpoint

    This is the only component that deactivates profiles: after a refresh
    fails with INVALID_CREDENTIALS, or fails while the token is already
    expired. Transient refresh failures leave the profile active.

    Usage:
        manager = TokenManager()
        if await manager.ensure_valid(profile):
            credentials = manager.credentials_for(profile)
    """

    def __init__(
        self,
        profile_repo: Optional[ProfileRepository] = None,
        adapters: Optional[Dict[Platform, PlatformAdapter]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        threshold_hours: Optional[int] = None,
    ):
        super().__init__()
        self.profile_repo = profile_repo or ProfileRepository()
        self.adapters = adapters or build_adapters()
        self.clock = clock or datetime.utcnow
        self.threshold_hours = threshold_hours or settings.TOKEN_REFRESH_THRESHOLD_HOURS
        self._encryption: Optional[TokenEncryption] = None

    @property
    def encryption(self) -> TokenEncryption:
        """Lazy-load encryption to avoid errors when ENCRYPTION_KEY not set."""
        if self._encryption is None:
            self._encryption = TokenEncryption()
        return self._encryption

    # ==================== Expiry checks ====================

    @staticmethod
    def is_expiring_soon(
        expires_at: Optional[datetime],
        threshold_hours: int = 24,
        now: Optional[datetime] = None,
    ) -> bool:
        """True when the token expires within threshold_hours (already expired included)."""
        if expires_at is None:
            return False
        now = now or datetime.utcnow()
        return expires_at - now <= timedelta(hours=threshold_hours)

    @staticmethod
    def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
        if expires_at is None:
            return False
        now = now or datetime.utcnow()
        return expires_at <= now

    @staticmethod
    def hours_until_expiry(
        expires_at: Optional[datetime], now: Optional[datetime] = None
    ) -> Optional[int]:
        """Whole hours until expiry (floored, negative once expired), None if it never expires."""
        if expires_at is None:
            return None
        now = now or datetime.utcnow()
        return math.floor((expires_at - now).total_seconds() / 3600)

    # ==================== Credentials ====================

    def credentials_for(self, profile: Profile) -> PlatformCredentials:
        """Decrypt a profile's tokens for an adapter call."""
        return PlatformCredentials(
            access_token=self.encryption.decrypt(profile.access_token),
            refresh_token=self.encryption.decrypt_optional(profile.refresh_token),
            expires_at=profile.token_expires_at,
            platform_user_id=profile.platform_user_id,
            username=profile.platform_username,
            metadata=dict(profile.profile_metadata or {}),
        )

    async def ensure_valid(self, profile: Profile) -> bool:
        """
        Make sure the profile can be published with right now.

        Returns:
            False if the profile is inactive, or its token expired and could
            not be refreshed. True otherwise (a failed proactive refresh of a
            still-valid token is only logged).
        """
        if not profile.is_active:
            return False

        now = self.clock()
        if self.is_expired(profile.token_expires_at, now):
            logger.info(f"[TokenManager] Token for profile {profile.id} expired, refreshing before publish")
            outcome = await self.refresh(profile, deactivate_if_expired=True)
            return outcome.success

        if self.is_expiring_soon(profile.token_expires_at, self.threshold_hours, now):
            outcome = await self.refresh(profile)
            if not outcome.success:
                logger.warning(
                    f"[TokenManager] Proactive refresh failed for profile {profile.id} "
                    f"(token still valid): {outcome.message}"
                )
        return True

    async def refresh(self, profile: Profile, deactivate_if_expired: bool = False) -> RefreshOutcome:
        """
        Refresh one profile's token through its platform adapter.

        INVALID_CREDENTIALS failures deactivate the profile. Transient
        failures leave it active unless deactivate_if_expired is set and the
        token has already expired (the blocking refresh before a publish).
        """
        platform = Platform(profile.platform)
        adapter = self.adapters[platform]
        now = self.clock()
        base = {
            "profile_id": profile.id,
            "platform": platform.value,
            "username": profile.platform_username,
        }

        try:
            credentials = self.credentials_for(profile)
            refreshed = await adapter.refresh_token(credentials)
        except Exception as e:
            kind = adapter.classify_error(e)
            message = e.message if isinstance(e, PlatformAPIError) else str(e)
            already_expired = deactivate_if_expired and self.is_expired(profile.token_expires_at, now)
            deactivate = kind == ErrorKind.INVALID_CREDENTIALS or already_expired

            if deactivate:
                self.profile_repo.deactivate(
                    profile.id, reason=f"Token refresh failed: {message}", now=now
                )
                logger.error(
                    f"[TokenManager] Refresh failed for profile {profile.id} ({platform.value}), "
                    f"profile deactivated: {message}"
                )
            else:
                logger.warning(
                    f"[TokenManager] Refresh failed for profile {profile.id} ({platform.value}), "
                    f"kind={kind.value}: {message}"
                )
            return RefreshOutcome(
                success=False,
                message=message,
                error_kind=kind,
                deactivated=deactivate,
                **base,
            )

        self.profile_repo.update_tokens(
            profile.id,
            access_token=self.encryption.encrypt(refreshed.access_token),
            token_expires_at=refreshed.expires_at,
            refresh_token=self.encryption.encrypt_optional(refreshed.refresh_token),
            refreshed_at=now,
        )

        expiry = refreshed.expires_at.isoformat() if refreshed.expires_at else "never"
        logger.info(
            f"[TokenManager] Refreshed token for profile {profile.id} ({platform.value}), new expiry: {expiry}"
        )
        return RefreshOutcome(
            success=True,
            message="Token refreshed successfully",
            expires_at=refreshed.expires_at,
            **base,
        )

    async def refresh_profile(self, profile_id: str, triggered_by: str = "admin") -> RefreshOutcome:
        """
        Manually refresh one profile, active or not.

        A successful refresh reactivates a deactivated profile.

        Raises:
            ProfileNotFoundError: Unknown profile id
        """
        profile = self.profile_repo.get_by_id(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)

        with self.track_execution(
            "refresh_profile",
            triggered_by=triggered_by,
            input_params={"profile_id": profile_id},
        ) as run_id:
            outcome = await self.refresh(profile)
            self.set_result_summary(run_id, outcome.to_dict())
            return outcome

    async def refresh_all_expiring(
        self,
        threshold_hours: Optional[int] = None,
        call_delay_seconds: Optional[float] = None,
        triggered_by: str = "scheduler",
    ) -> dict:
        """
        Refresh every active profile whose token expires within the threshold.

        Refreshes run sequentially with a fixed delay between platform calls.
        Each profile is re-read just before its refresh and skipped when a
        concurrent run already moved its expiry out of the window.

        Returns:
            dict with total, refreshed, failed, skipped and per-profile results
        """
        threshold = threshold_hours or self.threshold_hours
        delay = settings.TOKEN_REFRESH_CALL_DELAY_SECONDS if call_delay_seconds is None else call_delay_seconds

        with self.track_execution(
            "refresh_all_expiring",
            triggered_by=triggered_by,
            input_params={"threshold_hours": threshold},
        ) as run_id:
            cutoff = self.clock() + timedelta(hours=threshold)
            candidate_ids = [profile.id for profile in self.profile_repo.get_expiring(cutoff)]

            summary = {"total": len(candidate_ids), "refreshed": 0, "failed": 0, "skipped": 0}
            results: List[dict] = []
            calls_made = 0

            for profile_id in candidate_ids:
                profile = self.profile_repo.get_by_id(profile_id)
                if (
                    profile is None
                    or not profile.is_active
                    or not self.is_expiring_soon(profile.token_expires_at, threshold, self.clock())
                ):
                    summary["skipped"] += 1
                    results.append(
                        {
                            "profile_id": profile_id,
                            "platform": profile.platform if profile else None,
                            "username": profile.platform_username if profile else None,
                            "success": True,
                            "skipped": True,
                            "message": "Skipped: token already refreshed or profile inactive",
                        }
                    )
                    continue

                if calls_made and delay:
                    await asyncio.sleep(delay)
                calls_made += 1

                outcome = await self.refresh(profile)
                summary["refreshed" if outcome.success else "failed"] += 1
                results.append(
                    {
                        "profile_id": outcome.profile_id,
                        "platform": outcome.platform,
                        "username": outcome.username,
                        "success": outcome.success,
                        "skipped": False,
                        "message": outcome.message,
                    }
                )

            logger.info(
                f"[TokenManager] Refresh run complete: {summary['refreshed']} refreshed, "
                f"{summary['failed']} failed, {summary['skipped']} skipped (of {summary['total']})"
            )
            self.set_result_summary(run_id, summary)
            return {**summary, "results": results}

    def get_profiles_needing_refresh(self, threshold_hours: Optional[int] = None) -> List[dict]:
        """Active profiles expiring within the threshold, soonest first."""
        threshold = threshold_hours or self.threshold_hours
        now = self.clock()
        profiles = self.profile_repo.get_expiring(now + timedelta(hours=threshold))
        return [
            {
                "profile_id": profile.id,
                "name": profile.name,
                "platform": profile.platform,
                "username": profile.platform_username,
                "token_expires_at": profile.token_expires_at.isoformat(),
                "hours_until_expiry": self.hours_until_expiry(profile.token_expires_at, now),
            }
            for profile in profiles
        ]

    def check_token_health(self, profile_id: str) -> dict:
        """
        Token status for one profile.

        Raises:
            ProfileNotFoundError: Unknown profile id
        """
        profile = self.profile_repo.get_by_id(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)

        now = self.clock()
        expired = self.is_expired(profile.token_expires_at, now)
        return {
            "profile_id": profile.id,
            "platform": profile.platform,
            "is_active": profile.is_active,
            "valid": profile.is_active and not expired,
            "expired": expired,
            "expires_at": profile.token_expires_at.isoformat() if profile.token_expires_at else None,
            "hours_until_expiry": self.hours_until_expiry(profile.token_expires_at, now),
            "needs_refresh": self.is_expiring_soon(profile.token_expires_at, self.threshold_hours, now),
            "has_refresh_token": bool(profile.refresh_token),
            "last_refreshed_at": profile.last_refreshed_at.isoformat() if profile.last_refreshed_at else None,
            "deactivation_reason": profile.deactivation_reason,
        }
