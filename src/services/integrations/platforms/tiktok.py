"""TikTok Content Posting API adapter."""

import asyncio
from datetime import timedelta

import httpx

from src.config.constants import Platform
from src.config.settings import settings
from src.exceptions import (
    ContentRejectedError,
    InvalidCredentialsError,
    PlatformAPIError,
    RateLimitError,
)
from src.services.integrations.platforms.base import (
    PlatformAdapter,
    PlatformCredentials,
    PublishRequest,
    PublishResult,
    RefreshedToken,
    is_video,
)
from src.utils.logger import logger


class TikTokAdapter(PlatformAdapter):
    """
    Publish videos to TikTok by letting TikTok pull them from their URL.

    Only the first media item is used; TikTok posts are video-only.
    """

    platform = Platform.TIKTOK

    API_BASE = "https://open.tiktokapis.com/v2"
    TOKEN_ENDPOINT = "https://open.tiktokapis.com/v2/oauth/token/"
    TITLE_MAX_LENGTH = 2200
    PRIVACY_LEVEL = "SELF_ONLY"  # Unaudited apps may only post privately
    STATUS_POLL_INTERVAL = 3  # seconds
    STATUS_MAX_POLLS = 20
    DEFAULT_TOKEN_LIFETIME_SECONDS = 86400

    CREDENTIAL_ERRORS = {"access_token_invalid", "scope_not_authorized", "invalid_grant", "token_expired"}
    RATE_LIMIT_ERRORS = {"rate_limit_exceeded", "spam_risk_too_many_posts", "spam_risk_too_many_pending_share"}
    CONTENT_ERRORS = {
        "video_upload_failed",
        "invalid_params",
        "url_ownership_unverified",
        "unaudited_client_can_only_post_to_private_accounts",
        "spam_risk_user_banned_from_posting",
    }

    ERROR_MESSAGES = {
        "access_token_invalid": "Access token is invalid or expired. Please reconnect your TikTok account.",
        "rate_limit_exceeded": "TikTok API rate limit exceeded. Please try again later.",
        "spam_risk_too_many_posts": "Too many posts in a short time. Please wait before posting again.",
        "video_upload_failed": "Video upload failed. Please check video format and size.",
        "scope_not_authorized": "Missing required permissions. Please reconnect and authorize all permissions.",
    }

    async def refresh_token(self, credentials: PlatformCredentials) -> RefreshedToken:
        if not credentials.refresh_token:
            raise InvalidCredentialsError(
                "No refresh token available. Please reconnect your account.",
                platform=self.platform.value,
            )
        if not settings.TIKTOK_CLIENT_KEY or not settings.TIKTOK_CLIENT_SECRET:
            raise PlatformAPIError(
                "TikTok client key and secret are required to refresh tokens",
                platform=self.platform.value,
            )

        async with self._client() as client:
            body = await self._request(
                client,
                "POST",
                self.TOKEN_ENDPOINT,
                data={
                    "client_key": settings.TIKTOK_CLIENT_KEY,
                    "client_secret": settings.TIKTOK_CLIENT_SECRET,
                    "grant_type": "refresh_token",
                    "refresh_token": credentials.refresh_token,
                },
            )

        # Token payload arrives either under "data" or at the root
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        self._raise_for_body_error(body, status=200)

        if not data.get("access_token"):
            raise PlatformAPIError(
                "Unexpected TikTok token refresh response format", platform=self.platform.value
            )

        expires_in = data.get("expires_in") or self.DEFAULT_TOKEN_LIFETIME_SECONDS
        return RefreshedToken(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or credentials.refresh_token,
            expires_at=self.clock() + timedelta(seconds=int(expires_in)),
        )

    async def publish(
        self, request: PublishRequest, credentials: PlatformCredentials
    ) -> PublishResult:
        media_urls = request.media_urls or []
        if not media_urls or not is_video(media_urls[0]):
            raise ContentRejectedError(
                "TikTok only supports video posts", platform=self.platform.value
            )

        video_url = media_urls[0]
        headers = {"Authorization": f"Bearer {credentials.access_token}"}
        title = (request.content or "")[: self.TITLE_MAX_LENGTH]

        async with self._client() as client:
            body = await self._request(
                client,
                "POST",
                f"{self.API_BASE}/post/publish/video/init/",
                headers=headers,
                json={
                    "post_info": {
                        "title": title,
                        "privacy_level": self.PRIVACY_LEVEL,
                        "disable_duet": False,
                        "disable_comment": False,
                        "disable_stitch": False,
                        "video_cover_timestamp_ms": 1000,
                    },
                    "source_info": {"source": "PULL_FROM_URL", "video_url": video_url},
                },
            )
            self._raise_for_body_error(body, status=200)

            publish_id = (body.get("data") or {}).get("publish_id")
            if not publish_id:
                raise PlatformAPIError("No publish_id in TikTok response", platform=self.platform.value)

            status = await self._wait_for_publish(client, headers, publish_id)

        logger.info(f"[TikTok] Published post {request.post_id} as {publish_id} ({status})")
        return PublishResult(
            platform_post_id=publish_id,
            metadata={
                "publish_id": publish_id,
                "publish_status": status,
                "username": credentials.username,
                "open_id": credentials.platform_user_id,
            },
        )

    async def _wait_for_publish(
        self, client: httpx.AsyncClient, headers: dict, publish_id: str
    ) -> str:
        """
        Poll publish status.

        The video is already accepted once init succeeds, so a status that is
        still processing after the last poll is returned as-is rather than
        raised (raising would trigger a retry and a duplicate post).
        """
        status = "PROCESSING_DOWNLOAD"
        for _ in range(self.STATUS_MAX_POLLS):
            body = await self._request(
                client,
                "POST",
                f"{self.API_BASE}/post/publish/status/fetch/",
                headers=headers,
                json={"publish_id": publish_id},
            )
            self._raise_for_body_error(body, status=200)
            data = body.get("data") or {}
            status = data.get("status", status)

            if status == "PUBLISH_COMPLETE":
                return status
            if status == "FAILED":
                reason = data.get("fail_reason", "unknown")
                raise ContentRejectedError(
                    f"TikTok rejected the video: {reason}",
                    platform=self.platform.value,
                    error_code=reason,
                )

            await asyncio.sleep(self.STATUS_POLL_INTERVAL)

        logger.warning(f"[TikTok] Publish {publish_id} still {status} after {self.STATUS_MAX_POLLS} polls")
        return status

    def _raise_for_body_error(self, body: dict, status: int) -> None:
        """TikTok reports some errors in a 200 body ({"error": {"code": ...}})."""
        error = body.get("error")
        if not error:
            return
        if isinstance(error, dict):
            code = error.get("code")
            if code in (None, "ok"):
                return
            raise self._classify(code, error.get("message"), status)
        raise self._classify(str(error), body.get("error_description"), status)

    def _classify(self, code: str, message: str, status: int) -> PlatformAPIError:
        text = self.ERROR_MESSAGES.get(code) or f"TikTok error: {message or code}"
        common = {"platform": self.platform.value, "status_code": status, "error_code": code}

        if code in self.CREDENTIAL_ERRORS:
            return InvalidCredentialsError(text, **common)
        if code in self.RATE_LIMIT_ERRORS:
            return RateLimitError(text, **common)
        if code in self.CONTENT_ERRORS:
            return ContentRejectedError(text, **common)
        return self._error_for_status(status, text, code) if status >= 400 else PlatformAPIError(text, **common)

    def error_from_response(self, response: httpx.Response) -> PlatformAPIError:
        status = response.status_code
        body = self._json_or_empty(response)
        error = body.get("error")

        if isinstance(error, dict) and error.get("code") not in (None, "ok"):
            return self._classify(error["code"], error.get("message"), status)
        if isinstance(error, str):
            return self._classify(error, body.get("error_description"), status)

        return self._error_for_status(status, f"TikTok API error: HTTP {status}")
