"""Meta Graph API adapters (Facebook Pages and Instagram Business accounts)."""

import asyncio
from datetime import timedelta
from typing import List, Optional

import httpx

from src.config.constants import Platform, PostFormat, META_TOKEN_DEFAULT_LIFETIME_SECONDS
from src.config.settings import settings
from src.exceptions import (
    ContentRejectedError,
    InvalidCredentialsError,
    PlatformAPIError,
    PlatformServerError,
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


class MetaGraphAdapter(PlatformAdapter):
    """
    Shared Graph API plumbing.

    Facebook and Instagram profiles both hold long-lived Meta user/page
    tokens and refresh them with the fb_exchange_token grant.
    """

    META_GRAPH_BASE = "https://graph.facebook.com/v18.0"
    META_TOKEN_ENDPOINT = f"{META_GRAPH_BASE}/oauth/access_token"

    # Graph API error codes
    RATE_LIMIT_CODES = {4, 17, 32, 613}
    AUTH_ERROR_CODES = {102, 104, 190}
    PERMISSION_ERROR_CODES = {10, 200}
    CONTENT_ERROR_CODES = {100, 368, 506, 324, 352}
    TRANSIENT_ERROR_CODES = {1, 2}

    async def refresh_token(self, credentials: PlatformCredentials) -> RefreshedToken:
        """Exchange the current long-lived token for a new one (60 days by default)."""
        if not settings.FACEBOOK_APP_ID or not settings.FACEBOOK_APP_SECRET:
            raise PlatformAPIError(
                "Facebook App ID and Secret are required to refresh Meta tokens",
                platform=self.platform.value,
            )

        async with self._client() as client:
            data = await self._request(
                client,
                "GET",
                self.META_TOKEN_ENDPOINT,
                params={
                    "grant_type": "fb_exchange_token",
                    "client_id": settings.FACEBOOK_APP_ID,
                    "client_secret": settings.FACEBOOK_APP_SECRET,
                    "fb_exchange_token": credentials.access_token,
                },
            )

        new_token = data.get("access_token")
        if not new_token:
            raise PlatformAPIError(
                "No access_token in Meta token exchange response",
                platform=self.platform.value,
            )

        expires_in = data.get("expires_in") or META_TOKEN_DEFAULT_LIFETIME_SECONDS
        return RefreshedToken(
            access_token=new_token,
            expires_at=self.clock() + timedelta(seconds=int(expires_in)),
        )

    def error_from_response(self, response: httpx.Response) -> PlatformAPIError:
        """Classify Graph API errors from the error envelope."""
        status = response.status_code
        error = self._json_or_empty(response).get("error") or {}
        if not isinstance(error, dict):
            error = {"message": str(error)}

        code = error.get("code")
        subcode = error.get("error_subcode")
        error_type = error.get("type")
        message = error.get("message") or f"HTTP {status}"
        common = {
            "platform": self.platform.value,
            "status_code": status,
            "error_code": str(code) if code is not None else None,
        }

        if code in self.RATE_LIMIT_CODES or status == 429:
            return RateLimitError(f"{self.label} rate limit reached: {message}", **common)
        if code in self.AUTH_ERROR_CODES or (error_type == "OAuthException" and status == 401):
            return InvalidCredentialsError(
                f"{self.label} access token is invalid or expired: {message}", **common
            )
        if code in self.PERMISSION_ERROR_CODES:
            return InvalidCredentialsError(
                f"{self.label} permission denied: {message}", **common
            )
        if code in self.CONTENT_ERROR_CODES:
            detail = f" (subcode: {subcode})" if subcode else ""
            return ContentRejectedError(f"{self.label} rejected the post: {message}{detail}", **common)
        if code in self.TRANSIENT_ERROR_CODES:
            return PlatformServerError(f"{self.label} temporary error: {message}", **common)

        return self._error_for_status(status, f"{self.label} API error: {message}", common["error_code"])


class FacebookAdapter(MetaGraphAdapter):
    """Publish to a Facebook Page feed (text, photo, video, or photo album)."""

    platform = Platform.FACEBOOK

    def _page_id(self, credentials: PlatformCredentials) -> str:
        return credentials.metadata.get("page_id") or credentials.platform_user_id

    async def publish(
        self, request: PublishRequest, credentials: PlatformCredentials
    ) -> PublishResult:
        page_id = self._page_id(credentials)
        if not page_id:
            raise ContentRejectedError(
                "Facebook profile has no page id", platform=self.platform.value
            )

        token = credentials.access_token
        media_urls = request.media_urls or []

        async with self._client() as client:
            if not media_urls:
                data = await self._request(
                    client,
                    "POST",
                    f"{self.META_GRAPH_BASE}/{page_id}/feed",
                    json={"message": request.content, "access_token": token},
                )
            elif len(media_urls) == 1 and is_video(media_urls[0]):
                data = await self._request(
                    client,
                    "POST",
                    f"{self.META_GRAPH_BASE}/{page_id}/videos",
                    json={
                        "file_url": media_urls[0],
                        "description": request.content,
                        "access_token": token,
                    },
                )
            elif len(media_urls) == 1:
                data = await self._request(
                    client,
                    "POST",
                    f"{self.META_GRAPH_BASE}/{page_id}/photos",
                    json={"url": media_urls[0], "message": request.content, "access_token": token},
                )
            else:
                data = await self._publish_album(client, page_id, token, request.content, media_urls)

        post_id = data.get("post_id") or data.get("id")
        if not post_id:
            raise PlatformAPIError("No post id in Facebook response", platform=self.platform.value)

        logger.info(f"[Facebook] Published post {request.post_id} as {post_id}")
        return PublishResult(
            platform_post_id=str(post_id),
            url=f"https://www.facebook.com/{post_id}",
            metadata={"page_id": page_id, "media_count": len(media_urls)},
        )

    async def _publish_album(
        self,
        client: httpx.AsyncClient,
        page_id: str,
        token: str,
        content: str,
        media_urls: List[str],
    ) -> dict:
        """Upload photos unpublished, then attach them to a single feed post."""
        photo_ids = []
        for url in media_urls:
            photo = await self._request(
                client,
                "POST",
                f"{self.META_GRAPH_BASE}/{page_id}/photos",
                json={"url": url, "published": False, "access_token": token},
            )
            photo_ids.append(photo["id"])

        return await self._request(
            client,
            "POST",
            f"{self.META_GRAPH_BASE}/{page_id}/feed",
            json={
                "message": content,
                "attached_media": [{"media_fbid": pid} for pid in photo_ids],
                "access_token": token,
            },
        )


class InstagramAdapter(MetaGraphAdapter):
    """
    Publish to an Instagram Business account.

    Flow:
    1. Create media container (or carousel items + carousel container)
    2. Poll until status_code is FINISHED
    3. Publish the container
    """

    platform = Platform.INSTAGRAM

    CAPTION_MAX_LENGTH = 2200
    CONTAINER_STATUS_POLL_INTERVAL = 2  # seconds
    CONTAINER_STATUS_MAX_POLLS = 30  # max ~60 seconds wait

    def _account_id(self, credentials: PlatformCredentials) -> Optional[str]:
        return credentials.metadata.get("instagram_account_id") or credentials.platform_user_id

    async def publish(
        self, request: PublishRequest, credentials: PlatformCredentials
    ) -> PublishResult:
        account_id = self._account_id(credentials)
        media_urls = request.media_urls or []
        if not media_urls:
            raise ContentRejectedError(
                "Instagram posts require at least one image or video",
                platform=self.platform.value,
            )
        if not account_id:
            raise ContentRejectedError(
                "Instagram profile has no business account id", platform=self.platform.value
            )

        caption = request.content or ""
        if len(caption) > self.CAPTION_MAX_LENGTH:
            logger.warning(
                f"[Instagram] Caption is {len(caption)} characters, truncating to {self.CAPTION_MAX_LENGTH}"
            )
            caption = caption[: self.CAPTION_MAX_LENGTH]

        token = credentials.access_token
        async with self._client() as client:
            if len(media_urls) == 1:
                container_id = await self._create_container(
                    client, account_id, token, media_urls[0], caption, request.post_format
                )
            else:
                container_id = await self._create_carousel(client, account_id, token, media_urls, caption)

            await self._wait_for_container_ready(client, token, container_id)

            data = await self._request(
                client,
                "POST",
                f"{self.META_GRAPH_BASE}/{account_id}/media_publish",
                data={"creation_id": container_id, "access_token": token},
            )

        media_id = data.get("id")
        if not media_id:
            raise PlatformAPIError("No media id in Instagram publish response", platform=self.platform.value)

        logger.info(f"[Instagram] Published post {request.post_id} as {media_id}")
        return PublishResult(
            platform_post_id=str(media_id),
            metadata={
                "container_id": container_id,
                "instagram_account_id": account_id,
                "media_count": len(media_urls),
            },
        )

    async def _create_container(
        self,
        client: httpx.AsyncClient,
        account_id: str,
        token: str,
        media_url: str,
        caption: str,
        post_format: str,
    ) -> str:
        params = {"caption": caption, "access_token": token}
        if is_video(media_url):
            if not media_url.startswith("https://"):
                raise ContentRejectedError(
                    "Instagram video URL must use HTTPS", platform=self.platform.value
                )
            params["media_type"] = "REELS" if post_format == PostFormat.REEL.value else "VIDEO"
            params["video_url"] = media_url
        else:
            params["image_url"] = media_url

        data = await self._request(
            client, "POST", f"{self.META_GRAPH_BASE}/{account_id}/media", data=params
        )
        container_id = data.get("id")
        if not container_id:
            raise PlatformAPIError("No container ID in response", platform=self.platform.value)

        logger.info(f"[Instagram] Created media container: {container_id}")
        return container_id

    async def _create_carousel(
        self,
        client: httpx.AsyncClient,
        account_id: str,
        token: str,
        media_urls: List[str],
        caption: str,
    ) -> str:
        children = []
        for url in media_urls:
            params = {"is_carousel_item": "true", "access_token": token}
            if is_video(url):
                params["media_type"] = "VIDEO"
                params["video_url"] = url
            else:
                params["image_url"] = url
            item = await self._request(
                client, "POST", f"{self.META_GRAPH_BASE}/{account_id}/media", data=params
            )
            await self._wait_for_container_ready(client, token, item["id"])
            children.append(item["id"])

        data = await self._request(
            client,
            "POST",
            f"{self.META_GRAPH_BASE}/{account_id}/media",
            data={
                "media_type": "CAROUSEL",
                "children": ",".join(children),
                "caption": caption,
                "access_token": token,
            },
        )
        return data["id"]

    async def _wait_for_container_ready(
        self, client: httpx.AsyncClient, token: str, container_id: str
    ) -> None:
        """Poll container status until FINISHED."""
        for poll_num in range(self.CONTAINER_STATUS_MAX_POLLS):
            data = await self._request(
                client,
                "GET",
                f"{self.META_GRAPH_BASE}/{container_id}",
                params={"fields": "status_code,status", "access_token": token},
            )
            status_code = data.get("status_code")

            if status_code == "FINISHED":
                logger.debug(f"Container {container_id} ready after {poll_num + 1} polls")
                return

            if status_code in ("ERROR", "EXPIRED"):
                raise ContentRejectedError(
                    f"Media container {status_code.lower()}: {data.get('status', 'unknown error')}",
                    platform=self.platform.value,
                    error_code=status_code,
                )

            await asyncio.sleep(self.CONTAINER_STATUS_POLL_INTERVAL)

        raise PlatformServerError(
            f"Media container did not finish after {self.CONTAINER_STATUS_MAX_POLLS} polls",
            platform=self.platform.value,
        )
