"""Twitter (X) API v2 adapter."""

import asyncio
import re
from datetime import timedelta
from typing import List, Optional

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

TWEET_MAX_LENGTH = 280

_SENTENCE_BOUNDARY = re.compile(r"([.!?]\s+)")


def split_into_tweets(content: str, max_length: int = TWEET_MAX_LENGTH) -> List[str]:
    """
    Split long content into a numbered thread.

    Splits on sentence boundaries first and falls back to word boundaries
    for sentences longer than a tweet. Threads are prefixed "1/3 ", "2/3 "...
    """
    if len(content) <= max_length:
        return [content]

    # Reserve room for the "n/m " prefix
    limit = max_length - 8
    tweets = []
    current = ""

    for piece in _SENTENCE_BOUNDARY.split(content):
        if len(current + piece) <= limit:
            current += piece
            continue

        if current.strip():
            tweets.append(current.strip())

        if len(piece) > limit:
            words_tweet = ""
            for word in piece.split(" "):
                candidate = f"{words_tweet} {word}" if words_tweet else word
                if len(candidate) <= limit:
                    words_tweet = candidate
                else:
                    if words_tweet.strip():
                        tweets.append(words_tweet.strip())
                    while len(word) > limit:
                        tweets.append(word[:limit])
                        word = word[limit:]
                    words_tweet = word
            current = words_tweet
        else:
            current = piece

    if current.strip():
        tweets.append(current.strip())

    if len(tweets) > 1:
        return [f"{index}/{len(tweets)} {tweet}" for index, tweet in enumerate(tweets, start=1)]
    return tweets


class TwitterAdapter(PlatformAdapter):
    """
    Publish tweets and threads with OAuth 2.0 user tokens.

    Twitter access tokens live two hours; refresh tokens rotate on every
    refresh (the old one is kept if the response omits a new one).
    """

    platform = Platform.TWITTER

    API_BASE = "https://api.twitter.com/2"
    TOKEN_ENDPOINT = "https://api.twitter.com/2/oauth2/token"
    MEDIA_UPLOAD_ENDPOINT = "https://api.twitter.com/2/media/upload"
    MAX_IMAGES = 4
    THREAD_POST_DELAY_SECONDS = 1.0
    DEFAULT_TOKEN_LIFETIME_SECONDS = 7200

    ERROR_MESSAGES = {
        "invalid_grant": "Twitter authorization expired. Please reconnect your account.",
        "invalid_token": "Twitter access token is invalid. Please reconnect your account.",
        "access_denied": "Twitter authorization was denied. Please reconnect your account.",
        "rate_limit_exceeded": "Twitter API rate limit exceeded. Please wait 15 minutes before trying again.",
        "duplicate": "This tweet has already been posted recently. Twitter doesn't allow duplicate tweets.",
        "invalid_media": "Media file is invalid or too large. Please check the file and try again.",
        "tweet_too_long": "Tweet exceeds 280 characters.",
    }

    async def refresh_token(self, credentials: PlatformCredentials) -> RefreshedToken:
        if not credentials.refresh_token:
            raise InvalidCredentialsError(
                "No refresh token available. Please reconnect your account.",
                platform=self.platform.value,
            )
        if not settings.TWITTER_CLIENT_ID or not settings.TWITTER_CLIENT_SECRET:
            raise PlatformAPIError(
                "Twitter client ID and secret are required to refresh tokens",
                platform=self.platform.value,
            )

        async with self._client() as client:
            data = await self._request(
                client,
                "POST",
                self.TOKEN_ENDPOINT,
                auth=(settings.TWITTER_CLIENT_ID, settings.TWITTER_CLIENT_SECRET),
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": credentials.refresh_token,
                    "client_id": settings.TWITTER_CLIENT_ID,
                },
            )

        if not data.get("access_token"):
            raise PlatformAPIError(
                "No access_token in Twitter refresh response", platform=self.platform.value
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
        self._validate_media(media_urls)

        tweets = split_into_tweets(request.content or "")
        headers = {"Authorization": f"Bearer {credentials.access_token}"}

        async with self._client() as client:
            media_ids = []
            for url in media_urls:
                media_ids.append(await self._upload_media(client, headers, url))

            tweet_ids = []
            previous_id: Optional[str] = None
            for index, text in enumerate(tweets):
                payload = {"text": text}
                if index == 0 and media_ids:
                    payload["media"] = {"media_ids": media_ids}
                if previous_id:
                    payload["reply"] = {"in_reply_to_tweet_id": previous_id}

                data = await self._request(
                    client, "POST", f"{self.API_BASE}/tweets", json=payload, headers=headers
                )
                previous_id = (data.get("data") or {}).get("id")
                if not previous_id:
                    raise PlatformAPIError("Failed to get tweet ID", platform=self.platform.value)
                tweet_ids.append(previous_id)

                if index < len(tweets) - 1:
                    await asyncio.sleep(self.THREAD_POST_DELAY_SECONDS)

        first_id = tweet_ids[0]
        if credentials.username:
            url = f"https://twitter.com/{credentials.username}/status/{first_id}"
        else:
            url = f"https://twitter.com/i/web/status/{first_id}"

        logger.info(f"[Twitter] Published post {request.post_id} as {first_id} ({len(tweet_ids)} tweet(s))")
        return PublishResult(
            platform_post_id=first_id,
            url=url,
            metadata={"tweet_ids": tweet_ids, "thread_length": len(tweet_ids), "url": url},
        )

    def _validate_media(self, media_urls: List[str]) -> None:
        videos = [url for url in media_urls if is_video(url)]
        if videos and len(media_urls) > 1:
            raise ContentRejectedError(
                "Twitter only allows 1 video per tweet", platform=self.platform.value
            )
        if len(media_urls) > self.MAX_IMAGES:
            raise ContentRejectedError(
                f"Twitter allows maximum {self.MAX_IMAGES} images per tweet",
                platform=self.platform.value,
            )

    async def _upload_media(self, client: httpx.AsyncClient, headers: dict, url: str) -> str:
        """Fetch media from its public URL and upload it in a single request."""
        # TODO: large videos need the chunked INIT/APPEND/FINALIZE upload flow
        try:
            source = await client.get(url)
            source.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ContentRejectedError(
                f"Media URL not accessible ({e.response.status_code}): {url}",
                platform=self.platform.value,
            ) from e

        category = "tweet_video" if is_video(url) else "tweet_image"
        data = await self._request(
            client,
            "POST",
            self.MEDIA_UPLOAD_ENDPOINT,
            headers=headers,
            data={"media_category": category},
            files={"media": source.content},
        )
        media_id = (data.get("data") or {}).get("id") or data.get("media_id_string")
        if not media_id:
            raise PlatformAPIError("No media id in Twitter upload response", platform=self.platform.value)
        return str(media_id)

    def error_from_response(self, response: httpx.Response) -> PlatformAPIError:
        status = response.status_code
        data = self._json_or_empty(response)
        error_code = data.get("error")
        if not isinstance(error_code, str):
            error_code = None
        detail = data.get("detail") or data.get("error_description") or data.get("title") or ""
        common = {"platform": self.platform.value, "status_code": status, "error_code": error_code}

        if error_code in self.ERROR_MESSAGES:
            message = self.ERROR_MESSAGES[error_code]
        elif detail:
            message = f"Twitter error: {detail}"
        else:
            message = f"Twitter API error: HTTP {status}"

        if status == 429 or error_code == "rate_limit_exceeded":
            return RateLimitError(message, **common)
        if error_code in ("invalid_grant", "invalid_token", "access_denied") or status == 401:
            return InvalidCredentialsError(message, **common)
        if error_code == "invalid_client":
            # App misconfiguration, not the user's account
            return PlatformAPIError(
                "Invalid Twitter API credentials. Please check your app settings.", **common
            )
        if error_code in ("duplicate", "invalid_media", "tweet_too_long") or "duplicate" in detail.lower():
            return ContentRejectedError(message, **common)

        return self._error_for_status(status, message, error_code)
