"""Platform adapter contract shared by every social network integration."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from src.config.constants import Platform, VIDEO_EXTENSIONS
from src.config.settings import settings
from src.exceptions import (
    ContentRejectedError,
    ErrorKind,
    InvalidCredentialsError,
    PlatformAPIError,
    PlatformNetworkError,
    PlatformServerError,
    RateLimitError,
)
from src.utils.logger import logger


@dataclass
class PlatformCredentials:
    """Decrypted credentials for one profile. Never persisted."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    platform_user_id: Optional[str] = None
    username: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PublishRequest:
    post_id: str
    content: str
    media_urls: List[str] = field(default_factory=list)
    post_format: str = "POST"


@dataclass
class PublishResult:
    platform_post_id: str
    url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RefreshedToken:
    """
    Result of a token refresh.

    refresh_token is None when the platform did not rotate it; the stored
    one is kept in that case.
    """

    access_token: str
    expires_at: Optional[datetime] = None
    refresh_token: Optional[str] = None


def is_video(url: str) -> bool:
    """Detect video media from the URL path (query strings ignored)."""
    path = url.split("?", 1)[0].lower()
    return path.endswith(VIDEO_EXTENSIONS)


class PlatformAdapter(ABC):
    """
    Base class for platform integrations.

    Adapters translate a publish request into platform API calls and raise
    PlatformAPIError subclasses carrying an ErrorKind on failure. They never
    decide about retries or profile state; the publish worker and token
    manager act on the classification.

    Every HTTP call goes through an httpx.AsyncClient with a fixed timeout.
    Tests inject an httpx.MockTransport via the transport argument.
    """

    platform: Platform

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.ADAPTER_HTTP_TIMEOUT_SECONDS
        self.transport = transport
        self.clock = clock or datetime.utcnow

    @property
    def label(self) -> str:
        return self.platform.value.title()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @abstractmethod
    async def publish(
        self, request: PublishRequest, credentials: PlatformCredentials
    ) -> PublishResult:
        """Publish content. Raises PlatformAPIError on failure."""

    @abstractmethod
    async def refresh_token(self, credentials: PlatformCredentials) -> RefreshedToken:
        """Exchange current credentials for fresh ones. Raises PlatformAPIError on failure."""

    def classify_error(self, error: Exception) -> ErrorKind:
        """Map any exception raised during a platform call to an ErrorKind."""
        if isinstance(error, PlatformAPIError):
            return error.kind
        if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
            return ErrorKind.NETWORK_ERROR
        if isinstance(error, httpx.HTTPStatusError):
            return self.error_from_response(error.response).kind
        return ErrorKind.UNKNOWN

    async def _request(
        self, client: httpx.AsyncClient, method: str, url: str, **kwargs
    ) -> dict:
        """Perform a request and return the JSON body, raising classified errors."""
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"[{self.label}] Request timed out: {method} {url}")
            raise PlatformNetworkError(
                f"{self.label} request timed out", platform=self.platform.value
            ) from e
        except httpx.RequestError as e:
            logger.warning(f"[{self.label}] Network error: {e}")
            raise PlatformNetworkError(
                f"Network error contacting {self.label}: {e}", platform=self.platform.value
            ) from e

        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError:
                raise PlatformAPIError(
                    f"{self.label} returned a non-JSON response",
                    platform=self.platform.value,
                    status_code=response.status_code,
                )

        raise self.error_from_response(response)

    @staticmethod
    def _json_or_empty(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def error_from_response(self, response: httpx.Response) -> PlatformAPIError:
        """
        Build a classified error from a non-2xx response.

        Status-code fallback; adapters refine it with platform error codes.
        """
        status = response.status_code
        message = f"{self.label} API error: HTTP {status}"
        return self._error_for_status(status, message)

    def _error_for_status(
        self, status: int, message: str, error_code: Optional[str] = None
    ) -> PlatformAPIError:
        common = {
            "platform": self.platform.value,
            "status_code": status,
            "error_code": error_code,
        }
        if status == 429:
            return RateLimitError(message, **common)
        if status in (401, 403):
            return InvalidCredentialsError(message, **common)
        if status >= 500:
            return PlatformServerError(message, **common)
        if status in (400, 409, 413, 415, 422):
            return ContentRejectedError(message, **common)
        return PlatformAPIError(message, **common)
