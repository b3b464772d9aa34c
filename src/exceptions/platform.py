"""Platform API errors raised by adapters."""

from enum import Enum
from typing import Optional

from src.exceptions.base import PublisherError


class ErrorKind(str, Enum):
    """
    Classification of a failed platform call.

    The publish worker decides retry vs. fail from this value alone;
    the token manager decides profile deactivation from it.
    """

    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    CONTENT_REJECTED = "CONTENT_REJECTED"
    UNKNOWN = "UNKNOWN"

    @property
    def is_transient(self) -> bool:
        return self in TRANSIENT_ERROR_KINDS


TRANSIENT_ERROR_KINDS = frozenset(
    {
        ErrorKind.NETWORK_ERROR,
        ErrorKind.RATE_LIMITED,
        ErrorKind.SERVER_ERROR,
        ErrorKind.UNKNOWN,
    }
)


class PlatformAPIError(PublisherError):
    """
    General platform API error.

    Attributes:
        message: Human-readable error description
        kind: ErrorKind classification
        platform: Platform name the call was made against
        status_code: HTTP status returned by the platform (if any)
        error_code: Platform-specific error code (e.g. 190, 'invalid_grant')
    """

    default_kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        platform: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.platform = platform
        self.status_code = status_code
        self.error_code = error_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.error_code:
            return f"{base} (code: {self.error_code})"
        return base


class PlatformNetworkError(PlatformAPIError):
    """Timeout or connection failure talking to the platform."""

    default_kind = ErrorKind.NETWORK_ERROR


class RateLimitError(PlatformAPIError):
    """
    Platform rate limit exceeded.

    Attributes:
        retry_after_seconds: Suggested wait time before retrying (if provided by API)
    """

    default_kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str = "Platform API rate limit exceeded",
        retry_after_seconds: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.retry_after_seconds = retry_after_seconds


class PlatformServerError(PlatformAPIError):
    """Platform returned a 5xx response."""

    default_kind = ErrorKind.SERVER_ERROR


class InvalidCredentialsError(PlatformAPIError):
    """
    Access or refresh token rejected by the platform.

    The user has to reconnect the account; retrying will not help.
    """

    default_kind = ErrorKind.INVALID_CREDENTIALS

    def __init__(
        self,
        message: str = "Platform credentials are invalid or expired",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class ContentRejectedError(PlatformAPIError):
    """Platform refused the content itself (duplicate, invalid media, too long)."""

    default_kind = ErrorKind.CONTENT_REJECTED
