"""Social Publisher exception classes."""

from src.exceptions.base import PublisherError
from src.exceptions.platform import (
    ErrorKind,
    TRANSIENT_ERROR_KINDS,
    PlatformAPIError,
    PlatformNetworkError,
    RateLimitError,
    PlatformServerError,
    InvalidCredentialsError,
    ContentRejectedError,
)
from src.exceptions.publishing import (
    PostNotFoundError,
    PostStateError,
    PostAlreadyPublishedError,
    PostAlreadyPublishingError,
    PostNotRetryableError,
    ProfileNotFoundError,
    ProfileInactiveError,
)

__all__ = [
    "PublisherError",
    "ErrorKind",
    "TRANSIENT_ERROR_KINDS",
    "PlatformAPIError",
    "PlatformNetworkError",
    "RateLimitError",
    "PlatformServerError",
    "InvalidCredentialsError",
    "ContentRejectedError",
    "PostNotFoundError",
    "PostStateError",
    "PostAlreadyPublishedError",
    "PostAlreadyPublishingError",
    "PostNotRetryableError",
    "ProfileNotFoundError",
    "ProfileInactiveError",
]
