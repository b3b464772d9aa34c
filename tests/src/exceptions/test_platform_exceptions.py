"""Tests for platform API exceptions."""

import pytest

from src.exceptions import (
    ContentRejectedError,
    ErrorKind,
    InvalidCredentialsError,
    PlatformAPIError,
    PlatformNetworkError,
    PlatformServerError,
    PublisherError,
    RateLimitError,
    TRANSIENT_ERROR_KINDS,
)


@pytest.mark.unit
class TestErrorKind:
    @pytest.mark.parametrize(
        "kind",
        [ErrorKind.NETWORK_ERROR, ErrorKind.RATE_LIMITED, ErrorKind.SERVER_ERROR, ErrorKind.UNKNOWN],
    )
    def test_transient_kinds(self, kind):
        assert kind.is_transient is True
        assert kind in TRANSIENT_ERROR_KINDS

    @pytest.mark.parametrize("kind", [ErrorKind.INVALID_CREDENTIALS, ErrorKind.CONTENT_REJECTED])
    def test_permanent_kinds(self, kind):
        assert kind.is_transient is False


@pytest.mark.unit
class TestPlatformAPIError:
    def test_base_attributes(self):
        error = PlatformAPIError(
            "Graph API error", platform="FACEBOOK", status_code=400, error_code="100"
        )

        assert error.message == "Graph API error"
        assert error.kind == ErrorKind.UNKNOWN
        assert error.platform == "FACEBOOK"
        assert error.status_code == 400
        assert isinstance(error, PublisherError)

    def test_str_includes_error_code(self):
        assert str(PlatformAPIError("Bad request", error_code="100")) == "Bad request (code: 100)"
        assert str(PlatformAPIError("Bad request")) == "Bad request"

    def test_explicit_kind_overrides_default(self):
        error = PlatformAPIError("odd", kind=ErrorKind.SERVER_ERROR)

        assert error.kind == ErrorKind.SERVER_ERROR

    @pytest.mark.parametrize(
        "error_class,kind",
        [
            (PlatformNetworkError, ErrorKind.NETWORK_ERROR),
            (PlatformServerError, ErrorKind.SERVER_ERROR),
            (ContentRejectedError, ErrorKind.CONTENT_REJECTED),
        ],
    )
    def test_subclass_default_kind(self, error_class, kind):
        error = error_class("failed")

        assert error.kind == kind
        assert isinstance(error, PlatformAPIError)


@pytest.mark.unit
class TestRateLimitError:
    def test_defaults(self):
        error = RateLimitError()

        assert error.kind == ErrorKind.RATE_LIMITED
        assert "rate limit" in str(error)
        assert error.retry_after_seconds is None

    def test_retry_after(self):
        error = RateLimitError("Slow down", retry_after_seconds=900, platform="TWITTER")

        assert error.retry_after_seconds == 900
        assert error.platform == "TWITTER"


@pytest.mark.unit
class TestInvalidCredentialsError:
    def test_defaults(self):
        error = InvalidCredentialsError()

        assert error.kind == ErrorKind.INVALID_CREDENTIALS
        assert "invalid or expired" in str(error)

    def test_custom_message_and_code(self):
        error = InvalidCredentialsError("Token revoked", error_code="190", status_code=401)

        assert str(error) == "Token revoked (code: 190)"
        assert error.status_code == 401
