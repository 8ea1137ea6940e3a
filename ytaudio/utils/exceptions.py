"""Relay exceptions carrying the HTTP status and retry metadata for each failure class."""

from typing import Optional


class RelayError(Exception):
    """Base exception for relay errors with response metadata."""

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        status_code: int = 500,
        retryable: bool = False,
        user_message: Optional[str] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.retryable = retryable
        # Message that is safe to show to API consumers
        self.user_message = user_message or message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.user_message,
            "error_code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }


# =============================================================================
# REQUEST ERRORS - Surfaced immediately, never retried
# =============================================================================

class InvalidVideoIdError(RelayError):
    """Raised when the video id is missing or malformed."""

    def __init__(self, message: str = "Missing video ID"):
        super().__init__(
            message=message,
            error_code="INVALID_VIDEO_ID",
            status_code=400,
            retryable=False,
            user_message="Missing or invalid video ID",
        )


class AuthRequiredError(RelayError):
    """Raised when YouTube asks for sign-in or age confirmation."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code="AUTH_REQUIRED",
            status_code=401,
            retryable=False,
            user_message="Authentication required. Please check your cookies.txt file.",
        )


class NoAudioFormatError(RelayError):
    """Raised when the video carries no audio-only format."""

    def __init__(self, message: str = "No audio stream found"):
        super().__init__(
            message=message,
            error_code="NO_AUDIO_FORMAT",
            status_code=404,
            retryable=False,
            user_message="No audio stream found",
        )


class ExtractionError(RelayError):
    """Raised when extraction fails for any other reason."""

    def __init__(self, message: str = "Failed to fetch video streaming data"):
        super().__init__(
            message=message,
            error_code="EXTRACTION_ERROR",
            status_code=500,
            retryable=False,
            user_message="Failed to fetch video streaming data",
        )


class CredentialsError(RelayError):
    """Raised when the cookie source cannot be read or parsed."""

    def __init__(self, message: str = "Failed to reload cookies"):
        super().__init__(
            message=message,
            error_code="CREDENTIALS_ERROR",
            status_code=500,
            retryable=False,
            user_message="Failed to reload cookies",
        )


class ProxyListError(RelayError):
    """Raised when the proxy list cannot be fetched."""

    def __init__(self, message: str = "Failed to refresh proxies"):
        super().__init__(
            message=message,
            error_code="PROXY_LIST_ERROR",
            status_code=500,
            retryable=False,
            user_message="Failed to refresh proxies",
        )


# =============================================================================
# TRANSIENT ERRORS - Retried by the backoff controller or by the caller
# =============================================================================

class RateLimitError(RelayError):
    """Raised when YouTube answers with HTTP 429."""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(
            message=message,
            error_code="RATE_LIMITED",
            status_code=429,
            retryable=True,
            user_message="YouTube rate limit exceeded. Please try again later.",
        )


class QueueFullError(RelayError):
    """Raised when the throttling queue is at its depth cap."""

    def __init__(self, message: str = "Request queue is full"):
        super().__init__(
            message=message,
            error_code="QUEUE_FULL",
            status_code=503,
            retryable=True,
            user_message="Service is busy. Please try again shortly.",
        )


class UpstreamStreamError(RelayError):
    """Raised when the audio CDN rejects the byte-stream request."""

    def __init__(self, message: str = "Upstream stream request failed"):
        super().__init__(
            message=message,
            error_code="UPSTREAM_STREAM_ERROR",
            status_code=502,
            retryable=True,
            user_message="Failed to stream audio",
        )


def get_error_response(error: Exception) -> dict:
    """Get a standardized error response dict from any exception."""
    if isinstance(error, RelayError):
        return error.to_dict()

    return {
        "error": "An unexpected error occurred",
        "error_code": "INTERNAL_ERROR",
        "message": str(error),
        "retryable": False,
    }
