"""Per-client inbound rate limit applied to every endpoint."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from ytaudio.config import Settings
from ytaudio.services import logger


RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again after a minute"


def build_limiter(app_settings: Settings) -> Limiter:
    """Limiter keyed on the client address; an empty RATE_LIMIT disables it."""
    limit = (app_settings.RATE_LIMIT or "").strip()
    return Limiter(
        key_func=get_remote_address,
        default_limits=[limit] if limit else [],
        headers_enabled=True,
        enabled=bool(limit),
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with the X-RateLimit-* headers of the limit that tripped."""
    logger.warn(
        f"Inbound rate limit hit by {get_remote_address(request)}: {exc.detail}",
        "request",
        {"path": request.url.path},
    )
    response = JSONResponse({"error": RATE_LIMIT_MESSAGE}, status_code=429)
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)
