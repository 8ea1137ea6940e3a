"""yt-dlp metadata extraction and failure classification.

Every yt-dlp failure leaves this module as a typed relay exception, so the
retry controller and the routes only ever branch on exception classes:

- RateLimitError: the wrapped HTTPError has status 429, or yt-dlp reports
  "Too Many Requests"
- AuthRequiredError: status 401, or yt-dlp's sign-in / age-confirmation
  prompts
- ExtractionError: everything else
"""

import asyncio
import urllib.error
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, List, Optional

import yt_dlp
from yt_dlp.networking.exceptions import HTTPError as YtdlpHTTPError

from ytaudio.services import logger
from ytaudio.services.extraction_config import get_config
from ytaudio.services.proxy import mask_proxy
from ytaudio.utils.exceptions import (
    AuthRequiredError,
    ExtractionError,
    RateLimitError,
    RelayError,
)


# Messages yt-dlp raises when YouTube wants a signed-in session
SIGN_IN_MARKERS = (
    "sign in to confirm",
    "this video may be inappropriate for some users",
    "login required",
    "--cookies-from-browser or --cookies",
)
RATE_LIMIT_MARKERS = (
    "http error 429",
    "too many requests",
)

# One worker: the request queue already serializes extraction calls
_extract_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ytdlp")


@dataclass
class StreamInfo:
    """Extracted metadata for a video and the proxy it was fetched through.

    Signed format URLs are bound to the IP that extracted them, so the byte
    stream must go out through the same proxy.
    """
    video_id: str
    info: dict
    proxy: Optional[str] = None

    @property
    def title(self) -> str:
        return self.info.get("title") or "Unknown"

    @property
    def formats(self) -> List[dict]:
        return self.info.get("formats") or []


def _iter_causes(error: BaseException) -> Iterator[BaseException]:
    """Walk an exception and everything yt-dlp or Python chained onto it."""
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current

        exc_info = getattr(current, "exc_info", None)
        if isinstance(exc_info, tuple) and len(exc_info) > 1:
            pending.append(exc_info[1])
        pending.append(getattr(current, "cause", None))
        pending.append(current.__cause__)
        pending.append(current.__context__)


def http_status(error: BaseException) -> Optional[int]:
    """HTTP status carried by an extraction failure, if any."""
    for cause in _iter_causes(error):
        if isinstance(cause, YtdlpHTTPError):
            return cause.status
        if isinstance(cause, urllib.error.HTTPError):
            return cause.code
    return None


def classify_extraction_error(error: BaseException) -> RelayError:
    """
    Map a yt-dlp failure to a relay exception.

    The HTTP status is authoritative when present; message markers are only
    consulted when yt-dlp raised without one.
    """
    if isinstance(error, RelayError):
        return error

    message = str(error)
    status = http_status(error)

    if status == 429:
        return RateLimitError(message)
    if status == 401:
        return AuthRequiredError(message)

    lowered = message.lower()
    if any(marker in lowered for marker in SIGN_IN_MARKERS):
        return AuthRequiredError(message)
    if status is None and any(marker in lowered for marker in RATE_LIMIT_MARKERS):
        return RateLimitError(message)

    return ExtractionError(message)


def build_ydl_opts(video_id: str, auth_opts: dict, proxy: Optional[str]) -> dict:
    """yt-dlp options for a metadata-only extraction."""
    config = get_config()

    youtube_args: dict = {"lang": list(config.languages)}
    if config.preferred_player_client:
        youtube_args["player_client"] = [config.preferred_player_client]

    ydl_opts = {
        **auth_opts,
        "quiet": True,
        "logger": logger.YtdlpLogger(video_id),
        "skip_download": True,  # Metadata and signed URLs only
        "noplaylist": True,
        "format": "bestaudio/best",
        "socket_timeout": config.socket_timeout,
        "geo_bypass": config.geo_bypass,
        "extractor_retries": 0,
        "extractor_args": {"youtube": youtube_args},
    }
    if proxy:
        ydl_opts["proxy"] = proxy
    return ydl_opts


async def fetch_stream_metadata(
    video_id: str,
    auth_opts: dict,
    proxy: Optional[str],
    watch_url: str = "https://music.youtube.com/watch?v=",
) -> StreamInfo:
    """
    Extract metadata and signed format URLs for a video.

    Args:
        video_id: YouTube video ID
        auth_opts: Credential options from CredentialsProvider.ydl_opts()
        proxy: Proxy URL to extract through, or None for a direct connection
        watch_url: Watch URL prefix the id is appended to

    Raises:
        RateLimitError, AuthRequiredError, ExtractionError
    """
    url = f"{watch_url}{video_id}"
    ydl_opts = build_ydl_opts(video_id, auth_opts, proxy)

    logger.info(
        f"Extracting metadata for {video_id}",
        "ytdlp",
        {"video_id": video_id, "proxy": mask_proxy(proxy) if proxy else None},
    )

    def _blocking_extract():
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            return ydl.extract_info(url, download=False)

    try:
        loop = asyncio.get_running_loop()
        info = await loop.run_in_executor(_extract_executor, _blocking_extract)
    except yt_dlp.utils.YoutubeDLError as e:
        classified = classify_extraction_error(e)
        logger.warn(
            f"Extraction failed ({classified.error_code}): {classified.message[:120]}",
            "ytdlp",
            {"video_id": video_id},
        )
        raise classified from e

    if not info:
        raise ExtractionError(f"yt-dlp returned no metadata for {video_id}")

    return StreamInfo(video_id=video_id, info=info, proxy=proxy)


def ytdlp_version() -> str:
    return yt_dlp.version.__version__
