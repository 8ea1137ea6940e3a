"""The relay's service object: cache, throttling, retries and proxies around yt-dlp.

REQUEST FLOW
============
1. Validate the video id
2. Metadata cache hit -> done
3. Queue the extraction behind earlier ones (one in flight, fixed spacing)
4. Re-check the cache: an earlier queued request may have filled it
5. Extract through the retry controller (proxy rotation / backoff on 429)
6. Cache the result; failures never reach the cache
7. Pick the audio format, cached per video with the same TTL

One AudioService is built at startup, kept on app.state and injected into
route handlers; start() and stop() bracket its background work.
"""

import asyncio
import re
import time
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Optional, Tuple

from fastapi import Request

from ytaudio.config import Settings
from ytaudio.models.schemas import HealthCheck
from ytaudio.services import logger
from ytaudio.services.credentials import CredentialsProvider
from ytaudio.services.extractor import StreamInfo, fetch_stream_metadata, ytdlp_version
from ytaudio.services.format_selector import FormatChoice, choose_audio_format
from ytaudio.services.metadata_cache import TTLCache
from ytaudio.services.proxy import ProxyPool, ProxySource, http_proxy_source
from ytaudio.services.request_queue import RequestQueue
from ytaudio.services.retry import with_retry
from ytaudio.utils.exceptions import (
    CredentialsError,
    InvalidVideoIdError,
    NoAudioFormatError,
    ProxyListError,
)


VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

Extractor = Callable[[str, dict, Optional[str]], Awaitable[StreamInfo]]


def validate_video_id(video_id: Optional[str]) -> str:
    """Return the stripped id or raise InvalidVideoIdError."""
    video_id = (video_id or "").strip()
    if not video_id:
        raise InvalidVideoIdError("Missing video ID")
    if not VIDEO_ID_PATTERN.match(video_id):
        raise InvalidVideoIdError(f"Invalid video ID: {video_id[:32]}")
    return video_id


class AudioService:
    """Owns every piece of mutable relay state for the lifetime of the app."""

    def __init__(
        self,
        settings: Settings,
        extractor: Optional[Extractor] = None,
        proxy_source: Optional[ProxySource] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.metadata_cache: TTLCache[StreamInfo] = TTLCache(
            settings.CACHE_TTL_SECONDS, settings.CACHE_MAX_SIZE, name="metadata"
        )
        self.format_cache: TTLCache[FormatChoice] = TTLCache(
            settings.CACHE_TTL_SECONDS, settings.CACHE_MAX_SIZE, name="format"
        )
        self.queue = RequestQueue(settings.QUEUE_DELAY_SECONDS, settings.QUEUE_MAX_DEPTH)

        if proxy_source is None and settings.PROXY_LIST_URL:
            proxy_source = http_proxy_source(settings.PROXY_LIST_URL)
        self.proxy_pool = ProxyPool(proxy_source, settings.PROXY_REFRESH_INTERVAL_SECONDS)

        self.credentials = CredentialsProvider(
            cookies_path=settings.COOKIES_PATH,
            inline_cookies=settings.YOUTUBE_COOKIES,
            token=settings.YOUTUBE_OAUTH_TOKEN,
            work_dir=settings.TEMP_DIR,
        )

        self._extractor = extractor or partial(fetch_stream_metadata, watch_url=settings.YOUTUBE_WATCH_URL)
        self._sleep = sleep
        self._refresh_task: Optional[asyncio.Task] = None
        self.started_at = time.monotonic()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        self.started_at = time.monotonic()

        try:
            self.credentials.reload(strict=False)
        except CredentialsError:
            # Logged by the provider; start without cookies
            pass

        if self.proxy_pool.enabled:
            try:
                await self.proxy_pool.refresh(force=True)
            except ProxyListError:
                # Logged by the pool; extractions go direct until the next refresh
                pass

        self.queue.start()

        if self.settings.REFRESH_INTERVAL_SECONDS > 0:
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())

    async def stop(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        await self.queue.stop()

    async def _refresh_loop(self) -> None:
        """Reload credentials and proxies on a fixed interval."""
        while True:
            await asyncio.sleep(self.settings.REFRESH_INTERVAL_SECONDS)
            try:
                self.credentials.reload(strict=False)
            except CredentialsError:
                # Keep the previous credentials
                pass
            try:
                await self.proxy_pool.refresh()
            except ProxyListError:
                # Keep the previous proxy list
                pass

    # =========================================================================
    # EXTRACTION
    # =========================================================================

    async def get_stream_info(self, video_id: str) -> StreamInfo:
        """
        Get metadata for a video, from cache or through the throttled extractor.

        Raises:
            InvalidVideoIdError, QueueFullError, RateLimitError,
            AuthRequiredError, ExtractionError
        """
        video_id = validate_video_id(video_id)

        cached = self.metadata_cache.get(video_id)
        if cached is not None:
            logger.debug(f"Metadata cache hit: {video_id}", "cache", {"video_id": video_id})
            return cached

        return await self.queue.submit(partial(self._extract, video_id), label=video_id)

    async def _extract(self, video_id: str) -> StreamInfo:
        cached = self.metadata_cache.get(video_id)
        if cached is not None:
            return cached

        start_time = time.monotonic()
        stream_info = await with_retry(
            lambda proxy: self._extractor(video_id, self.credentials.ydl_opts(), proxy),
            max_attempts=self.settings.MAX_RETRY_ATTEMPTS,
            base_delay=self.settings.RETRY_BASE_DELAY_SECONDS,
            proxy_pool=self.proxy_pool,
            video_id=video_id,
            sleep=self._sleep,
        )

        self.metadata_cache.put(video_id, stream_info)
        # New signed URLs make any earlier format choice stale
        self.format_cache.delete(video_id)

        logger.success(
            f"Extracted {video_id}: {stream_info.title[:50]}",
            "ytdlp",
            {
                "video_id": video_id,
                "formats": len(stream_info.formats),
                "extraction_time_seconds": round(time.monotonic() - start_time, 2),
            },
        )
        return stream_info

    def choose_format(self, stream_info: StreamInfo) -> dict:
        """
        Pick (or recall) the audio format for an extracted video.

        Raises:
            NoAudioFormatError: If the video has no audio-only format
        """
        choice = self.format_cache.get(stream_info.video_id)
        if choice is not None:
            return choice.format

        fmt = choose_audio_format(stream_info.formats)
        if fmt is None:
            raise NoAudioFormatError(f"No audio stream found for {stream_info.video_id}")

        self.format_cache.put(stream_info.video_id, FormatChoice(video_id=stream_info.video_id, format=fmt))
        return fmt

    async def resolve(self, video_id: str) -> Tuple[StreamInfo, dict]:
        """Metadata plus the chosen audio format for a video."""
        stream_info = await self.get_stream_info(video_id)
        return stream_info, self.choose_format(stream_info)

    # =========================================================================
    # ADMIN
    # =========================================================================

    def clear_caches(self) -> dict:
        return {
            "metadata": self.metadata_cache.clear(),
            "format": self.format_cache.clear(),
        }

    def cache_stats(self) -> dict:
        return {
            "metadata": self.metadata_cache.get_stats(),
            "format": self.format_cache.get_stats(),
            "queue": self.queue.get_stats(),
        }

    def health(self) -> HealthCheck:
        """Diagnostic snapshot; reads state only."""
        auth = self.credentials.current
        return HealthCheck(
            status="OK" if self.queue.running else "degraded",
            cookies_loaded=auth.cookie_count > 0,
            cookie_count=auth.cookie_count,
            auth_type=auth.auth_type,
            cache_size=len(self.metadata_cache),
            format_cache_size=len(self.format_cache),
            queue_size=self.queue.size,
            proxy_count=len(self.proxy_pool),
            uptime=round(time.monotonic() - self.started_at, 1),
            ytdlp_version=ytdlp_version(),
            timestamp=datetime.utcnow().isoformat() + "Z",
        )


def get_audio_service(request: Request) -> AudioService:
    """FastAPI dependency returning the app's AudioService."""
    return request.app.state.audio_service
