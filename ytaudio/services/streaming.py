"""Pipe audio bytes from the YouTube CDN to the caller, Range requests included."""

from typing import AsyncIterator, Optional

import httpx

from ytaudio.services import logger
from ytaudio.services.format_selector import content_length, mime_type
from ytaudio.utils.exceptions import RateLimitError, UpstreamStreamError


CHUNK_SIZE = 64 * 1024
STREAM_TIMEOUT = httpx.Timeout(30.0, read=300.0)

# Upstream headers copied onto the relayed response
PASSTHROUGH_HEADERS = ("content-length", "content-range", "accept-ranges")


class UpstreamStream:
    """An open CDN response whose body has not been read yet."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response, fmt: dict, video_id: str = ""):
        self._client = client
        self._response = response
        self._format = fmt
        self.video_id = video_id

    @property
    def status_code(self) -> int:
        return self._response.status_code

    def response_headers(self) -> dict:
        """Headers for the relayed response, from the chosen format and the CDN."""
        headers = {"Content-Type": mime_type(self._format)}
        for name in PASSTHROUGH_HEADERS:
            value = self._response.headers.get(name)
            if value:
                headers[name.title()] = value

        if "Content-Length" not in headers and self.status_code == 200:
            size = content_length(self._format)
            if size is not None:
                headers["Content-Length"] = str(size)
        headers.setdefault("Accept-Ranges", "bytes")
        return headers

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        sent = 0
        try:
            async for chunk in self._response.aiter_bytes(CHUNK_SIZE):
                sent += len(chunk)
                yield chunk
        except httpx.HTTPError as e:
            logger.error(
                f"Upstream stream broke after {sent} bytes: {e}",
                "stream",
                {"video_id": self.video_id, "bytes_sent": sent},
            )
            raise
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self._response.aclose()
        await self._client.aclose()


async def open_audio_stream(
    fmt: dict,
    proxy: Optional[str] = None,
    range_header: Optional[str] = None,
    video_id: str = "",
) -> UpstreamStream:
    """
    Open the byte stream for a chosen format.

    Args:
        fmt: The yt-dlp format dict chosen for the video
        proxy: Proxy the metadata was extracted through (URLs are IP-bound)
        range_header: Caller's Range header, forwarded as-is

    Raises:
        RateLimitError: If the CDN answers 429
        UpstreamStreamError: On connection failure or any other error status
    """
    headers = dict(fmt.get("http_headers") or {})
    if range_header:
        headers["Range"] = range_header

    client = httpx.AsyncClient(proxy=proxy, timeout=STREAM_TIMEOUT, follow_redirects=True)
    request = client.build_request("GET", fmt["url"], headers=headers)

    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as e:
        await client.aclose()
        raise UpstreamStreamError(f"Could not reach audio CDN: {e}") from e

    if response.status_code >= 400:
        status = response.status_code
        await response.aclose()
        await client.aclose()
        if status == 429:
            raise RateLimitError("Audio CDN answered 429")
        raise UpstreamStreamError(f"Audio CDN answered {status}")

    logger.info(
        f"Streaming {video_id} ({response.status_code})",
        "stream",
        {"video_id": video_id, "range": range_header, "status": response.status_code},
    )
    return UpstreamStream(client, response, fmt, video_id)
