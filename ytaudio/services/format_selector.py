"""Audio-only format selection over yt-dlp format dicts.

A format is reliable when it can be piped straight through: it has a direct
URL, a known content length, and is neither an HLS playlist nor a DASH
manifest. Reliable formats always win over unreliable ones; bitrate breaks
ties within each group.
"""

from dataclasses import dataclass
from typing import List, Optional


# yt-dlp protocols that point at a playlist/manifest rather than the media bytes
HLS_PROTOCOLS = ("m3u8", "m3u8_native")
DASH_PROTOCOLS = ("http_dash_segments", "http_dash_segments_generator")

MIME_BY_EXT = {
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "webm": "audio/webm",
    "weba": "audio/webm",
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "ogg": "audio/ogg",
}


@dataclass
class FormatChoice:
    """The format picked for a video, cached next to its metadata."""
    video_id: str
    format: dict


def is_audio_only(fmt: dict) -> bool:
    """Check whether a format carries audio and no video."""
    mime_type = fmt.get("mimeType") or ""
    if mime_type:
        return mime_type.startswith("audio/")
    acodec = fmt.get("acodec")
    return bool(acodec) and acodec != "none" and fmt.get("vcodec") == "none"


def content_length(fmt: dict) -> Optional[int]:
    """Exact byte size of a format, None when unknown."""
    size = fmt.get("filesize") or fmt.get("contentLength")
    if size is None:
        return None
    try:
        return int(size)
    except (TypeError, ValueError):
        return None


def bitrate(fmt: dict) -> float:
    """Audio bitrate in kbit/s, 0 when the format does not report one."""
    value = fmt.get("abr") or fmt.get("tbr") or fmt.get("bitrate") or 0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def is_manifest(fmt: dict) -> bool:
    """Check for HLS playlists and DASH manifest pointers."""
    protocol = (fmt.get("protocol") or "").lower()
    if protocol in HLS_PROTOCOLS or protocol in DASH_PROTOCOLS:
        return True
    if fmt.get("isHLS") or fmt.get("isDashMPD"):
        return True
    # Fragmented formats only have a manifest URL, no direct one
    return bool(fmt.get("fragments")) or bool(fmt.get("manifest_url") and not protocol.startswith("http"))


def is_reliable(fmt: dict) -> bool:
    """Direct URL, known length, not a manifest."""
    return bool(fmt.get("url")) and content_length(fmt) is not None and not is_manifest(fmt)


def mime_type(fmt: dict) -> str:
    """Content type to advertise when piping this format."""
    if fmt.get("mimeType"):
        return fmt["mimeType"].split(";")[0].strip()
    return MIME_BY_EXT.get((fmt.get("ext") or "").lower(), "audio/webm")


def audio_formats(formats: Optional[List[dict]]) -> List[dict]:
    """Keep only audio-only formats, preserving extractor order."""
    return [fmt for fmt in formats or [] if is_audio_only(fmt)]


def rank_formats(formats: List[dict]) -> List[dict]:
    """Sort formats by (reliable desc, bitrate desc). Stable for equal keys."""
    return sorted(formats, key=lambda f: (is_reliable(f), bitrate(f)), reverse=True)


def choose_audio_format(formats: Optional[List[dict]]) -> Optional[dict]:
    """
    Pick the best audio-only format.

    Args:
        formats: Raw format list as returned by the extractor

    Returns:
        The highest-bitrate reliable format, or the highest-bitrate format
        overall when none is reliable. None when there is no audio format.
    """
    ranked = rank_formats(audio_formats(formats))
    return ranked[0] if ranked else None
