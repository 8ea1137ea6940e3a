from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List

from ytaudio.services import format_selector


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VideoDetails(CamelModel):
    """Video information extracted from YouTube."""

    video_id: str
    title: str
    author: Optional[str] = None
    channel_id: Optional[str] = None
    length_seconds: int = 0
    view_count: Optional[int] = None
    thumbnail: Optional[str] = None
    is_live: bool = False

    @classmethod
    def from_ytdlp(cls, video_id: str, info: dict) -> "VideoDetails":
        return cls(
            video_id=video_id,
            title=info.get("title") or "Unknown",
            author=info.get("uploader") or info.get("channel"),
            channel_id=info.get("channel_id"),
            length_seconds=int(info.get("duration") or 0),
            view_count=info.get("view_count"),
            thumbnail=info.get("thumbnail"),
            is_live=bool(info.get("is_live")),
        )


class AudioFormat(CamelModel):
    """A single audio-only stream descriptor."""

    itag: str
    url: Optional[str] = None
    mime_type: str
    bitrate: float = 0
    audio_codec: Optional[str] = None
    container: Optional[str] = None
    content_length: Optional[int] = None
    audio_sample_rate: Optional[int] = None
    audio_channels: Optional[int] = None
    protocol: Optional[str] = None
    reliable: bool = False

    @classmethod
    def from_ytdlp(cls, fmt: dict) -> "AudioFormat":
        return cls(
            itag=str(fmt.get("format_id") or fmt.get("itag") or ""),
            url=fmt.get("url"),
            mime_type=format_selector.mime_type(fmt),
            bitrate=format_selector.bitrate(fmt),
            audio_codec=fmt.get("acodec"),
            container=fmt.get("ext"),
            content_length=format_selector.content_length(fmt),
            audio_sample_rate=fmt.get("asr"),
            audio_channels=fmt.get("audio_channels"),
            protocol=fmt.get("protocol"),
            reliable=format_selector.is_reliable(fmt),
        )


class Mp3Response(CamelModel):
    """Response model for the audio descriptor endpoint."""

    video_details: VideoDetails
    audio_formats: List[AudioFormat]
    recommended_format: AudioFormat


class ReloadCookiesResponse(CamelModel):
    success: bool
    message: str


class RefreshProxiesResponse(CamelModel):
    success: bool
    count: int
    proxies: List[str]


class HealthCheck(CamelModel):
    """Response model for health check."""

    status: str
    cookies_loaded: bool
    cookie_count: int
    auth_type: str
    cache_size: int
    format_cache_size: int
    queue_size: int
    proxy_count: int
    uptime: float
    ytdlp_version: str
    timestamp: str
