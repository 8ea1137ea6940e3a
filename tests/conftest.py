import os
import tempfile

# Settings are read at import time, so point file output somewhere disposable first
_TEST_ROOT = tempfile.mkdtemp(prefix="ytaudio-tests-")
os.environ.setdefault("TEMP_DIR", _TEST_ROOT)
os.environ.setdefault("LOG_DIR", os.path.join(_TEST_ROOT, "logs"))
os.environ.setdefault("COOKIES_PATH", os.path.join(_TEST_ROOT, "missing-cookies.txt"))
os.environ.setdefault("REFRESH_INTERVAL_SECONDS", "0")
os.environ.pop("API_KEY", None)
os.environ.pop("PROXY_LIST_URL", None)
os.environ.pop("YOUTUBE_COOKIES", None)

import pytest

from ytaudio.config import Settings
from ytaudio.services.extractor import StreamInfo


def audio_format(format_id, abr, reliable=True, ext="webm", acodec="opus", **extra):
    """A yt-dlp style audio-only format dict."""
    fmt = {
        "format_id": format_id,
        "ext": ext,
        "acodec": acodec,
        "vcodec": "none",
        "abr": abr,
        "protocol": "https",
        "url": f"https://rr1.googlevideo.com/videoplayback?itag={format_id}",
    }
    if reliable:
        fmt["filesize"] = 3_000_000
    fmt.update(extra)
    return fmt


def video_format(format_id, tbr):
    return {
        "format_id": format_id,
        "ext": "mp4",
        "acodec": "mp4a.40.2",
        "vcodec": "avc1.4d401e",
        "tbr": tbr,
        "protocol": "https",
        "url": f"https://rr1.googlevideo.com/videoplayback?itag={format_id}",
        "filesize": 9_000_000,
    }


def make_info(video_id, formats=None, title="Test Track"):
    return {
        "id": video_id,
        "title": title,
        "uploader": "Test Artist",
        "channel_id": "UC123",
        "duration": 212,
        "view_count": 1000,
        "thumbnail": "https://i.ytimg.com/vi/x/hq.jpg",
        "formats": formats if formats is not None else [
            audio_format("251", 160),
            audio_format("140", 128, ext="m4a", acodec="mp4a.40.2"),
            video_format("18", 500),
        ],
    }


class FakeExtractor:
    """Stands in for fetch_stream_metadata, replaying scripted outcomes."""

    def __init__(self, outcomes=None, formats=None):
        self.outcomes = list(outcomes or [])
        self.formats = formats
        self.calls = []

    async def __call__(self, video_id, auth_opts, proxy):
        self.calls.append({"video_id": video_id, "auth_opts": auth_opts, "proxy": proxy})
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
        return StreamInfo(video_id=video_id, info=make_info(video_id, self.formats), proxy=proxy)


@pytest.fixture
def make_settings(tmp_path):
    def factory(**overrides):
        values = {
            "TEMP_DIR": str(tmp_path),
            "COOKIES_PATH": str(tmp_path / "cookies.txt"),
            "QUEUE_DELAY_SECONDS": 0,
            "RETRY_BASE_DELAY_SECONDS": 0,
            "REFRESH_INTERVAL_SECONDS": 0,
            "PROXY_LIST_URL": None,
            "YOUTUBE_COOKIES": None,
            "YOUTUBE_OAUTH_TOKEN": None,
            "RATE_LIMIT": "1000/minute",
        }
        values.update(overrides)
        return Settings(**values)

    return factory
