import asyncio
import io

import pytest
import yt_dlp
from yt_dlp.networking import Response
from yt_dlp.networking.exceptions import HTTPError
from yt_dlp.utils import DownloadError

from ytaudio.services import extractor
from ytaudio.services.extractor import (
    build_ydl_opts,
    classify_extraction_error,
    fetch_stream_metadata,
    http_status,
)
from ytaudio.utils.exceptions import AuthRequiredError, ExtractionError, RateLimitError


def _download_error(message, status=None):
    if status is None:
        return DownloadError(message)
    response = Response(io.BytesIO(b""), "https://www.youtube.com/youtubei/v1/player", {}, status=status)
    http_error = HTTPError(response)
    return DownloadError(message, exc_info=(HTTPError, http_error, None))


def test_http_status_reads_wrapped_error():
    assert http_status(_download_error("ERROR: HTTP Error 429", status=429)) == 429
    assert http_status(_download_error("ERROR: boom")) is None


def test_status_429_is_rate_limit():
    assert isinstance(classify_extraction_error(_download_error("ERROR: HTTP Error 429", 429)), RateLimitError)


def test_status_401_is_auth_required():
    assert isinstance(classify_extraction_error(_download_error("ERROR: Unauthorized", 401)), AuthRequiredError)


@pytest.mark.parametrize("message", [
    "ERROR: [youtube] abc: Sign in to confirm you're not a bot",
    "ERROR: [youtube] abc: Sign in to confirm your age. This video may be inappropriate for some users.",
    "ERROR: Use --cookies-from-browser or --cookies for the authentication.",
])
def test_sign_in_prompts_are_auth_required(message):
    assert isinstance(classify_extraction_error(_download_error(message)), AuthRequiredError)


def test_too_many_requests_without_status_is_rate_limit():
    error = _download_error("ERROR: [youtube] abc: Too Many Requests")

    assert isinstance(classify_extraction_error(error), RateLimitError)


def test_rate_limit_wording_with_other_status_is_not_retried():
    error = _download_error("ERROR: Too Many Requests (cached page)", status=403)

    assert isinstance(classify_extraction_error(error), ExtractionError)


def test_other_failures_are_extraction_errors():
    classified = classify_extraction_error(_download_error("ERROR: [youtube] abc: Video unavailable"))

    assert type(classified) is ExtractionError
    assert "Video unavailable" in classified.message


def test_build_ydl_opts_merges_credentials_and_proxy():
    opts = build_ydl_opts("dQw4w9WgXcQ", {"cookiefile": "/tmp/c.txt"}, "http://p:1")

    assert opts["cookiefile"] == "/tmp/c.txt"
    assert opts["proxy"] == "http://p:1"
    assert opts["skip_download"] is True
    assert opts["noplaylist"] is True
    assert "lang" in opts["extractor_args"]["youtube"]


def test_build_ydl_opts_without_proxy():
    assert "proxy" not in build_ydl_opts("dQw4w9WgXcQ", {}, None)


class FakeYoutubeDL:
    created = []

    def __init__(self, opts):
        self.opts = opts
        self.urls = []
        FakeYoutubeDL.created.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def extract_info(self, url, download=True):
        self.urls.append((url, download))
        if "fail" in url:
            raise DownloadError("ERROR: [youtube] fail: Sign in to confirm you're not a bot")
        return {"id": url[-11:], "title": "Song", "formats": []}


def test_fetch_stream_metadata_runs_ytdlp(monkeypatch):
    FakeYoutubeDL.created = []
    monkeypatch.setattr(extractor.yt_dlp, "YoutubeDL", FakeYoutubeDL)

    stream_info = asyncio.run(fetch_stream_metadata("dQw4w9WgXcQ", {}, "http://p:1"))

    assert stream_info.title == "Song"
    assert stream_info.proxy == "http://p:1"
    ydl = FakeYoutubeDL.created[0]
    assert ydl.urls == [("https://music.youtube.com/watch?v=dQw4w9WgXcQ", False)]


def test_fetch_stream_metadata_raises_classified_error(monkeypatch):
    monkeypatch.setattr(extractor.yt_dlp, "YoutubeDL", FakeYoutubeDL)

    with pytest.raises(AuthRequiredError) as exc_info:
        asyncio.run(fetch_stream_metadata("failfailfai", {}, None))

    assert isinstance(exc_info.value.__cause__, yt_dlp.utils.DownloadError)
