import asyncio

import httpx
import pytest

from conftest import audio_format
from ytaudio.services import streaming
from ytaudio.services.streaming import open_audio_stream
from ytaudio.utils.exceptions import RateLimitError, UpstreamStreamError


class BrokenStream(httpx.AsyncByteStream):
    """Body that dies part way through, like a reset CDN connection."""

    async def __aiter__(self):
        yield b"\x1aE\xdf\xa3"
        raise httpx.ReadError("connection reset by peer")


@pytest.fixture
def cdn(monkeypatch):
    """Route the relay's httpx client to a handler; records the proxy it was built with."""
    state = {"handler": None, "proxies": []}
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        state["proxies"].append(kwargs.pop("proxy", None))
        return real_client(transport=httpx.MockTransport(state["handler"]), **kwargs)

    monkeypatch.setattr(streaming.httpx, "AsyncClient", client_factory)
    return state


def _collect(upstream):
    async def read():
        return [chunk async for chunk in upstream.iter_bytes()]

    return read()


def test_full_response_mirrors_length_and_type(cdn):
    cdn["handler"] = lambda request: httpx.Response(200, content=b"x" * 10, headers={"Content-Length": "10"})
    fmt = audio_format("140", 128, ext="m4a", acodec="mp4a.40.2")

    async def scenario():
        upstream = await open_audio_stream(fmt, proxy="http://10.0.0.1:8080", video_id="dQw4w9WgXcQ")
        return upstream.status_code, upstream.response_headers(), b"".join(await _collect(upstream))

    status, headers, body = asyncio.run(scenario())

    assert status == 200
    assert headers["Content-Type"] == "audio/mp4"
    assert headers["Content-Length"] == "10"
    assert headers["Accept-Ranges"] == "bytes"
    assert body == b"x" * 10
    assert cdn["proxies"] == ["http://10.0.0.1:8080"]


def test_stream_error_mid_body_propagates(cdn):
    cdn["handler"] = lambda request: httpx.Response(200, stream=BrokenStream())

    async def scenario():
        upstream = await open_audio_stream(audio_format("251", 160), video_id="dQw4w9WgXcQ")
        await _collect(upstream)

    with pytest.raises(httpx.ReadError):
        asyncio.run(scenario())


@pytest.mark.parametrize("status, error", [(429, RateLimitError), (403, UpstreamStreamError)])
def test_error_status_raises(cdn, status, error):
    cdn["handler"] = lambda request: httpx.Response(status)

    with pytest.raises(error):
        asyncio.run(open_audio_stream(audio_format("251", 160)))


def test_connection_failure_is_upstream_error(cdn):
    def handler(request):
        raise httpx.ConnectError("no route to host")

    cdn["handler"] = handler

    with pytest.raises(UpstreamStreamError):
        asyncio.run(open_audio_stream(audio_format("251", 160)))
