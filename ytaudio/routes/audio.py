"""Audio endpoints: JSON stream descriptors and raw byte relay."""

from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ytaudio.models.schemas import AudioFormat, Mp3Response, VideoDetails
from ytaudio.services import logger
from ytaudio.services.audio_service import AudioService, get_audio_service
from ytaudio.services.format_selector import audio_formats, rank_formats
from ytaudio.services.streaming import open_audio_stream
from ytaudio.utils.exceptions import InvalidVideoIdError, RelayError, get_error_response


router = APIRouter(tags=["audio"])

ERROR_RESPONSES = {
    400: {"description": "Missing or invalid video ID"},
    401: {"description": "YouTube requires sign-in, refresh the cookies"},
    404: {"description": "No audio stream found"},
    429: {"description": "YouTube rate limit exceeded"},
    500: {"description": "Extraction failed"},
    503: {"description": "Request queue is full"},
}


def _raise_http(error: Exception, video_id: str, endpoint: str) -> NoReturn:
    """Log a failed request and convert it into an HTTPException."""
    if isinstance(error, RelayError):
        level = "WARN" if error.status_code < 500 else "ERROR"
        logger.log(
            level,
            f"{endpoint} failed for {video_id}: {error.error_code}",
            "request",
            {"video_id": video_id, "status_code": error.status_code, "message": error.message[:200]},
        )
        raise HTTPException(status_code=error.status_code, detail=error.to_dict()) from error

    logger.error(
        f"{endpoint} crashed for {video_id}: {str(error)[:200]}",
        "request",
        {"video_id": video_id},
    )
    raise HTTPException(status_code=500, detail=get_error_response(error)) from error


@router.get("/mp3", include_in_schema=False)
@router.get("/mp3/", include_in_schema=False)
@router.get("/stream", include_in_schema=False)
@router.get("/stream/", include_in_schema=False)
async def missing_video_id():
    """Requests without a video id."""
    error = InvalidVideoIdError()
    raise HTTPException(status_code=error.status_code, detail=error.to_dict())


@router.get("/mp3/{video_id}", response_model=Mp3Response, responses=ERROR_RESPONSES)
async def get_audio_descriptor(
    video_id: str,
    service: AudioService = Depends(get_audio_service),
) -> Mp3Response:
    """
    Describe the audio streams of a video.

    Returns the video details, every audio-only format (best first) and the
    recommended one.
    """
    try:
        stream_info, chosen = await service.resolve(video_id)
    except Exception as e:
        _raise_http(e, video_id, "/mp3")

    return Mp3Response(
        video_details=VideoDetails.from_ytdlp(stream_info.video_id, stream_info.info),
        audio_formats=[AudioFormat.from_ytdlp(f) for f in rank_formats(audio_formats(stream_info.formats))],
        recommended_format=AudioFormat.from_ytdlp(chosen),
    )


@router.get("/stream/{video_id}", responses=ERROR_RESPONSES)
async def stream_audio(
    video_id: str,
    range_header: Optional[str] = Header(None, alias="Range"),
    service: AudioService = Depends(get_audio_service),
):
    """
    Relay the recommended audio format's bytes.

    A Range header is forwarded to the CDN so players can seek; the CDN's
    status (200 or 206) and length headers are mirrored.
    """
    try:
        stream_info, chosen = await service.resolve(video_id)
        upstream = await open_audio_stream(
            chosen,
            proxy=stream_info.proxy,
            range_header=range_header,
            video_id=stream_info.video_id,
        )
    except Exception as e:
        _raise_http(e, video_id, "/stream")

    return StreamingResponse(
        upstream.iter_bytes(),
        status_code=upstream.status_code,
        headers=upstream.response_headers(),
        background=BackgroundTask(upstream.aclose),
    )
