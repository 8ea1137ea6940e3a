"""Health check endpoint."""

from fastapi import APIRouter, Depends

from ytaudio.models.schemas import HealthCheck
from ytaudio.services.audio_service import AudioService, get_audio_service


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheck)
async def health_check(service: AudioService = Depends(get_audio_service)) -> HealthCheck:
    """
    Health check endpoint.

    Reports credentials, cache and queue sizes, proxy count and uptime
    without touching YouTube.
    """
    return service.health()
