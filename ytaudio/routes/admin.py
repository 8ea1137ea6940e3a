"""Operator endpoints: credentials, proxies, caches, logs and runtime config."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ytaudio.middleware.auth import api_key_dependency
from ytaudio.models.schemas import RefreshProxiesResponse, ReloadCookiesResponse
from ytaudio.services import logger
from ytaudio.services.audio_service import AudioService, get_audio_service
from ytaudio.services.extraction_config import (
    ExtractionConfig,
    get_config as get_extraction_config,
    reset_config as reset_extraction_config,
    update_config as update_extraction_config,
)
from ytaudio.utils.exceptions import CredentialsError, ProxyListError


router = APIRouter(tags=["admin"], dependencies=[api_key_dependency])


@router.post("/reload-cookies", response_model=ReloadCookiesResponse)
async def reload_cookies(service: AudioService = Depends(get_audio_service)) -> ReloadCookiesResponse:
    """Re-read the cookie source and swap in the new credentials."""
    try:
        context = service.credentials.reload(strict=True)
    except CredentialsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict()) from e

    return ReloadCookiesResponse(
        success=True,
        message=f"Reloaded {context.cookie_count} cookies",
    )


@router.post("/refresh-proxies", response_model=RefreshProxiesResponse)
async def refresh_proxies(service: AudioService = Depends(get_audio_service)) -> RefreshProxiesResponse:
    """Fetch the proxy list now, ignoring the refresh interval."""
    try:
        await service.proxy_pool.refresh(force=True)
    except ProxyListError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict()) from e

    return RefreshProxiesResponse(
        success=True,
        count=len(service.proxy_pool),
        proxies=service.proxy_pool.masked_addresses(),
    )


@router.get("/api/admin/cache")
async def get_cache_stats(service: AudioService = Depends(get_audio_service)):
    """Cache and queue statistics."""
    return service.cache_stats()


@router.delete("/api/admin/cache")
async def clear_cache(service: AudioService = Depends(get_audio_service)):
    """Drop every cached extraction and format choice."""
    cleared = service.clear_caches()
    return {"success": True, "cleared": cleared}


@router.get("/api/admin/config", response_model=ExtractionConfig)
async def get_config():
    """Get current extraction configuration."""
    return get_extraction_config()


@router.post("/api/admin/config", response_model=ExtractionConfig)
async def update_config(config: ExtractionConfig):
    """Update extraction configuration, applied from the next extraction on."""
    updated = update_extraction_config(config.model_dump())
    logger.info(
        f"Configuration updated: socket_timeout={updated.socket_timeout}, "
        f"player_client={updated.preferred_player_client}",
        "admin",
    )
    return updated


@router.delete("/api/admin/config", response_model=ExtractionConfig)
async def reset_config():
    """Restore the default extraction configuration."""
    logger.info("Configuration reset to defaults", "admin")
    return reset_extraction_config()


@router.get("/api/admin/logs")
async def get_logs(
    limit: int = 100,
    category: Optional[str] = None,
    level: Optional[str] = None,
    since_seq: int = 0,
    video_id: Optional[str] = None,
):
    """Recent log entries from the in-memory buffer, optionally for one video."""
    logs = logger.get_logs(limit=limit, category=category, level=level, since_seq=since_seq, video_id=video_id)
    return {"logs": logs}


@router.delete("/api/admin/logs")
async def clear_logs():
    """Clear the log buffer and archive the log file."""
    logger.clear_logs()
    return {"success": True}


@router.get("/api/admin/logs/stats")
async def get_logs_stats():
    """Log counts by level and category."""
    return logger.get_log_stats()
