"""YT Audio Relay - Main FastAPI Application."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from ytaudio.config import Settings, settings as default_settings
from ytaudio.middleware.rate_limit import build_limiter, rate_limit_exceeded_handler
from ytaudio.routes import admin, audio, health
from ytaudio.services import logger
from ytaudio.services.audio_service import AudioService
from ytaudio.services.extractor import ytdlp_version


def create_app(
    app_settings: Optional[Settings] = None,
    service: Optional[AudioService] = None,
) -> FastAPI:
    """Build the FastAPI app around one AudioService."""
    app_settings = app_settings or default_settings
    service = service or AudioService(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup and shutdown."""
        logger.info(f"YT Audio Relay starting on port {app_settings.PORT}", "general")
        logger.info(f"yt-dlp version: {ytdlp_version()}", "general")

        Path(app_settings.TEMP_DIR).mkdir(parents=True, exist_ok=True)

        await service.start()
        auth = service.credentials.current
        logger.success(
            f"YT Audio Relay started ({auth.cookie_count} cookies, {len(service.proxy_pool)} proxies)",
            "general",
        )

        yield

        logger.info("YT Audio Relay shutting down", "general")
        await service.stop()

    app = FastAPI(
        title="YT Audio Relay",
        description="YouTube audio stream relay using yt-dlp with caching, throttling and proxy rotation",
        version="1.0.0",
        docs_url="/docs" if app_settings.ENVIRONMENT == "development" else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.audio_service = service
    app.state.limiter = build_limiter(app_settings)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
        expose_headers=[
            "Content-Length",
            "Content-Range",
            "Accept-Ranges",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )

    app.include_router(audio.router)
    app.include_router(admin.router)
    app.include_router(health.router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "ytaudio-relay", "status": "running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ytaudio.main:app",
        host="0.0.0.0",
        port=default_settings.PORT,
        reload=default_settings.ENVIRONMENT == "development",
    )
