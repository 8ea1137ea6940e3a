from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    PORT: int = 3000
    ENVIRONMENT: str = "production"

    # Internal Authentication (admin endpoints are open when unset)
    API_KEY: Optional[str] = None

    # Inbound rate limit per client address, slowapi syntax (empty disables)
    RATE_LIMIT: str = "10/minute"

    # Credentials
    COOKIES_PATH: str = "cookies.txt"
    YOUTUBE_COOKIES: Optional[str] = None  # Inline cookie blob, wins over COOKIES_PATH
    YOUTUBE_OAUTH_TOKEN: Optional[str] = None

    # Proxy rotation
    PROXY_LIST_URL: Optional[str] = None
    PROXY_REFRESH_INTERVAL_SECONDS: float = 600

    # Metadata cache
    CACHE_TTL_SECONDS: float = 3600
    CACHE_MAX_SIZE: int = 500

    # Throttling queue
    QUEUE_DELAY_SECONDS: float = 1.0
    QUEUE_MAX_DEPTH: int = 100

    # Retry/backoff
    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0

    # Background refresh of credentials and proxies (0 disables)
    REFRESH_INTERVAL_SECONDS: float = 900

    # Extraction
    YOUTUBE_WATCH_URL: str = "https://music.youtube.com/watch?v="

    # Temp storage
    TEMP_DIR: str = "/tmp/ytaudio-relay"
    LOG_DIR: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
