"""
Extraction settings that can be changed at runtime.

This config is used by:
- extractor.py (reads it for every yt-dlp call)
- admin.py (reads and updates it via API)
"""

from typing import List, Optional
from pydantic import BaseModel


class ExtractionConfig(BaseModel):
    """yt-dlp options for metadata extraction.

    Retries stay off inside yt-dlp: rate limits are retried by the relay's
    backoff controller so they can rotate proxies.
    """
    # Network settings
    socket_timeout: int = 30
    geo_bypass: bool = True

    # Player client preference, e.g. ios, mweb, android, tv_embedded, web
    preferred_player_client: Optional[str] = None

    # Preferred audio track languages
    languages: List[str] = ["en", "en-US", "en-GB"]


_current_config = ExtractionConfig()


def get_config() -> ExtractionConfig:
    """Get the current extraction configuration."""
    return _current_config


def update_config(updates: dict) -> ExtractionConfig:
    """
    Update the extraction configuration.

    Args:
        updates: Dictionary of config values to update

    Returns:
        The updated configuration
    """
    global _current_config

    current_dict = _current_config.model_dump()
    current_dict.update(updates)
    _current_config = ExtractionConfig(**current_dict)

    return _current_config


def reset_config() -> ExtractionConfig:
    """Reset configuration to defaults."""
    global _current_config
    _current_config = ExtractionConfig()
    return _current_config
