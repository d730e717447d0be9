"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
The encoder override path keeps the variable name the render pipeline
already exports (NEXRENDER_FFMPEG).
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    DEBUG: bool = False

    # Working directory of the render job (cache location for the binary)
    WORKPATH: str = "./workpath"

    # FFmpeg binary acquisition
    FFMPEG_VERSION: str = "b6.0"
    FFMPEG_RELEASES_URL: str = "https://github.com/eugeneware/ffmpeg-static/releases/download"
    NEXRENDER_FFMPEG: Optional[str] = None  # Existing binary, bypasses cache and download
    FFMPEG_DOWNLOAD_TIMEOUT_SECONDS: float = 60.0
    DOWNLOAD_PROGRESS_INTERVAL_SECONDS: float = 0.5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
