"""Runtime settings and parameter types for the encode action."""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from action_encode.core.config import Settings


Scalar = Union[str, int, float]
EncodeParameters = dict[str, Union[Scalar, Sequence[Scalar]]]


def _config_default(name: str):
    return Settings.model_fields[name].default


@dataclass(frozen=True)
class EncodeSettings:
    """Settings bag for one run of the encode action.

    workpath, logger and debug come from the host pipeline; the remaining
    fields control how the ffmpeg binary is acquired. Defaults are those of
    the application configuration. When ffmpeg_override is unset the
    resolver falls back to NEXRENDER_FFMPEG from the environment.
    """
    workpath: str
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("action_encode"))
    debug: bool = False
    ffmpeg_version: str = _config_default("FFMPEG_VERSION")
    releases_url: str = _config_default("FFMPEG_RELEASES_URL")
    ffmpeg_override: Optional[str] = None
    download_timeout: float = _config_default("FFMPEG_DOWNLOAD_TIMEOUT_SECONDS")
    progress_interval: float = _config_default("DOWNLOAD_PROGRESS_INTERVAL_SECONDS")

    @classmethod
    def from_config(
        cls,
        config: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
        **overrides,
    ) -> "EncodeSettings":
        """Build run settings from the application configuration.

        Args:
            config: Application settings (read from the environment now if not provided)
            logger: Logging sink (the package logger if not provided)
            **overrides: Field values taking precedence over the configuration

        Returns:
            EncodeSettings instance
        """
        config = config or Settings()
        values = {
            "workpath": config.WORKPATH,
            "logger": logger or logging.getLogger("action_encode"),
            "debug": config.DEBUG,
            "ffmpeg_version": config.FFMPEG_VERSION,
            "releases_url": config.FFMPEG_RELEASES_URL,
            "ffmpeg_override": config.NEXRENDER_FFMPEG,
            "download_timeout": config.FFMPEG_DOWNLOAD_TIMEOUT_SECONDS,
            "progress_interval": config.DOWNLOAD_PROGRESS_INTERVAL_SECONDS,
        }
        values.update(overrides)
        return cls(**values)
