"""Transcoding module for the encode action.

Resolves an ffmpeg binary, builds its arguments, runs it per video asset and
reports encoding progress parsed from its diagnostic output.
"""

from action_encode.modules.transcoding.exceptions import (
    EncodeActionError,
    DownloadError,
    SpawnError,
    EncodeError,
)
from action_encode.modules.transcoding.models import Asset, Job
from action_encode.modules.transcoding.schemas import EncodeSettings
from action_encode.modules.transcoding.service import TranscodingService, run

__all__ = [
    "Asset",
    "Job",
    "EncodeSettings",
    "TranscodingService",
    "run",
    "EncodeActionError",
    "DownloadError",
    "SpawnError",
    "EncodeError",
]
