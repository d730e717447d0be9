"""Data models for the encode action.

Job and Asset mirror the objects handed over by the render pipeline; unknown
fields are kept so the job can be passed on unchanged apart from asset
destinations.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


VIDEO_ASSET_TYPE = "video"


class EncodeStatus(str, Enum):
    """Lifecycle of one encoder invocation."""
    NOT_STARTED = "not_started"
    RESOLVING = "resolving"
    SPAWNED = "spawned"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Asset(BaseModel):
    """One media item of a render job."""
    type: str = Field(..., description="Asset type, only 'video' is transcoded")
    dest: str = Field(..., description="Local path, relative to the job workpath unless absolute")
    layer_name: Optional[str] = Field(None, alias="layerName", description="Display label")

    @property
    def is_video(self) -> bool:
        return self.type == VIDEO_ASSET_TYPE

    class Config:
        extra = "allow"
        populate_by_name = True


class Job(BaseModel):
    """A render job as supplied by the pipeline."""
    uid: str
    workpath: str
    assets: list[Asset] = Field(default_factory=list)

    class Config:
        extra = "allow"
        populate_by_name = True


@dataclass
class ProgressState:
    """Progress of a single encoder invocation, in milliseconds.

    Zero means "not known yet" for both fields.
    """
    total_duration_ms: int = 0
    current_position_ms: int = 0

    @property
    def percentage(self) -> Optional[int]:
        if self.total_duration_ms <= 0 or self.current_position_ms <= 0:
            return None
        return math.ceil(self.current_position_ms / self.total_duration_ms * 100)
