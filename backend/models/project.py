from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SaveDataPayload(BaseModel):
    """Raw editor state saved next to the VTT export.

    Objects and drawings are stored as sent; only the counts are inspected.
    """
    model_config = ConfigDict(extra="allow")

    videoId: str
    videoFileName: Optional[str] = ""
    videoFolder: Optional[str] = None
    objects: list[dict[str, Any]] = Field(default_factory=list)
    drawings: list[dict[str, Any]] = Field(default_factory=list)
    duration: Optional[float] = 0.0
    totalFrames: Optional[int] = 0
    timestamp: Optional[float] = None
