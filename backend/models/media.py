from typing import Optional

from pydantic import BaseModel


class VideoDeletePayload(BaseModel):
    videoId: Optional[str] = None
    videoFileName: str
    videoFolder: Optional[str] = None


class ScreenshotPayload(BaseModel):
    """Screenshot of a drawn region, as a ``data:image/...;base64,`` URL."""
    videoId: Optional[str] = ""
    drawingId: Optional[str] = ""
    imageData: Optional[str] = ""
    videoCurrentTime: Optional[float] = None
    timestamp: Optional[float] = None
