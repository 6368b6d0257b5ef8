from typing import Optional

from pydantic import BaseModel, Field

from models.annotated_object import Geometry, Point, parse_geometry


class DrawingPayload(BaseModel):
    """A region drawn over a paused frame, before it is named."""
    id: Optional[str] = None
    type: Optional[str] = None
    color: Optional[str] = None
    points: list[Point] = Field(default_factory=list)
    startPoint: Optional[Point] = None
    endPoint: Optional[Point] = None
    clickPoint: Optional[Point] = None
    videoId: Optional[str] = None
    videoCurrentTime: Optional[float] = None
    timestamp: Optional[float] = None

    def geometry(self) -> Optional[Geometry]:
        return parse_geometry(self.model_dump(include={"type", "points", "startPoint", "endPoint", "clickPoint"}))


class DrawingLinkPayload(BaseModel):
    videoId: str
    drawingId: str
    objectName: str


class DrawingCancelPayload(BaseModel):
    videoId: str
    drawingId: str
