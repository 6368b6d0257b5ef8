import logging
from threading import Lock
from typing import Optional

from fastapi import HTTPException

from models.annotated_object import Geometry
from models.drawing import DrawingPayload
from utils.timefmt import kst_now_iso

logger = logging.getLogger(__name__)

DRAWING_TYPES = {"path", "rectangle", "click"}


class DrawingRegistry:
    """Association table between drawn regions and the objects they belong to.

    A drawing is held as pending until the user names it (``link``) or throws
    it away (``cancel``). Linked geometry is looked up by video and object
    name when the VTT file is written. The registry is owned by whoever
    creates it and handed to the services that need it.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._pending: dict[tuple[str, str], DrawingPayload] = {}
        self._linked: dict[str, dict[str, Geometry]] = {}

    def submit(self, video_id: str, drawing: DrawingPayload) -> None:
        with self._lock:
            self._pending[(video_id, drawing.id or "")] = drawing

    def link(self, video_id: str, drawing_id: str, object_name: str) -> Optional[Geometry]:
        with self._lock:
            drawing = self._pending.pop((video_id, drawing_id), None)
            if drawing is None:
                return None
            geometry = drawing.geometry()
            if geometry is not None:
                self._linked.setdefault(video_id, {})[object_name] = geometry
            return geometry

    def cancel(self, video_id: str, drawing_id: str) -> bool:
        with self._lock:
            return self._pending.pop((video_id, drawing_id), None) is not None

    def associations(self, video_id: str) -> dict[str, Geometry]:
        with self._lock:
            return dict(self._linked.get(video_id, {}))

    def forget(self, video_id: str) -> None:
        with self._lock:
            self._linked.pop(video_id, None)
            for key in [key for key in self._pending if key[0] == video_id]:
                del self._pending[key]


def accept_drawing(registry: DrawingRegistry, drawing: DrawingPayload) -> dict:
    if not drawing.id or not drawing.type:
        raise HTTPException(status_code=400, detail="id and type are required")
    if drawing.type not in DRAWING_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported drawing type '{drawing.type}'")

    logger.info(
        "Drawing %s received: type=%s video=%s time=%s points=%d",
        drawing.id,
        drawing.type,
        drawing.videoId,
        drawing.videoCurrentTime,
        len(drawing.points),
    )
    if drawing.videoId:
        registry.submit(drawing.videoId, drawing)

    return {
        "success": True,
        "message": "Drawing data processed.",
        "drawingId": drawing.id,
        "processedAt": kst_now_iso(),
        "details": {
            "type": drawing.type,
            "videoId": drawing.videoId,
            "videoTime": drawing.videoCurrentTime,
            "pointsProcessed": len(drawing.points),
        },
    }


def link_drawing(registry: DrawingRegistry, video_id: str, drawing_id: str, object_name: str) -> dict:
    name = object_name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="objectName cannot be empty")
    geometry = registry.link(video_id, drawing_id, name)
    if geometry is None:
        raise HTTPException(status_code=404, detail=f"No linkable drawing '{drawing_id}' for {video_id}")
    return {
        "success": True,
        "drawingId": drawing_id,
        "objectName": name,
        "geometry": geometry.model_dump(),
    }


def cancel_drawing(registry: DrawingRegistry, video_id: str, drawing_id: str) -> dict:
    removed = registry.cancel(video_id, drawing_id)
    return {"success": True, "drawingId": drawing_id, "removed": removed}


__all__ = [
    "DrawingRegistry",
    "accept_drawing",
    "cancel_drawing",
    "link_drawing",
]
