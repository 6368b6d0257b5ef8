from fastapi import APIRouter

from models.drawing import DrawingCancelPayload, DrawingLinkPayload, DrawingPayload
from services.drawing import DrawingRegistry, accept_drawing, cancel_drawing, link_drawing

router = APIRouter(prefix="/api/drawing", tags=["drawing"])

registry = DrawingRegistry()


@router.post("")
async def submit_drawing(drawing: DrawingPayload):
    return accept_drawing(registry, drawing)


@router.post("/link")
async def link(payload: DrawingLinkPayload):
    """Attach a pending drawing to a named object."""
    return link_drawing(registry, payload.videoId, payload.drawingId, payload.objectName)


@router.post("/cancel")
async def cancel(payload: DrawingCancelPayload):
    return cancel_drawing(registry, payload.videoId, payload.drawingId)
