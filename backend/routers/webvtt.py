from typing import Optional

from fastapi import APIRouter, Query

from models.webvtt import CoordinateDeletePayload, CoordinateUpdatePayload, WebVTTSavePayload
from routers.drawing import registry
from services.webvtt import delete_object, read_coordinates, rename_object, save_webvtt

router = APIRouter(prefix="/api", tags=["webvtt"])


@router.post("/webvtt")
def save_vtt(payload: WebVTTSavePayload):
    """Merge submitted objects into the video's VTT file."""
    return save_webvtt(payload, registry.associations(payload.videoId or ""))


@router.get("/vtt-coordinates")
async def get_vtt_coordinates(
    videoFileName: str = Query(""),
    videoId: Optional[str] = Query(None),
    videoFolder: Optional[str] = Query(None),
):
    """Return the objects stored in the video's VTT file."""
    return read_coordinates(videoFileName, videoFolder)


@router.post("/coordinate/delete")
def delete_coordinate(payload: CoordinateDeletePayload):
    return delete_object(payload.videoFileName, payload.objectName, payload.videoFolder)


@router.post("/coordinate/update")
def update_coordinate(payload: CoordinateUpdatePayload):
    return rename_object(payload.videoFileName, payload.oldName, payload.newName, payload.videoFolder)
