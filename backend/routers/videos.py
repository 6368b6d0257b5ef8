from typing import Optional

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import FileResponse

from models.media import VideoDeletePayload
from routers.drawing import registry
from services.video import (
    delete_video,
    guess_mime,
    list_video_files,
    resolve_data_path,
    store_upload,
    suggest_file_name,
)


router = APIRouter(tags=["videos"])


@router.post("/api/upload-file")
def upload_file(
    video: UploadFile = File(...),
    duration: float = Form(0.0),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
):
    """Store an uploaded video in its own folder."""
    return store_upload(video, duration=duration, width=width, height=height)


@router.get("/api/videos")
async def get_videos():
    """Return the list of available video files."""
    return {"videos": list_video_files()}


@router.delete("/api/video")
def remove_video(payload: VideoDeletePayload):
    """Delete a video together with its folder and annotations."""
    result = delete_video(payload.videoFileName, payload.videoFolder)
    registry.forget(payload.videoId or payload.videoFileName)
    return result


@router.get("/api/check-filename")
async def check_filename(filename: str = Query("")):
    return suggest_file_name(filename)


@router.get("/data/{filename:path}")
async def serve_data_file(filename: str):
    """Serve a stored video or screenshot from the data directory."""
    path = resolve_data_path(filename)
    return FileResponse(
        path,
        media_type=guess_mime(path),
        filename=path.name,
    )
