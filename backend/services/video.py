import json
import logging
import mimetypes
import shutil
from pathlib import Path
from typing import Optional

import cv2
from fastapi import HTTPException, UploadFile

from services import storage
from utils.timefmt import kst_now_iso

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {".mp4", ".mov", ".mkv", ".webm", ".avi"}
# highest "(n)" suffix tried when a name is taken
MAX_NAME_SUGGESTIONS = 100


def list_video_files() -> list[str]:
    """``<folder>/<file>`` for every video stored directly in a video folder."""
    root = storage.data_root()
    if not root.is_dir():
        return []
    return sorted(
        f"{folder.name}/{item.name}"
        for folder in root.iterdir()
        if folder.is_dir()
        for item in folder.iterdir()
        if item.is_file() and item.suffix.lower() in VIDEO_EXTENSIONS
    )


def resolve_data_path(file_path: str) -> Path:
    """Map ``<folder>/<file>`` from a ``/data`` URL onto a stored file."""
    folder_name, _, file_name = file_path.strip("/").partition("/")
    if not folder_name or not file_name or "/" in file_name or file_name in (".", ".."):
        raise HTTPException(status_code=400, detail="Invalid file path")
    target = storage.folder_path(folder_name) / file_name
    if not target.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return target


def guess_mime(path: Path) -> str:
    return mimetypes.guess_type(path.name)[0] or "application/octet-stream"


def suggest_file_name(filename: str) -> dict:
    """Propose a file name whose folder is still free: ``clip.mp4`` -> ``clip(1).mp4``."""
    if not filename:
        raise HTTPException(status_code=400, detail="filename is required")

    original = Path(filename).name
    ext = Path(original).suffix
    base_name = original[: -len(ext)] if ext else original
    folder = storage.normalize_file_name(original)
    root = storage.data_root()

    if not (root / folder).exists():
        return {
            "success": True,
            "exists": False,
            "originalName": original,
            "suggestedName": original,
            "videoFolder": folder,
        }

    for counter in range(1, MAX_NAME_SUGGESTIONS + 1):
        candidate_folder = f"{folder}({counter})"
        if not (root / candidate_folder).exists():
            break
    else:
        raise HTTPException(status_code=409, detail=f"Too many uploads named {original}")

    suggested = f"{base_name}({counter}){ext}"
    logger.info("File name collision resolved: %s -> %s", original, suggested)
    return {
        "success": True,
        "exists": True,
        "originalName": original,
        "suggestedName": suggested,
        "videoFolder": candidate_folder,
        "conflictCount": counter,
    }


def read_video_properties(path: Path) -> dict:
    """Read basic stream properties; empty values when OpenCV cannot open the file."""
    cap = cv2.VideoCapture(str(path))
    if not cap.isOpened():
        logger.warning("Failed to open video file for probing: %s", path)
        return {}
    try:
        fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
    finally:
        cap.release()
    duration = frame_count / fps if fps > 0 else 0.0
    return {
        "fps": fps,
        "frameCount": frame_count,
        "width": width,
        "height": height,
        "duration": round(duration, 3),
    }


def _append_upload_record(folder: Path, record: dict) -> None:
    index_path = folder / f"{folder.name}-uploads.json"
    records: list = []
    if index_path.is_file():
        try:
            data = json.loads(index_path.read_text(encoding="utf-8"))
            if isinstance(data, list):
                records = data
        except json.JSONDecodeError:
            logger.warning("Upload index %s is not valid JSON, starting a new one", index_path)
    records.append(record)
    storage.write_text_atomic(index_path, json.dumps(records, ensure_ascii=False, indent=2))


def store_upload(
    video: UploadFile,
    duration: float = 0.0,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> dict:
    if not video.filename:
        raise HTTPException(status_code=400, detail="A video file is required")
    if Path(video.filename).suffix.lower() not in VIDEO_EXTENSIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported video type: {video.filename}")

    suggestion = suggest_file_name(video.filename)
    file_name = suggestion["suggestedName"]
    folder = storage.folder_path(suggestion["videoFolder"])
    storage.ensure_directory(folder)
    target = folder / file_name

    try:
        with target.open("wb") as fh:
            shutil.copyfileobj(video.file, fh)
    except OSError as exc:
        raise HTTPException(status_code=500, detail=f"Cannot write video: {target}") from exc

    props = read_video_properties(target)
    metadata = {
        "duration": props.get("duration") or duration,
        "width": props.get("width") or width,
        "height": props.get("height") or height,
        "fps": props.get("fps"),
        "frameCount": props.get("frameCount"),
    }
    record = {
        "fileName": file_name,
        "originalName": suggestion["originalName"],
        "videoFolder": folder.name,
        "fileSize": target.stat().st_size,
        "fileType": video.content_type,
        "uploadedAt": kst_now_iso(),
        "metadata": metadata,
    }
    _append_upload_record(folder, record)
    logger.info("Stored upload %s in %s (%d bytes)", file_name, folder, record["fileSize"])

    return {
        "success": True,
        "message": "Video uploaded.",
        **record,
        "url": f"/data/{folder.name}/{file_name}",
    }


def delete_video(video_file_name: str, video_folder: Optional[str] = None) -> dict:
    container_id = storage.resolve_container_id(video_file_name, video_folder)
    folder = storage.folder_path(container_id)
    if not folder.is_dir():
        raise HTTPException(status_code=404, detail=f"Video folder not found: {container_id}")
    with storage.container_lock(container_id):
        try:
            shutil.rmtree(folder)
        except OSError as exc:
            raise HTTPException(status_code=500, detail=f"Cannot delete video folder: {folder}") from exc
    logger.info("Deleted video folder %s", folder)
    return {"success": True, "videoFolder": container_id, "deletedAt": kst_now_iso()}


__all__ = [
    "VIDEO_EXTENSIONS",
    "delete_video",
    "guess_mime",
    "list_video_files",
    "read_video_properties",
    "resolve_data_path",
    "store_upload",
    "suggest_file_name",
]
