import base64
import binascii
import io
import logging
import os
import re
from pathlib import Path

from fastapi import HTTPException
from PIL import Image, UnidentifiedImageError

from models.media import ScreenshotPayload
from services import storage
from utils.timefmt import kst_now_iso

logger = logging.getLogger(__name__)

MAX_SCREENSHOT_BYTES = int(os.environ.get("MAX_SCREENSHOT_BYTES", 5 * 1024 * 1024))

_DATA_URL = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")


def _safe_drawing_id(drawing_id: str) -> str:
    return re.sub(r"[^\w\-]", "_", drawing_id)


def _screenshots_for(folder: Path, container_id: str, drawing_id: str) -> list[Path]:
    """Screenshots of exactly one drawing: ``<id>-screenshot-<mm>-<ss>-<drawingId>.png``."""
    pattern = re.compile(
        rf"{re.escape(container_id)}-screenshot-\d{{2,}}-\d{{2}}-{re.escape(drawing_id)}\.png"
    )
    return sorted(path for path in folder.glob("*-screenshot-*.png") if pattern.fullmatch(path.name))


def decode_image(image_data: str) -> Image.Image:
    if not _DATA_URL.match(image_data):
        raise HTTPException(status_code=400, detail="imageData must be a base64 data:image URL")
    encoded = _DATA_URL.sub("", image_data, count=1)

    # base64 inflates by 4/3, reject oversized payloads before decoding
    if len(encoded) * 3 // 4 > MAX_SCREENSHOT_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"Image exceeds {MAX_SCREENSHOT_BYTES // (1024 * 1024)}MB limit",
        )
    try:
        image_bytes = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid base64: {exc}") from exc

    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise HTTPException(status_code=400, detail=f"Failed to open image: {exc}") from exc
    if image.mode not in ("1", "L", "LA", "P", "RGB", "RGBA"):
        image = image.convert("RGBA")
    return image


def save_screenshot(payload: ScreenshotPayload) -> dict:
    if not payload.videoId or not payload.drawingId or not payload.imageData:
        raise HTTPException(status_code=400, detail="videoId, drawingId and imageData are required")

    image = decode_image(payload.imageData)

    container_id = storage.resolve_container_id(payload.videoId)
    folder = storage.folder_path(container_id)
    storage.ensure_directory(folder)

    current = payload.videoCurrentTime or 0.0
    minutes, seconds = divmod(int(current), 60)
    drawing_id = _safe_drawing_id(payload.drawingId)
    file_name = f"{container_id}-screenshot-{minutes:02d}-{seconds:02d}-{drawing_id}.png"

    # one screenshot per drawing, older captures are replaced
    for old in _screenshots_for(folder, container_id, drawing_id):
        try:
            old.unlink()
            logger.info("Removed previous screenshot %s", old.name)
        except OSError as exc:
            logger.warning("Could not remove previous screenshot %s: %s", old, exc)

    target = folder / file_name
    try:
        image.save(target, format="PNG")
    except OSError as exc:
        raise HTTPException(status_code=500, detail=f"Cannot write screenshot: {target}") from exc

    logger.info("Screenshot saved: %s (%dx%d)", file_name, image.width, image.height)
    return {
        "success": True,
        "message": "Screenshot saved.",
        "imagePath": str(target),
        "imageUrl": f"/data/{container_id}/{file_name}",
        "drawingId": payload.drawingId,
        "width": image.width,
        "height": image.height,
        "timestamp": kst_now_iso(),
    }


def find_screenshot(video_id: str, drawing_id: str) -> dict:
    if not video_id or not drawing_id:
        raise HTTPException(status_code=400, detail="videoId and drawingId are required")

    container_id = storage.resolve_container_id(video_id)
    folder = storage.folder_path(container_id)
    if not folder.is_dir():
        raise HTTPException(status_code=404, detail="Video folder not found")

    safe_id = _safe_drawing_id(drawing_id)
    match = next(iter(_screenshots_for(folder, container_id, safe_id)), None)
    if match is None:
        raise HTTPException(status_code=404, detail="Screenshot not found for this drawing")

    return {
        "success": True,
        "imageUrl": f"/data/{container_id}/{match.name}",
        "imagePath": str(match),
        "drawingId": drawing_id,
    }


__all__ = ["MAX_SCREENSHOT_BYTES", "decode_image", "find_screenshot", "save_screenshot"]
