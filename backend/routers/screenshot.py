from fastapi import APIRouter, Query

from models.media import ScreenshotPayload
from services.screenshot import find_screenshot, save_screenshot

router = APIRouter(prefix="/api", tags=["screenshot"])


@router.post("/save-screenshot")
def post_screenshot(payload: ScreenshotPayload):
    return save_screenshot(payload)


@router.get("/screenshot")
async def get_screenshot(videoId: str = Query(""), drawingId: str = Query("")):
    return find_screenshot(videoId, drawingId)
