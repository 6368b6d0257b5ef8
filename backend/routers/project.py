from fastapi import APIRouter

from models.project import SaveDataPayload
from services.project import save_project

router = APIRouter(prefix="/api", tags=["project"])


@router.post("/save-data")
def save_data(payload: SaveDataPayload):
    """Store the raw editor state for a video."""
    return save_project(payload)
