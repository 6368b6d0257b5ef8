import json
import logging
from pathlib import Path
from threading import Lock

from fastapi import HTTPException
from fastapi.responses import JSONResponse

from models.project import SaveDataPayload
from services import storage
from utils.timefmt import kst_now_iso

logger = logging.getLogger(__name__)

SAVED_DATA_FILE_NAME = "saved-data.json"

PROJECT_LOCK = Lock()


def saved_data_path() -> Path:
    return storage.data_root() / SAVED_DATA_FILE_NAME


def _empty_index() -> dict:
    return {"savedProjects": [], "lastUpdated": kst_now_iso()}


def _read_index(path: Path) -> dict:
    if not path.is_file():
        return _empty_index()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("%s is not valid JSON, starting a new project index", path)
        return _empty_index()
    except OSError as exc:
        raise HTTPException(status_code=500, detail=f"Failed to read saved data: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("savedProjects"), list):
        logger.warning("%s has an unexpected shape, starting a new project index", path)
        return _empty_index()
    projects = [project for project in data["savedProjects"] if isinstance(project, dict)]
    if len(projects) != len(data["savedProjects"]):
        logger.warning(
            "%s: dropping %d malformed project entries",
            path,
            len(data["savedProjects"]) - len(projects),
        )
        data["savedProjects"] = projects
    return data


def save_project(payload: SaveDataPayload) -> JSONResponse:
    """Upsert the editor state for one video, bumping its version on every save."""
    if not payload.videoId:
        raise HTTPException(status_code=400, detail="videoId is required")

    logger.info(
        "Save data request: video=%s file=%s objects=%d drawings=%d",
        payload.videoId,
        payload.videoFileName,
        len(payload.objects),
        len(payload.drawings),
    )

    record = payload.model_dump()
    record["savedAt"] = kst_now_iso()
    record["version"] = 1

    path = saved_data_path()
    with PROJECT_LOCK:
        index = _read_index(path)
        projects = index["savedProjects"]
        position = next(
            (i for i, project in enumerate(projects) if project.get("videoId") == payload.videoId),
            None,
        )
        if position is None:
            projects.append(record)
        else:
            record["version"] = int(projects[position].get("version") or 1) + 1
            projects[position] = record
        index["lastUpdated"] = record["savedAt"]
        storage.write_text_atomic(path, json.dumps(index, ensure_ascii=False, indent=2))

        if payload.videoFileName:
            container_id = storage.resolve_container_id(payload.videoFileName, payload.videoFolder)
            folder = storage.folder_path(container_id)
            if folder.is_dir():
                storage.write_text_atomic(
                    folder / f"{container_id}-saved-data.json",
                    json.dumps(record, ensure_ascii=False, indent=2),
                )

    logger.info("Saved project %s version %d", payload.videoId, record["version"])
    return JSONResponse(
        content={
            "success": True,
            "message": "Editor data saved.",
            "videoId": payload.videoId,
            "projectVersion": record["version"],
            "savedAt": record["savedAt"],
            "savedToFile": str(path),
            "statistics": {
                "objectCount": len(payload.objects),
                "drawingCount": len(payload.drawings),
                "duration": payload.duration,
                "totalFrames": payload.totalFrames,
            },
        },
        headers={"Cache-Control": "no-store"},
    )


__all__ = ["save_project", "saved_data_path"]
