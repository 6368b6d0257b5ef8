import logging
from typing import Any, Mapping, Optional

from fastapi import HTTPException
from fastapi.responses import JSONResponse

from models.annotated_object import AnnotatedObject, ContainerHeader, Geometry
from models.webvtt import WebVTTSavePayload
from services.merge import merge, remove_by_name, rename
from services.storage import (
    container_lock,
    load_container_text,
    resolve_container_id,
    save_container_text,
)
from services.vtt_codec import decode, encode
from utils.timefmt import kst_now_iso

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}


def _incoming_objects(
    payload: WebVTTSavePayload,
    drawings: Optional[Mapping[str, Geometry]],
) -> list[dict[str, Any]]:
    incoming = []
    for item in payload.objects:
        fields = item.to_object_fields()
        name = (item.name or "").strip()
        if "geometry" not in fields and drawings and name in drawings:
            fields["geometry"] = drawings[name]
        incoming.append(fields)
    return incoming


def _load_objects(container_id: str) -> Optional[tuple[list[AnnotatedObject], ContainerHeader]]:
    text = load_container_text(container_id)
    if text is None:
        return None
    return decode(text)


def object_to_client(obj: AnnotatedObject) -> dict[str, Any]:
    position = obj.geometry.model_dump() if obj.geometry is not None else None
    return {
        "objectName": obj.name,
        "videoTime": obj.temporal_marker,
        "code": obj.code,
        "category": obj.category,
        "domain": obj.domain,
        "info": obj.info,
        "finallink": obj.derived_link,
        "position": position,
        "polygon": obj.polygon,
        "coordinates": position,
    }


def save_webvtt(
    payload: WebVTTSavePayload,
    drawings: Optional[Mapping[str, Geometry]] = None,
) -> JSONResponse:
    """Merge the submitted objects into the video's VTT file and write it back."""
    if not payload.videoId or not payload.videoFileName:
        raise HTTPException(status_code=400, detail="videoId and videoFileName are required")

    logger.info(
        "WebVTT save request: video=%s file=%s objects=%d duration=%s",
        payload.videoId,
        payload.videoFileName,
        len(payload.objects),
        payload.duration,
    )

    container_id = resolve_container_id(payload.videoFileName, payload.videoFolder)
    incoming = _incoming_objects(payload, drawings)

    with container_lock(container_id):
        loaded = _load_objects(container_id)
        existing, existing_header = loaded if loaded is not None else ([], ContainerHeader())
        combined = merge(existing, incoming)
        header = ContainerHeader(
            video_name=payload.videoFileName,
            object_count=len(combined),
            duration=payload.duration or existing_header.duration,
        )
        path = save_container_text(container_id, encode(combined, header))

    if loaded is None:
        logger.info("Created new VTT file: %s", path)
    else:
        logger.info("Updated existing VTT file: %s", path)

    return JSONResponse(
        content={
            "success": True,
            "message": "WebVTT file saved.",
            "videoId": payload.videoId,
            "fileName": path.name,
            "filePath": str(path),
            "savedAt": kst_now_iso(),
            "objectCount": len(combined),
            "details": {
                "videoFolder": container_id,
                "duration": header.duration,
                "hadExistingFile": loaded is not None,
            },
        },
        headers=NO_STORE,
    )


def read_coordinates(video_file_name: str, video_folder: Optional[str] = None) -> JSONResponse:
    if not video_file_name:
        raise HTTPException(status_code=400, detail="videoFileName is required")

    container_id = resolve_container_id(video_file_name, video_folder)
    loaded = _load_objects(container_id)
    if loaded is None:
        raise HTTPException(status_code=404, detail=f"VTT file not found for {video_file_name}")

    objects, header = loaded
    coordinates = [object_to_client(obj) for obj in objects]
    logger.info("Read %d objects from %s", len(coordinates), container_id)
    return JSONResponse(
        content={
            "success": True,
            "videoFileName": video_file_name,
            "videoFolder": container_id,
            "generatedAt": header.generated_at,
            "coordinatesCount": len(coordinates),
            "coordinates": coordinates,
            "readAt": kst_now_iso(),
        },
        headers=NO_STORE,
    )


def _rewrite(container_id: str, objects: list[AnnotatedObject], header: ContainerHeader) -> None:
    updated = header.model_copy(update={"object_count": len(objects)})
    save_container_text(container_id, encode(objects, updated))


def delete_object(video_file_name: str, object_name: str, video_folder: Optional[str] = None) -> JSONResponse:
    container_id = resolve_container_id(video_file_name, video_folder)
    with container_lock(container_id):
        loaded = _load_objects(container_id)
        if loaded is None:
            raise HTTPException(status_code=404, detail=f"VTT file not found for {video_file_name}")
        objects, header = loaded
        remaining = remove_by_name(objects, object_name)
        if len(remaining) == len(objects):
            raise HTTPException(status_code=404, detail=f"Object not found: {object_name}")
        _rewrite(container_id, remaining, header)

    logger.info("Deleted object %r from %s", object_name, container_id)
    return JSONResponse(
        content={"success": True, "objectName": object_name, "objectCount": len(remaining)},
        headers=NO_STORE,
    )


def rename_object(
    video_file_name: str,
    old_name: str,
    new_name: str,
    video_folder: Optional[str] = None,
) -> JSONResponse:
    target = new_name.strip()
    if not target:
        raise HTTPException(status_code=400, detail="newName cannot be empty")

    container_id = resolve_container_id(video_file_name, video_folder)
    with container_lock(container_id):
        loaded = _load_objects(container_id)
        if loaded is None:
            raise HTTPException(status_code=404, detail=f"VTT file not found for {video_file_name}")
        objects, header = loaded
        names = {obj.name for obj in objects}
        if old_name not in names:
            raise HTTPException(status_code=404, detail=f"Object not found: {old_name}")
        if target != old_name and target in names:
            raise HTTPException(status_code=409, detail=f"Object name already in use: {target}")
        _rewrite(container_id, rename(objects, old_name, target), header)

    logger.info("Renamed object %r to %r in %s", old_name, target, container_id)
    return JSONResponse(
        content={"success": True, "oldName": old_name, "newName": target},
        headers=NO_STORE,
    )


__all__ = [
    "delete_object",
    "object_to_client",
    "read_coordinates",
    "rename_object",
    "save_webvtt",
]
