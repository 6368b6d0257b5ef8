import logging
import os
import re
import tempfile
import unicodedata
from pathlib import Path
from threading import Lock
from typing import Optional

from fastapi import HTTPException

logger = logging.getLogger(__name__)

DATA_ROOT = Path(os.environ.get("DATA_ROOT", Path(__file__).resolve().parent.parent / "data"))

# how many "(n)" duplicate folders are searched for an uploaded video
MAX_DUPLICATE_FOLDERS = 20

_CONTAINER_LOCKS: dict[str, Lock] = {}
_CONTAINER_LOCKS_GUARD = Lock()

_MOJIBAKE_HINTS = ("ì", "ë", "°")


def data_root() -> Path:
    return DATA_ROOT


def ensure_directory(directory: Path) -> None:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except PermissionError as exc:
        raise HTTPException(status_code=500, detail=f"Cannot create data directory: {directory}") from exc
    if not os.access(directory, os.W_OK | os.X_OK):
        raise HTTPException(status_code=500, detail=f"Data directory is not writable: {directory}")


def _repair_mojibake(value: str) -> str:
    # multipart filenames sometimes arrive as UTF-8 bytes read as latin-1
    if not any(hint in value for hint in _MOJIBAKE_HINTS):
        return value
    try:
        return value.encode("latin-1").decode("utf-8")
    except UnicodeError:
        return value


def normalize_file_name(file_name: str) -> str:
    """Turn an uploaded file name into a safe folder name, keeping Hangul.

    The extension is dropped: ``"내 영상 (1).mp4"`` becomes ``"내_영상_(1)"``.
    """
    base = Path(file_name or "").name
    stem = Path(base).stem if Path(base).suffix else base

    normalized = unicodedata.normalize("NFC", _repair_mojibake(stem)).strip()
    normalized = re.sub(r'[<>:"/\\|?*]', "_", normalized)
    normalized = re.sub(r"\s+", "_", normalized)
    normalized = re.sub(r"[^\w가-힣\-.()]", "", normalized)
    normalized = re.sub(r"_{2,}", "_", normalized)
    normalized = normalized.strip("_")
    return normalized or "unnamed"


def folder_path(container_id: str) -> Path:
    root = DATA_ROOT.resolve()
    target = (root / container_id).resolve()
    try:
        target.relative_to(root)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid video folder")
    if target == root:
        raise HTTPException(status_code=400, detail="Invalid video folder")
    return target


def vtt_path(container_id: str) -> Path:
    return folder_path(container_id) / f"{container_id}-webvtt.vtt"


def candidate_folders(normalized_name: str) -> list[str]:
    return [normalized_name] + [f"{normalized_name}({i})" for i in range(1, MAX_DUPLICATE_FOLDERS + 1)]


def resolve_container_id(video_file_name: str, video_folder: Optional[str] = None) -> str:
    """Find the folder that holds ``video_file_name``.

    Uploading the same name twice creates ``name``, ``name(1)``, ``name(2)``...
    An explicit, existing ``video_folder`` wins. Otherwise the first candidate
    folder that actually contains the video is used, falling back to the plain
    normalized name when none does.
    """
    if video_folder:
        folder = Path(video_folder).name
        if folder and (DATA_ROOT / folder).is_dir():
            return folder

    normalized = normalize_file_name(video_file_name)
    video_name = Path(video_file_name or "").name
    for folder in candidate_folders(normalized):
        path = DATA_ROOT / folder
        if not path.is_dir():
            continue
        if video_name and (path / video_name).is_file():
            logger.debug("Found video %s in folder %s", video_name, folder)
            return folder
        logger.debug("Folder %s exists but holds no %s", folder, video_name)

    logger.info("No folder holds %s, using fallback folder %s", video_file_name, normalized)
    return normalized


def container_lock(container_id: str) -> Lock:
    """Lock serialising read-merge-write cycles on one container."""
    with _CONTAINER_LOCKS_GUARD:
        lock = _CONTAINER_LOCKS.get(container_id)
        if lock is None:
            lock = _CONTAINER_LOCKS[container_id] = Lock()
        return lock


def load_container_text(container_id: str) -> Optional[str]:
    path = vtt_path(container_id)
    if not path.is_file():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=500, detail=f"Failed to read VTT file: {exc}") from exc


def write_text_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` so readers never see a half-written file."""
    ensure_directory(path.parent)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except OSError as exc:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise HTTPException(status_code=500, detail=f"Cannot write file: {path}") from exc


def save_container_text(container_id: str, text: str) -> Path:
    path = vtt_path(container_id)
    write_text_atomic(path, text)
    return path


__all__ = [
    "DATA_ROOT",
    "MAX_DUPLICATE_FOLDERS",
    "candidate_folders",
    "container_lock",
    "data_root",
    "ensure_directory",
    "folder_path",
    "load_container_text",
    "normalize_file_name",
    "resolve_container_id",
    "save_container_text",
    "vtt_path",
    "write_text_atomic",
]
