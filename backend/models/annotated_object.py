import math
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


DEFAULT_CATEGORY = "기타"
DEFAULT_DOMAIN = "http://www.naver.com"
DEFAULT_INFO = "AI가 자동으로 탐지한 객체입니다."
# upper bound for temporal markers, in seconds (about 11.5 days)
MAX_TEMPORAL_MARKER = 1_000_000.0

# GS1 key type -> two digit code used in the final link
CATEGORY_CODES: dict[str, str] = {
    "기타": "00",
    "other": "00",
    "GTIN": "01",
    "GLN": "02",
    "GIAI": "03",
    "SSCC": "03",
    "GSIN": "04",
}


def category_code(category: Optional[str]) -> str:
    if not category:
        return CATEGORY_CODES[DEFAULT_CATEGORY]
    return CATEGORY_CODES.get(category.strip(), CATEGORY_CODES[DEFAULT_CATEGORY])


def derived_link(domain: Optional[str], category: Optional[str], code: str) -> str:
    """Build the resolvable link for an object: ``domain/categoryCode/code``."""
    base = (domain or DEFAULT_DOMAIN).rstrip("/")
    return f"{base}/{category_code(category)}/{code}"


class Point(BaseModel):
    x: float
    y: float


class RectangleGeometry(BaseModel):
    type: Literal["rectangle"] = "rectangle"
    startPoint: Point
    endPoint: Point


class ClickGeometry(BaseModel):
    type: Literal["click"] = "click"
    clickPoint: Point


class PathGeometry(BaseModel):
    type: Literal["path"] = "path"
    points: list[Point] = Field(default_factory=list)


Geometry = Union[RectangleGeometry, ClickGeometry, PathGeometry]

_SHAPES: dict[str, tuple[type, tuple[str, ...]]] = {
    "rectangle": (RectangleGeometry, ("startPoint", "endPoint")),
    "click": (ClickGeometry, ("clickPoint",)),
    "path": (PathGeometry, ("points",)),
}


def parse_geometry(raw: Any) -> Optional[Geometry]:
    """Recover a geometry from a drawing/position mapping.

    The ``type`` tag wins when the fields it needs are present. Otherwise the
    shape is inferred from whichever of startPoint/endPoint, clickPoint or a
    non-empty points list is populated, in that order. A mapping with none of
    them yields ``None``.
    """
    if raw is None:
        return None
    if isinstance(raw, (RectangleGeometry, ClickGeometry, PathGeometry)):
        return raw
    if not isinstance(raw, dict):
        raise ValueError("geometry must be an object")

    def has_fields(fields: tuple[str, ...]) -> bool:
        return all(raw.get(name) is not None for name in fields)

    kind = raw.get("type")
    if kind in _SHAPES and has_fields(_SHAPES[kind][1]):
        model, fields = _SHAPES[kind]
        return model(**{name: raw[name] for name in fields})

    for model, fields in _SHAPES.values():
        if all(raw.get(name) for name in fields):
            return model(**{name: raw[name] for name in fields})
    return None


class AnnotatedObject(BaseModel):
    """One region of interest drawn over a video, with its metadata.

    ``code``, ``category``, ``domain`` and ``info`` may be left unset; the VTT
    encoder fills them in. The final link is never stored, it is always
    derived from domain, category and code.
    """
    name: str
    temporal_marker: float = Field(0.0, ge=0.0, le=MAX_TEMPORAL_MARKER)
    code: Optional[str] = None
    category: Optional[str] = None
    domain: Optional[str] = None
    info: Optional[str] = None
    geometry: Optional[Geometry] = None
    # reserved for polygons coming from a detection API, kept as-is
    polygon: Any = None
    # unknown block keys, written back unchanged
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    @classmethod
    def _clean_name(cls, v):
        if v is None:
            raise ValueError("name is required")
        name = str(v).strip()
        if not name:
            raise ValueError("name cannot be empty")
        return name

    @field_validator("temporal_marker", mode="before")
    @classmethod
    def _coerce_time(cls, v):
        if v is None or v == "":
            return 0.0
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(value):
            raise ValueError("temporal_marker must be a finite number")
        return value

    @field_validator("geometry", mode="before")
    @classmethod
    def _parse_geometry(cls, v):
        return parse_geometry(v)

    @property
    def derived_link(self) -> Optional[str]:
        if not self.code:
            return None
        return derived_link(self.domain, self.category, self.code)


class ContainerHeader(BaseModel):
    """Header block of a VTT container."""
    video_name: str = ""
    generated_at: Optional[str] = None
    object_count: int = 0
    duration: float = 0.0

    @field_validator("duration", mode="before")
    @classmethod
    def _coerce_duration(cls, v):
        try:
            value = float(v) if v is not None and v != "" else 0.0
        except (TypeError, ValueError):
            return 0.0
        return max(value, 0.0)


__all__ = [
    "AnnotatedObject",
    "CATEGORY_CODES",
    "ClickGeometry",
    "ContainerHeader",
    "DEFAULT_CATEGORY",
    "DEFAULT_DOMAIN",
    "DEFAULT_INFO",
    "MAX_TEMPORAL_MARKER",
    "Geometry",
    "PathGeometry",
    "Point",
    "RectangleGeometry",
    "category_code",
    "derived_link",
    "parse_geometry",
]
