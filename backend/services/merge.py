import logging
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from models.annotated_object import MAX_TEMPORAL_MARKER, AnnotatedObject

logger = logging.getLogger(__name__)

# two objects closer than this are considered to sit on the same time
TIME_TOLERANCE = 0.1
TIME_STEP = 0.1
_PRECISION = 6

IncomingObject = Union[AnnotatedObject, Mapping[str, Any]]


def _as_object(item: IncomingObject) -> Optional[AnnotatedObject]:
    if isinstance(item, AnnotatedObject):
        return item
    if not isinstance(item, Mapping):
        logger.warning("Dropping incoming object of type %s", type(item).__name__)
        return None
    try:
        return AnnotatedObject.model_validate(dict(item))
    except ValidationError as exc:
        logger.warning(
            "Dropping incoming object %r: %s",
            item.get("name"),
            "; ".join(err["msg"] for err in exc.errors()),
        )
        return None


def _collides(marker: float, others: Iterable[AnnotatedObject]) -> bool:
    return any(
        round(abs(other.temporal_marker - marker), _PRECISION) < TIME_TOLERANCE
        for other in others
    )


def free_marker(marker: float, others: list[AnnotatedObject]) -> Optional[float]:
    """Step ``marker`` forward by TIME_STEP until nothing in ``others`` is within tolerance.

    Returns ``None`` when no free marker exists up to MAX_TEMPORAL_MARKER.
    """
    adjusted = marker
    while _collides(adjusted, others):
        stepped = round(adjusted + TIME_STEP, _PRECISION)
        if stepped <= adjusted or stepped > MAX_TEMPORAL_MARKER:
            return None
        adjusted = stepped
    return adjusted


def merge(
    existing: Iterable[AnnotatedObject],
    incoming: Iterable[IncomingObject],
) -> list[AnnotatedObject]:
    """Combine a stored object list with newly submitted objects.

    Objects are matched by name. A match takes every field the incoming object
    carries except its temporal marker: the first time an object was seen
    stays its time. Unmatched objects are appended, after being moved off any
    marker already in use. The result is sorted by marker; ties keep their
    previous order.
    """
    combined: list[AnnotatedObject] = list(existing)
    index_by_name = {obj.name: position for position, obj in enumerate(combined)}

    for item in incoming:
        obj = _as_object(item)
        if obj is None:
            continue

        position = index_by_name.get(obj.name)
        if position is not None:
            current = combined[position]
            updates = {
                field: getattr(obj, field)
                for field in obj.model_fields_set
                if field not in ("name", "temporal_marker")
            }
            combined[position] = current.model_copy(update=updates)
            continue

        marker = free_marker(obj.temporal_marker, combined)
        if marker is None:
            logger.warning("Dropping object %r: no free time slot after %ss", obj.name, obj.temporal_marker)
            continue
        if marker != obj.temporal_marker:
            logger.info(
                "Time adjusted: %ss -> %ss for object %r", obj.temporal_marker, marker, obj.name
            )
            obj = obj.model_copy(update={"temporal_marker": marker})
        index_by_name[obj.name] = len(combined)
        combined.append(obj)

    # sorted() is stable, equal markers keep their relative order
    return sorted(combined, key=lambda o: o.temporal_marker)


def remove_by_name(objects: Iterable[AnnotatedObject], name: str) -> list[AnnotatedObject]:
    return [obj for obj in objects if obj.name != name]


def rename(objects: Iterable[AnnotatedObject], old_name: str, new_name: str) -> list[AnnotatedObject]:
    """Rename ``old_name`` to ``new_name``; the caller checks that the new name is free."""
    return [
        obj.model_copy(update={"name": new_name}) if obj.name == old_name else obj
        for obj in objects
    ]


__all__ = [
    "TIME_TOLERANCE",
    "TIME_STEP",
    "free_marker",
    "merge",
    "remove_by_name",
    "rename",
]
