"""WebVTT container for annotated objects.

A container is a plain WebVTT file. The header and every object live in NOTE
blocks so regular players ignore them; a single summary cue at the end is for
humans only and carries nothing the decoder relies on except the duration::

    WEBVTT

    NOTE
    동영상: clip.mp4
    생성일: 2024-01-01T12:00:00.000+09:00
    탐지된 객체 수: 1

    NOTE Object(1)
    {
      "name": "cup",
      "videoTime": 5.5,
      ...
    }

    1
    00:00:00.000 --> 00:00:30.000
    탐지된 객체: 1개

``encode`` and ``decode`` are pure: no file access, no hidden state. Code
generation and the clock are injectable so output can be made deterministic.
"""
import json
import logging
import random
import re
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from models.annotated_object import (
    AnnotatedObject,
    ContainerHeader,
    DEFAULT_CATEGORY,
    DEFAULT_DOMAIN,
    DEFAULT_INFO,
    derived_link,
)
from utils.timefmt import format_cue_timestamp, kst_now_iso, parse_cue_timestamp

logger = logging.getLogger(__name__)

FILE_MARKER = "WEBVTT"
HEADER_MARKER = "NOTE"
HEADER_VIDEO = "동영상: "
HEADER_GENERATED = "생성일: "
HEADER_COUNT = "탐지된 객체 수: "
OBJECT_MARKER = re.compile(r"^NOTE\s+Object\((\d+)\)$")
CUE_ARROW = "-->"

# block key -> AnnotatedObject field
BLOCK_FIELDS: dict[str, str] = {
    "name": "name",
    "videoTime": "temporal_marker",
    "code": "code",
    "category": "category",
    "domain": "domain",
    "info": "info",
    "position": "geometry",
    "polygon": "polygon",
}
# written for readers, recomputed on every encode
COMPUTED_KEYS = frozenset({"finallink"})
# Unicode line breaks that ensure_ascii=False would write raw
_LINE_BREAK_ESCAPES = {
    "\u0085": "\\u0085",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}

CodeFactory = Callable[[], str]


def generate_code() -> str:
    return f"CODE_RECT-{random.randint(0, 999)}"


class ParserState(Enum):
    IDLE = "idle"
    IN_HEADER = "in_header"
    IN_OBJECT_BLOCK = "in_object_block"
    IN_CUE = "in_cue"


def next_state(state: ParserState, line: str) -> ParserState:
    """Transition table of the container parser.

    A blank line always ends the current block. From IDLE, the first line of
    a block decides what kind of block it is; any block that is neither the
    header nor an object (cues, other NOTEs) is read as a cue.
    """
    stripped = line.strip()
    if state is not ParserState.IDLE:
        return ParserState.IDLE if not stripped else state
    if not stripped or stripped.startswith(FILE_MARKER):
        return ParserState.IDLE
    if OBJECT_MARKER.match(stripped):
        return ParserState.IN_OBJECT_BLOCK
    if stripped == HEADER_MARKER:
        return ParserState.IN_HEADER
    return ParserState.IN_CUE


def with_defaults(obj: AnnotatedObject, code_factory: Optional[CodeFactory] = None) -> AnnotatedObject:
    """Fill the fields the encoder never leaves empty."""
    updates: dict[str, Any] = {}
    if not obj.code:
        updates["code"] = (code_factory or generate_code)()
    if not obj.category:
        updates["category"] = DEFAULT_CATEGORY
    if not obj.domain:
        updates["domain"] = DEFAULT_DOMAIN
    if not obj.info:
        updates["info"] = DEFAULT_INFO
    return obj.model_copy(update=updates) if updates else obj


def object_to_block(obj: AnnotatedObject) -> dict[str, Any]:
    block: dict[str, Any] = {
        "name": obj.name,
        "videoTime": obj.temporal_marker,
        "code": obj.code,
        "category": obj.category,
        "domain": obj.domain,
        "info": obj.info,
        "finallink": derived_link(obj.domain, obj.category, obj.code or ""),
        "position": obj.geometry.model_dump() if obj.geometry is not None else None,
        "polygon": obj.polygon,
    }
    for key, value in obj.extra.items():
        if key not in block:
            block[key] = value
    return block


def object_from_block(block: dict[str, Any]) -> AnnotatedObject:
    fields: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in block.items():
        if key in BLOCK_FIELDS:
            fields[BLOCK_FIELDS[key]] = value
        elif key not in COMPUTED_KEYS:
            extra[key] = value
    if extra:
        fields["extra"] = extra
    return AnnotatedObject.model_validate(fields)


def _dump_block(block: dict[str, Any]) -> str:
    text = json.dumps(block, ensure_ascii=False, indent=2)
    # a NOTE block must never contain the cue arrow
    text = text.replace(CUE_ARROW, "--\\u003e")
    for char, escaped in _LINE_BREAK_ESCAPES.items():
        text = text.replace(char, escaped)
    return text


def _single_line(value: str) -> str:
    return " ".join(str(value).splitlines()).strip()


def encode(
    objects: Iterable[AnnotatedObject],
    header: ContainerHeader,
    *,
    code_factory: Optional[CodeFactory] = None,
    now: Optional[datetime] = None,
) -> str:
    items = list(objects)
    for position, obj in enumerate(items):
        if not isinstance(obj, AnnotatedObject):
            raise TypeError(f"objects[{position}] is {type(obj).__name__}, expected AnnotatedObject")

    count = len(items)
    lines = [
        FILE_MARKER,
        "",
        HEADER_MARKER,
        f"{HEADER_VIDEO}{_single_line(header.video_name)}",
        f"{HEADER_GENERATED}{kst_now_iso(now)}",
        f"{HEADER_COUNT}{count}",
        "",
    ]

    for index, obj in enumerate(items, start=1):
        block = object_to_block(with_defaults(obj, code_factory))
        lines.append(f"NOTE Object({index})")
        lines.append(_dump_block(block))
        lines.append("")

    lines.append("1")
    lines.append(f"00:00:00.000 {CUE_ARROW} {format_cue_timestamp(header.duration)}")
    lines.append(f"탐지된 객체: {count}개" if count else "탐지된 객체가 없습니다.")
    lines.append("")
    return "\n".join(lines)


class _ContainerBuilder:
    def __init__(self) -> None:
        self.objects: list[AnnotatedObject] = []
        self.video_name = ""
        self.generated_at: Optional[str] = None
        self.declared_count: Optional[int] = None
        self.duration = 0.0
        self._label = ""
        self._block_lines: list[str] = []

    def add_header_line(self, line: str) -> None:
        text = line.strip()
        if text.startswith(HEADER_VIDEO):
            self.video_name = text[len(HEADER_VIDEO):]
        elif text.startswith(HEADER_GENERATED):
            self.generated_at = text[len(HEADER_GENERATED):]
        elif text.startswith(HEADER_COUNT):
            raw = text[len(HEADER_COUNT):]
            try:
                self.declared_count = int(raw)
            except ValueError:
                logger.warning("Ignoring unparsable object count in header: %r", raw)

    def add_cue_line(self, line: str) -> None:
        if CUE_ARROW not in line:
            return
        end = line.split(CUE_ARROW, 1)[1].strip().split(" ", 1)[0]
        seconds = parse_cue_timestamp(end)
        if seconds is not None:
            self.duration = seconds

    def open_block(self, line: str) -> None:
        self._label = line.strip()[len("NOTE "):]
        self._block_lines = []

    def add_block_line(self, line: str) -> None:
        self._block_lines.append(line)

    def close_block(self) -> None:
        raw = "\n".join(self._block_lines)
        self._block_lines = []
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            obj = object_from_block(data)
        except ValidationError as exc:
            logger.warning("Skipping object block %s: invalid fields (%d errors)", self._label, exc.error_count())
            return
        except ValueError as exc:
            logger.warning("Skipping object block %s: %s", self._label, exc)
            return
        self.objects.append(obj)

    def build(self) -> tuple[list[AnnotatedObject], ContainerHeader]:
        parsed = len(self.objects)
        if self.declared_count is not None and self.declared_count != parsed:
            logger.warning(
                "Container declares %d objects but %d were parsed", self.declared_count, parsed
            )
        header = ContainerHeader(
            video_name=self.video_name,
            generated_at=self.generated_at,
            object_count=parsed,
            duration=self.duration,
        )
        return self.objects, header


def decode(text: str) -> tuple[list[AnnotatedObject], ContainerHeader]:
    builder = _ContainerBuilder()
    # only \n separates lines, other Unicode breaks belong to string values
    lines = text.replace("\r\n", "\n").split("\n")
    if not lines or not lines[0].lstrip("\ufeff").startswith(FILE_MARKER):
        logger.warning("Container text does not start with %s", FILE_MARKER)

    state = ParserState.IDLE
    for line in lines:
        new_state = next_state(state, line)
        if state is ParserState.IDLE:
            if new_state is ParserState.IN_OBJECT_BLOCK:
                builder.open_block(line)
            elif new_state is ParserState.IN_CUE:
                builder.add_cue_line(line)
        elif new_state is ParserState.IDLE:
            if state is ParserState.IN_OBJECT_BLOCK:
                builder.close_block()
        elif new_state is ParserState.IN_OBJECT_BLOCK:
            builder.add_block_line(line)
        elif new_state is ParserState.IN_HEADER:
            builder.add_header_line(line)
        else:
            builder.add_cue_line(line)
        state = new_state

    if state is ParserState.IN_OBJECT_BLOCK:
        builder.close_block()
    return builder.build()


__all__ = [
    "BLOCK_FIELDS",
    "ParserState",
    "decode",
    "encode",
    "generate_code",
    "next_state",
    "object_from_block",
    "object_to_block",
    "with_defaults",
]
