import re
from datetime import datetime, timedelta, timezone
from typing import Optional

KST = timezone(timedelta(hours=9), "KST")

_CUE_TIMESTAMP = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{2})(?:\.(\d{1,3}))?$")


def kst_now_iso(now: Optional[datetime] = None) -> str:
    """ISO-8601 timestamp with the fixed +09:00 offset used in every record."""
    moment = now if now is not None else datetime.now(timezone.utc)
    return moment.astimezone(KST).isoformat(timespec="milliseconds")


def format_cue_timestamp(seconds: float) -> str:
    """Seconds -> WebVTT cue timestamp ``HH:MM:SS.mmm``."""
    total_ms = int(round(max(seconds or 0.0, 0.0) * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def parse_cue_timestamp(value: str) -> Optional[float]:
    """Parse ``HH:MM:SS.mmm`` or ``MM:SS.mmm``; returns None when unparsable."""
    match = _CUE_TIMESTAMP.match(value.strip())
    if not match:
        return None
    hours, minutes, secs, frac = match.groups()
    millis = int((frac or "0").ljust(3, "0"))
    total = int(hours or 0) * 3600 + int(minutes) * 60 + int(secs)
    return total + millis / 1000


__all__ = [
    "KST",
    "kst_now_iso",
    "format_cue_timestamp",
    "parse_cue_timestamp",
]
