"""
Relative durations, absolute timestamps and backend timestamp formats.

Durations accept one or more ``<number><unit>`` components, e.g. ``30s``,
``1h30m``, ``2d12h``, ``1.5h`` or ``2hours``. Absolute times accept RFC 3339
first, then ``YYYY-MM-DD HH:MM:SS``, ``YYYY-MM-DD HH:MM`` and ``YYYY-MM-DD``.
Everything returned is timezone-aware UTC.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from dateutil.parser import isoparse

from log_hound.core.exceptions import ParseError, InvalidInputError


_DURATION_COMPONENT = re.compile(
    r"\s*(\d+(?:\.\d+)?)\s*"
    r"(s(?:ec(?:ond)?s?)?|m(?:in(?:ute)?s?)?|h(?:(?:ou)?rs?)?|d(?:ays?)?|w(?:eeks?)?)",
    re.IGNORECASE,
)

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}

_DURATION_EXAMPLES = "Examples: 1h, 30m, 2d, 1h30m, 1.5h"

ABSOLUTE_TIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
)

INSIGHTS_TIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
)

DOCKER_TIME_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)


def parse_duration(text: str) -> timedelta:
    """Parse a relative duration such as ``1h30m`` into a timedelta."""
    value = (text or "").strip().lower()
    if not value:
        raise ParseError(text or "", f"Empty duration string. {_DURATION_EXAMPLES}")

    total_seconds = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_COMPONENT.match(value, pos)
        if not match:
            raise ParseError(text, f"Invalid duration format '{text}'. {_DURATION_EXAMPLES}")
        total_seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)[0]]
        pos = match.end()
        # Trailing whitespace after the last component is fine
        if not value[pos:].strip():
            break

    return timedelta(seconds=total_seconds)


def _parse_rfc3339(value: str) -> Optional[datetime]:
    """Strict round-trip format: ISO 8601 with an explicit offset."""
    try:
        parsed = isoparse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone(timezone.utc)


def _parse_formats(value: str, formats: Sequence[str]) -> Optional[datetime]:
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def parse_absolute_time(text: str) -> datetime:
    """Parse a user-supplied absolute time; a bare date means midnight UTC."""
    value = (text or "").strip()
    parsed = _parse_rfc3339(value) or _parse_formats(value, ABSOLUTE_TIME_FORMATS)
    if parsed is None:
        raise ParseError(
            text or "",
            f"Unable to parse datetime '{text}'. Expected formats: "
            "RFC3339 (2026-01-23T05:36:05Z), YYYY-MM-DD HH:MM:SS, YYYY-MM-DD",
        )
    return parsed


def parse_insights_timestamp(value: str) -> Optional[datetime]:
    """Parse a Logs Insights ``@timestamp`` such as ``2026-01-23 05:36:05.200``."""
    if not value:
        return None
    value = value.strip()
    return _parse_rfc3339(value) or _parse_formats(value, INSIGHTS_TIME_FORMATS)


def parse_docker_timestamp(value: str) -> Optional[datetime]:
    """Parse a ``docker logs --timestamps`` prefix (RFC 3339, nanoseconds)."""
    if not value:
        return None
    parsed = _parse_rfc3339(value)
    if parsed is not None:
        return parsed
    return _parse_formats(value.rstrip("Zz"), DOCKER_TIME_FORMATS)


def to_docker_since(moment: datetime) -> str:
    """Render a moment for ``docker logs --since``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TimeRange:
    """Half-open search window [start, end)."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end < self.start:
            raise InvalidInputError("end", "end time must not be before start time")

    @classmethod
    def from_relative(cls, duration_text: str, now: Optional[datetime] = None) -> "TimeRange":
        end = now or utcnow()
        return cls(start=end - parse_duration(duration_text), end=end)

    @classmethod
    def from_explicit(
        cls,
        start_text: str,
        end_text: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> "TimeRange":
        start = parse_absolute_time(start_text)
        end = parse_absolute_time(end_text) if end_text else (now or utcnow())
        return cls(start=start, end=end)
