"""
Core data model shared by every log backend.

Both backends (the poll-based Logs Insights service and the push-capable
Kamal/SSH hosts) produce the same ``LogEntry`` and are driven through the
same ``Searcher`` capability, so the fan-out orchestrator and the output
layer never need to know which backend produced an entry.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, TYPE_CHECKING, runtime_checkable

from log_hound.core.exceptions import InvalidInputError

if TYPE_CHECKING:
    from .stream_manager import FollowSession


class LogSourceType(str, Enum):
    """Types of log sources"""
    CLOUDWATCH = "cloudwatch"
    KAMAL = "kamal"


@dataclass(frozen=True)
class LogEntry:
    """
    One normalized log line.

    The message is kept verbatim; it is never structurally parsed.
    """
    timestamp: datetime
    message: str
    source_group: str
    log_stream: Optional[str] = None
    endpoint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "log_group": self.source_group,
            "log_stream": self.log_stream,
            "region": self.endpoint,
        }


@dataclass(frozen=True)
class Target:
    """One (endpoint, resource) pair to search."""
    resource: str
    endpoint: Optional[str] = None

    @property
    def label(self) -> str:
        if self.endpoint:
            return f"{self.endpoint}:{self.resource}"
        return self.resource


def _as_patterns(patterns: Optional[Sequence[str]]) -> Tuple[str, ...]:
    if not patterns:
        return ()
    return tuple(p for p in patterns if p)


@dataclass(frozen=True)
class SearchQuery:
    """
    Immutable parameters of one search.

    Include patterns must all match, any exclude pattern rejects; both are
    case-insensitive substring tests.
    """
    start: datetime
    end: datetime
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    limit: int = 100
    _include_folded: Tuple[str, ...] = field(init=False, repr=False, compare=False)
    _exclude_folded: Tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.end < self.start:
            raise InvalidInputError("end", "end time must not be before start time")
        if self.limit < 1:
            raise InvalidInputError("limit", "limit must be at least 1")
        include = _as_patterns(self.include)
        exclude = _as_patterns(self.exclude)
        object.__setattr__(self, "include", include)
        object.__setattr__(self, "exclude", exclude)
        object.__setattr__(self, "_include_folded", tuple(p.lower() for p in include))
        object.__setattr__(self, "_exclude_folded", tuple(p.lower() for p in exclude))

    def matches(self, message: str) -> bool:
        folded = message.lower()
        if not all(p in folded for p in self._include_folded):
            return False
        return not any(p in folded for p in self._exclude_folded)


def apply_filters(entries: Sequence[LogEntry], query: SearchQuery) -> List[LogEntry]:
    return [entry for entry in entries if query.matches(entry.message)]


def newest_first(entries: Sequence[LogEntry], limit: Optional[int] = None) -> List[LogEntry]:
    """Sort by timestamp descending and truncate to ``limit``."""
    ordered = sorted(entries, key=lambda e: e.timestamp, reverse=True)
    if limit is not None:
        del ordered[limit:]
    return ordered


@dataclass(frozen=True)
class QueryHandle:
    """Backend-assigned id of an in-flight poll-based query. Never reused."""
    query_id: str
    target: Target


@runtime_checkable
class Searcher(Protocol):
    """Capability shared by every backend: search one target."""

    source_type: LogSourceType

    async def search(self, target: Target, query: SearchQuery) -> List[LogEntry]:
        ...


@runtime_checkable
class Follower(Protocol):
    """Capability of backends that can push new lines as they are produced."""

    async def follow(self, target: Target, query: SearchQuery) -> "FollowSession":
        ...
