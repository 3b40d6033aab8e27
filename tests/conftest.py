"""
Pytest configuration and fixtures
"""

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from log_hound.logs.base import LogEntry, SearchQuery, Target


BASE_TIME = datetime(2026, 1, 23, 5, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def make_entry():
    """Build a LogEntry at BASE_TIME + offset seconds"""
    def _make(message: str = "line", offset: float = 0, group: str = "app/logs",
              stream: str = None, endpoint: str = None) -> LogEntry:
        return LogEntry(
            timestamp=BASE_TIME + timedelta(seconds=offset),
            message=message,
            source_group=group,
            log_stream=stream,
            endpoint=endpoint,
        )
    return _make


@pytest.fixture
def make_query():
    """Build a SearchQuery over the hour before BASE_TIME + 1h"""
    def _make(include: List[str] = (), exclude: List[str] = (), limit: int = 100) -> SearchQuery:
        return SearchQuery(
            start=BASE_TIME - timedelta(hours=1),
            end=BASE_TIME + timedelta(hours=1),
            include=tuple(include),
            exclude=tuple(exclude),
            limit=limit,
        )
    return _make


@pytest.fixture
def target() -> Target:
    return Target(resource="app/logs")
