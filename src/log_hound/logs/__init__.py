"""
Log search across CloudWatch Logs and Kamal-deployed hosts.

Both backends return the same ``LogEntry`` and are driven through the same
``Searcher`` capability.
"""

from .base import (
    LogEntry,
    LogSourceType,
    QueryHandle,
    SearchQuery,
    Target,
    Searcher,
    Follower,
)

__all__ = [
    'LogEntry',
    'LogSourceType',
    'QueryHandle',
    'SearchQuery',
    'Target',
    'Searcher',
    'Follower',
]
