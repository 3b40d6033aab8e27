"""
Concurrent fan-out of one search over many targets.

Every target is searched at once; one target failing never cancels or
corrupts another. Results come back in request order, each either a list
of entries or the error that target raised.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

from log_hound.core.exceptions import AggregateSearchError
from log_hound.core.logging import logger
from .base import LogEntry, SearchQuery, Searcher, Target


@dataclass
class SearchOutcome:
    """Result of searching one target: entries, or the error it raised"""
    target: Target
    entries: List[LogEntry] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SearchResults:
    """Per-target outcomes of a fan-out, in request order."""
    outcomes: List[SearchOutcome]

    @property
    def entries(self) -> List[LogEntry]:
        return [entry for outcome in self.outcomes if outcome.ok for entry in outcome.entries]

    @property
    def errors(self) -> List[Tuple[Target, Exception]]:
        return [(o.target, o.error) for o in self.outcomes if not o.ok]

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and all(not o.ok for o in self.outcomes)

    def interleaved(self) -> List[LogEntry]:
        """All successful entries, oldest first."""
        return sorted(self.entries, key=lambda e: e.timestamp)

    def grouped(self) -> "OrderedDict[str, List[LogEntry]]":
        """Entries grouped by source, groups sorted by name, oldest first within."""
        groups: Dict[str, List[LogEntry]] = {}
        for entry in self.entries:
            groups.setdefault(entry.source_group, []).append(entry)
        return OrderedDict(
            (name, sorted(groups[name], key=lambda e: e.timestamp))
            for name in sorted(groups)
        )

    def raise_if_all_failed(self) -> None:
        if self.all_failed:
            raise AggregateSearchError([(t.label, e) for t, e in self.errors])


class SearchOrchestrator:
    """Runs one Searcher against many targets concurrently."""

    def __init__(self, searcher: Searcher):
        self.searcher = searcher

    async def search_one(self, target: Target, query: SearchQuery) -> SearchOutcome:
        """Search one target, capturing its failure instead of raising it."""
        try:
            entries = await self.searcher.search(target, query)
        except Exception as e:
            logger.info(f"Search of {target.label} failed: {e}")
            return SearchOutcome(target=target, error=e)
        logger.debug("Search of %s returned %d entries", target.label, len(entries))
        return SearchOutcome(target=target, entries=entries)

    async def search_all(self, targets: Sequence[Target], query: SearchQuery) -> SearchResults:
        outcomes = await asyncio.gather(*(self.search_one(t, query) for t in targets))
        return SearchResults(outcomes=list(outcomes))

    async def iter_completed(
        self,
        targets: Sequence[Target],
        query: SearchQuery
    ) -> AsyncIterator[SearchOutcome]:
        """
        Yield each target's outcome as soon as it and every target listed
        before it have finished, so output order stays the request order.
        """
        tasks = [asyncio.ensure_future(self.search_one(t, query)) for t in targets]
        try:
            for task in tasks:
                yield await task
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
