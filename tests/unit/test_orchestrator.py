"""
Unit tests for the fan-out orchestrator
"""

import asyncio
import time

import pytest

from log_hound.core.exceptions import AggregateSearchError, BackendConnectionError, QueryTerminalError
from log_hound.logs.base import LogSourceType, Target
from log_hound.logs.orchestrator import SearchOrchestrator, SearchOutcome, SearchResults


class FakeSearcher:
    """Searcher returning canned entries per target label, with optional delays"""

    source_type = LogSourceType.CLOUDWATCH

    def __init__(self, results, delays=None):
        self.results = results
        self.delays = delays or {}
        self.started = []

    async def search(self, target, query):
        self.started.append(target.label)
        await asyncio.sleep(self.delays.get(target.label, 0))
        result = self.results[target.label]
        if isinstance(result, Exception):
            raise result
        return result


class TestSearchAll:
    """Test cases for search_all"""

    @pytest.mark.asyncio
    async def test_middle_failure_does_not_short_circuit(self, make_entry, make_query):
        searcher = FakeSearcher({
            "a": [make_entry("a1")],
            "b": BackendConnectionError("unreachable"),
            "c": [make_entry("c1"), make_entry("c2")],
        })
        targets = [Target("a"), Target("b"), Target("c")]

        results = await SearchOrchestrator(searcher).search_all(targets, make_query())

        assert len(results.outcomes) == 3
        assert [o.target for o in results.outcomes] == targets
        assert [o.ok for o in results.outcomes] == [True, False, True]
        assert len(results.errors) == 1
        assert results.errors[0][0] == Target("b")
        assert isinstance(results.errors[0][1], BackendConnectionError)
        assert [e.message for e in results.entries] == ["a1", "c1", "c2"]
        results.raise_if_all_failed()

    @pytest.mark.asyncio
    async def test_targets_run_concurrently(self, make_query):
        searcher = FakeSearcher(
            {"a": [], "b": [], "c": []},
            delays={"a": 0.2, "b": 0.2, "c": 0.2},
        )
        started = time.monotonic()
        await SearchOrchestrator(searcher).search_all([Target("a"), Target("b"), Target("c")], make_query())
        assert time.monotonic() - started < 0.5

    @pytest.mark.asyncio
    async def test_all_failed_is_aggregate(self, make_query):
        searcher = FakeSearcher({
            "a": QueryTerminalError("q-1", "Failed"),
            "b": BackendConnectionError("down"),
        })
        results = await SearchOrchestrator(searcher).search_all([Target("a"), Target("b")], make_query())

        assert results.all_failed
        with pytest.raises(AggregateSearchError) as exc_info:
            results.raise_if_all_failed()
        assert [label for label, _ in exc_info.value.errors] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_target_list(self, make_query):
        results = await SearchOrchestrator(FakeSearcher({})).search_all([], make_query())
        assert results.outcomes == []
        assert not results.all_failed

    @pytest.mark.asyncio
    async def test_interleaved_merge(self, make_entry, make_query):
        # 5 entries over an hour in one group, 3 overlapping entries in another
        first = [make_entry(f"a{i}", offset=i * 900, group="app/a") for i in range(5)]
        second = [make_entry(f"b{i}", offset=300 + i * 1000, group="app/b") for i in range(3)]
        searcher = FakeSearcher({"a": list(reversed(first)), "b": list(reversed(second))})

        results = await SearchOrchestrator(searcher).search_all([Target("a"), Target("b")], make_query())
        merged = results.interleaved()

        assert len(merged) == 8
        assert [e.timestamp for e in merged] == sorted(e.timestamp for e in merged)
        assert [e.message for e in merged] == ["a0", "b0", "a1", "b1", "a2", "b2", "a3", "a4"]


class TestGrouped:
    """Test cases for grouped merge"""

    def test_grouped_sorted_within_group(self, make_entry):
        results = SearchResults(outcomes=[
            SearchOutcome(Target("z"), entries=[make_entry("z2", 2, group="z"), make_entry("z1", 1, group="z")]),
            SearchOutcome(Target("a"), entries=[make_entry("a1", 5, group="a")]),
        ])
        grouped = results.grouped()
        assert list(grouped) == ["a", "z"]
        assert [e.message for e in grouped["z"]] == ["z1", "z2"]


class TestIterCompleted:
    """Test cases for streaming outcomes in request order"""

    @pytest.mark.asyncio
    async def test_request_order_not_completion_order(self, make_entry, make_query):
        searcher = FakeSearcher(
            {"slow": [make_entry("s")], "fast": [make_entry("f")], "bad": BackendConnectionError("x")},
            delays={"slow": 0.1, "fast": 0.0, "bad": 0.05},
        )
        orchestrator = SearchOrchestrator(searcher)

        labels = []
        async for outcome in orchestrator.iter_completed(
            [Target("slow"), Target("fast"), Target("bad")], make_query()
        ):
            labels.append((outcome.target.label, outcome.ok))

        assert labels == [("slow", True), ("fast", True), ("bad", False)]
        assert sorted(searcher.started) == ["bad", "fast", "slow"]

    @pytest.mark.asyncio
    async def test_early_exit_cancels_pending(self, make_query):
        searcher = FakeSearcher({"a": [], "b": []}, delays={"a": 0, "b": 10})
        orchestrator = SearchOrchestrator(searcher)

        stream = orchestrator.iter_completed([Target("a"), Target("b")], make_query())
        first = await stream.__anext__()
        assert first.target.label == "a"
        await asyncio.wait_for(stream.aclose(), timeout=1)
