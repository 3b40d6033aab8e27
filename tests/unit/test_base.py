"""
Unit tests for the shared data model and include/exclude filtering
"""

from datetime import timedelta

import pytest

from log_hound.core.exceptions import InvalidInputError
from log_hound.logs.base import LogEntry, SearchQuery, apply_filters, newest_first


class TestSearchQueryMatching:
    """Test cases for include (AND) / exclude (OR) matching"""

    def test_empty_include_matches_everything(self, make_query):
        query = make_query()
        assert query.matches("anything at all")
        assert query.matches("")

    def test_all_includes_required(self, make_query):
        query = make_query(include=["error", "user_id=123"])
        assert query.matches("ERROR for user_id=123")
        assert not query.matches("ERROR for user_id=456")

    def test_include_is_case_insensitive(self, make_query):
        query = make_query(include=["Timeout"])
        assert query.matches("upstream TIMEOUT after 30s")

    def test_any_exclude_rejects(self, make_query):
        query = make_query(include=["error"], exclude=["health-check", "ping"])
        assert query.matches("error in /orders")
        assert not query.matches("error in health-check")
        assert not query.matches("Error during PING")

    def test_empty_patterns_dropped(self, make_query):
        query = make_query(include=["", "error"], exclude=[""])
        assert query.include == ("error",)
        assert query.exclude == ()

    def test_end_before_start_rejected(self, base_time):
        with pytest.raises(InvalidInputError):
            SearchQuery(start=base_time, end=base_time - timedelta(seconds=1))

    def test_limit_must_be_positive(self, base_time):
        with pytest.raises(InvalidInputError):
            SearchQuery(start=base_time, end=base_time, limit=0)


class TestFilterHelpers:
    """Test cases for apply_filters and newest_first"""

    def test_apply_filters(self, make_entry, make_query):
        entries = [
            make_entry("GET /health 200"),
            make_entry("ERROR db timeout"),
            make_entry("ERROR health-check failed"),
        ]
        kept = apply_filters(entries, make_query(include=["error"], exclude=["health"]))
        assert [e.message for e in kept] == ["ERROR db timeout"]

    def test_newest_first_sorts_and_truncates(self, make_entry):
        entries = [make_entry(str(i), offset=i) for i in (3, 1, 4, 2, 5)]
        ordered = newest_first(entries, limit=3)
        assert [e.message for e in ordered] == ["5", "4", "3"]

    def test_newest_first_without_limit(self, make_entry):
        entries = [make_entry(str(i), offset=i) for i in (1, 2)]
        assert [e.message for e in newest_first(entries)] == ["2", "1"]


class TestLogEntry:
    """Test cases for LogEntry"""

    def test_to_dict(self, make_entry):
        entry = make_entry("hello", group="app/logs", stream="web-1", endpoint="us-east-1")
        data = entry.to_dict()
        assert data == {
            "timestamp": "2026-01-23T05:00:00+00:00",
            "message": "hello",
            "log_group": "app/logs",
            "log_stream": "web-1",
            "region": "us-east-1",
        }

    def test_entries_are_immutable(self, make_entry):
        entry = make_entry()
        with pytest.raises(Exception):
            entry.message = "changed"

    def test_message_kept_verbatim(self, base_time):
        raw = '{"level":"error","msg":"  spaced  "}'
        assert LogEntry(timestamp=base_time, message=raw, source_group="g").message == raw
