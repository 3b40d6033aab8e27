"""
Unit tests for the CloudWatch Logs Insights provider
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from log_hound.core.exceptions import BackendConnectionError, QueryTerminalError
from log_hound.logs.base import QueryHandle, Target
from log_hound.logs.providers.cloudwatch_logs import (
    CloudWatchLogSource,
    build_insights_query,
    parse_result_row,
)


def row(timestamp, message, stream="stream-1"):
    fields = []
    if timestamp is not None:
        fields.append({"field": "@timestamp", "value": timestamp})
    if message is not None:
        fields.append({"field": "@message", "value": message})
    if stream is not None:
        fields.append({"field": "@logStream", "value": stream})
    fields.append({"field": "@ptr", "value": "abc"})
    return fields


@pytest.fixture
def logs_client():
    client = MagicMock()
    client.start_query.return_value = {"queryId": "q-1"}
    return client


@pytest.fixture
def pool(logs_client):
    pool = MagicMock()
    pool.get = AsyncMock(return_value=logs_client)
    return pool


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def source(pool, sleep):
    return CloudWatchLogSource(pool, poll_interval=0.5, sleep=sleep)


class TestBuildInsightsQuery:
    """Test cases for the query text"""

    def test_without_patterns(self):
        assert build_insights_query([], 100) == (
            "fields @timestamp, @message, @logStream\n"
            "| sort @timestamp desc\n"
            "| limit 100"
        )

    def test_patterns_anded_and_escaped(self):
        query = build_insights_query(["ERROR", "path=/api/v1", "a.b"], 50)
        assert (
            r"| filter @message like /(?i)ERROR/ and @message like /(?i)path=\/api\/v1/ "
            r"and @message like /(?i)a\.b/"
        ) in query
        assert query.endswith("| limit 50")


class TestParseResultRow:
    """Test cases for result row parsing"""

    def test_full_row(self):
        entry = parse_result_row(row("2026-01-23 05:36:05.200", "hello"), "app/logs", "us-east-1")
        assert entry.timestamp == datetime(2026, 1, 23, 5, 36, 5, 200000, tzinfo=timezone.utc)
        assert entry.message == "hello"
        assert entry.source_group == "app/logs"
        assert entry.log_stream == "stream-1"
        assert entry.endpoint == "us-east-1"

    def test_missing_timestamp_dropped(self):
        assert parse_result_row(row(None, "hello"), "g") is None

    def test_bad_timestamp_dropped(self):
        assert parse_result_row(row("yesterday", "hello"), "g") is None

    def test_missing_message_dropped(self):
        assert parse_result_row(row("2026-01-23 05:36:05.200", None), "g") is None

    def test_stream_optional(self):
        entry = parse_result_row(row("2026-01-23 05:36:05", "hi", stream=None), "g")
        assert entry.log_stream is None


class TestQueryPollEngine:
    """Test cases for submit / poll / wait"""

    @pytest.mark.asyncio
    async def test_submit_sends_window_and_query(self, source, logs_client, make_query):
        query = make_query(include=["error"])
        handle = await source.submit(Target(resource="app/logs", endpoint="eu-west-1"), query)

        assert handle == QueryHandle("q-1", Target(resource="app/logs", endpoint="eu-west-1"))
        kwargs = logs_client.start_query.call_args.kwargs
        assert kwargs["logGroupName"] == "app/logs"
        assert kwargs["startTime"] == int(query.start.timestamp())
        assert kwargs["endTime"] == int(query.end.timestamp())
        assert "like /(?i)error/" in kwargs["queryString"]
        assert kwargs["queryString"].endswith("| limit 100")

    @pytest.mark.asyncio
    async def test_submit_uses_target_region(self, source, pool, make_query):
        await source.submit(Target(resource="g", endpoint="ap-northeast-1"), make_query())
        pool.get.assert_awaited_with("ap-northeast-1")

    @pytest.mark.asyncio
    async def test_submit_without_query_id(self, source, logs_client, make_query):
        logs_client.start_query.return_value = {}
        with pytest.raises(BackendConnectionError):
            await source.submit(Target(resource="g"), make_query())

    @pytest.mark.asyncio
    async def test_excludes_overfetch(self, source, logs_client, make_query):
        await source.submit(Target(resource="g"), make_query(exclude=["ping"], limit=100))
        assert logs_client.start_query.call_args.kwargs["queryString"].endswith("| limit 1000")

        await source.submit(Target(resource="g"), make_query(exclude=["ping"], limit=5000))
        assert logs_client.start_query.call_args.kwargs["queryString"].endswith("| limit 10000")

    @pytest.mark.asyncio
    async def test_poll_pending_returns_none(self, source, logs_client):
        logs_client.get_query_results.return_value = {"status": "Running", "results": []}
        assert await source.poll(QueryHandle("q-1", Target(resource="g"))) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["Failed", "Cancelled", "Timeout"])
    async def test_poll_terminal_failure(self, source, logs_client, status):
        logs_client.get_query_results.return_value = {"status": status}
        with pytest.raises(QueryTerminalError) as exc_info:
            await source.poll(QueryHandle("q-9", Target(resource="g")))
        assert exc_info.value.query_id == "q-9"
        assert exc_info.value.status == status

    @pytest.mark.asyncio
    async def test_wait_polls_until_complete(self, source, logs_client, sleep):
        logs_client.get_query_results.side_effect = [
            {"status": "Scheduled"},
            {"status": "Running"},
            {"status": "Complete", "results": [
                row("2026-01-23 05:00:00.000", "a"),
                row(None, "dropped"),
                row("2026-01-23 05:00:01.000", "b"),
            ]},
        ]

        entries = await source.wait_for_results(QueryHandle("q-1", Target(resource="g")))

        assert [e.message for e in entries] == ["a", "b"]
        assert logs_client.get_query_results.call_count == 3
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_search_filters_sorts_and_truncates(self, source, logs_client, make_query):
        logs_client.get_query_results.return_value = {"status": "Complete", "results": [
            row("2026-01-23 05:00:00.000", "ERROR one"),
            row("2026-01-23 05:00:03.000", "ERROR health-check"),
            row("2026-01-23 05:00:02.000", "ERROR two"),
            row("2026-01-23 05:00:01.000", "ERROR three"),
        ]}

        entries = await source.search(
            Target(resource="app/logs", endpoint="us-east-1"),
            make_query(include=["error"], exclude=["health"], limit=2),
        )

        assert [e.message for e in entries] == ["ERROR two", "ERROR three"]
        assert all(e.endpoint == "us-east-1" for e in entries)

    @pytest.mark.asyncio
    async def test_client_errors_mapped(self, source, logs_client, make_query):
        logs_client.start_query.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "missing"}}, "StartQuery"
        )
        with pytest.raises(BackendConnectionError):
            await source.search(Target(resource="nope"), make_query())


class TestListResources:
    """Test cases for log group listing"""

    @pytest.mark.asyncio
    async def test_follows_next_token(self, source, logs_client):
        logs_client.describe_log_groups.side_effect = [
            {"logGroups": [{"logGroupName": "a"}, {"logGroupName": "b"}], "nextToken": "t1"},
            {"logGroups": [{"logGroupName": "c"}], "nextToken": "t2"},
            {"logGroups": [{"logGroupName": "d"}]},
        ]

        names = await source.list_resources(prefix="app")

        assert names == ["a", "b", "c", "d"]
        calls = logs_client.describe_log_groups.call_args_list
        assert calls[0].kwargs == {"logGroupNamePrefix": "app"}
        assert calls[1].kwargs == {"logGroupNamePrefix": "app", "nextToken": "t1"}
        assert calls[2].kwargs == {"logGroupNamePrefix": "app", "nextToken": "t2"}

    @pytest.mark.asyncio
    async def test_without_prefix(self, source, logs_client, pool):
        logs_client.describe_log_groups.return_value = {"logGroups": []}
        assert await source.list_resources("us-west-2") == []
        assert logs_client.describe_log_groups.call_args.kwargs == {}
        pool.get.assert_awaited_with("us-west-2")
