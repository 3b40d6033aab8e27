"""
CloudWatch Logs Insights log source provider.

Insights is an asynchronous protocol: a query is submitted with StartQuery,
then GetQueryResults is polled until the query reaches a terminal state.

    Scheduled/Running --poll--> Complete | Failed | Cancelled | Timeout

Only include patterns are pushed into the query language (as ``like``
clauses joined with ``and``). Exclude patterns, and a second pass of the
include patterns, are applied client-side so both backends filter the same
way.
"""

import asyncio
import functools
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from log_hound.core.config import settings
from log_hound.core.exceptions import BackendConnectionError, QueryTerminalError
from log_hound.core.logging import logger
from log_hound.core.time_range import parse_insights_timestamp
from log_hound.services.connection_pool import CloudWatchClientPool

from ..base import (
    LogEntry,
    LogSourceType,
    QueryHandle,
    SearchQuery,
    Target,
    apply_filters,
    newest_first,
)


COMPLETE_STATUS = "Complete"
TERMINAL_FAILURE_STATUSES = frozenset({"Failed", "Cancelled", "Timeout"})

# Logs Insights refuses a larger ``limit``
MAX_QUERY_LIMIT = 10000


def build_insights_query(include: Sequence[str], limit: int) -> str:
    """Build the Insights query text; multiple include patterns are ANDed."""
    lines = ["fields @timestamp, @message, @logStream"]
    if include:
        clauses = [
            "@message like /(?i){}/".format(re.escape(pattern).replace("/", r"\/"))
            for pattern in include
        ]
        lines.append("| filter " + " and ".join(clauses))
    lines.append("| sort @timestamp desc")
    lines.append(f"| limit {limit}")
    return "\n".join(lines)


def parse_result_row(
    row: Sequence[Dict[str, str]],
    resource: str,
    endpoint: Optional[str] = None
) -> Optional[LogEntry]:
    """Turn one result row (a list of field/value pairs) into a LogEntry."""
    timestamp = None
    message = None
    log_stream = None

    for item in row:
        name = item.get("field")
        value = item.get("value")
        if name == "@timestamp":
            timestamp = parse_insights_timestamp(value)
        elif name == "@message":
            message = value
        elif name == "@logStream":
            log_stream = value

    if timestamp is None or message is None:
        return None

    return LogEntry(
        timestamp=timestamp,
        message=message,
        source_group=resource,
        log_stream=log_stream,
        endpoint=endpoint,
    )


class CloudWatchLogSource:
    """
    Log source provider for CloudWatch Logs Insights.

    A target is a log group, optionally scoped to a region.
    """

    source_type = LogSourceType.CLOUDWATCH

    def __init__(
        self,
        client_pool: CloudWatchClientPool,
        poll_interval: Optional[float] = None,
        overfetch_multiplier: Optional[int] = None,
        overfetch_minimum: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client_pool = client_pool
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval
        self.overfetch_multiplier = overfetch_multiplier or settings.overfetch_multiplier
        self.overfetch_minimum = overfetch_minimum or settings.overfetch_minimum
        self._sleep = sleep

    async def _call(self, func, **kwargs):
        """Run a blocking boto3 call off the event loop."""
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, **kwargs))
        except (BotoCoreError, ClientError) as e:
            raise BackendConnectionError(f"CloudWatch Logs request failed: {e}")

    def query_limit(self, query: SearchQuery) -> int:
        """Limit pushed to Insights; over-fetch when exclusions will drop rows."""
        if not query.exclude:
            return min(query.limit, MAX_QUERY_LIMIT)
        return min(
            max(query.limit * self.overfetch_multiplier, self.overfetch_minimum),
            MAX_QUERY_LIMIT,
        )

    async def submit(self, target: Target, query: SearchQuery) -> QueryHandle:
        """Start an Insights query for one log group."""
        client = await self.client_pool.get(target.endpoint)
        query_string = build_insights_query(query.include, self.query_limit(query))

        logger.debug("Region: %s, Log group: %s", target.endpoint, target.resource)
        logger.debug("Query:\n%s", query_string)

        response = await self._call(
            client.start_query,
            logGroupName=target.resource,
            startTime=int(query.start.timestamp()),
            endTime=int(query.end.timestamp()),
            queryString=query_string,
        )
        query_id = response.get("queryId")
        if not query_id:
            raise BackendConnectionError("No query ID returned", endpoint=target.endpoint)
        return QueryHandle(query_id=query_id, target=target)

    async def poll(self, handle: QueryHandle) -> Optional[List[LogEntry]]:
        """
        Check a query once.

        Returns:
            Parsed entries when the query is complete, None while it is
            still pending

        Raises:
            QueryTerminalError: If the query failed, was cancelled or timed out
        """
        client = await self.client_pool.get(handle.target.endpoint)
        response = await self._call(client.get_query_results, queryId=handle.query_id)
        status = response.get("status") or ""
        logger.debug("Query %s status: %s", handle.query_id, status or "<none>")

        if status == COMPLETE_STATUS:
            entries = []
            for row in response.get("results") or []:
                entry = parse_result_row(row, handle.target.resource, handle.target.endpoint)
                if entry is not None:
                    entries.append(entry)
            return entries
        if status in TERMINAL_FAILURE_STATUSES:
            raise QueryTerminalError(handle.query_id, status)
        return None

    async def wait_for_results(self, handle: QueryHandle) -> List[LogEntry]:
        """Poll until a terminal state; there is deliberately no overall timeout."""
        while True:
            entries = await self.poll(handle)
            if entries is not None:
                return entries
            await self._sleep(self.poll_interval)

    async def search(self, target: Target, query: SearchQuery) -> List[LogEntry]:
        handle = await self.submit(target, query)
        entries = await self.wait_for_results(handle)
        return newest_first(apply_filters(entries, query), query.limit)

    async def list_resources(
        self,
        endpoint: Optional[str] = None,
        prefix: Optional[str] = None
    ) -> List[str]:
        """List log group names, following nextToken until exhausted."""
        client = await self.client_pool.get(endpoint)
        names: List[str] = []
        next_token = None

        while True:
            kwargs = {}
            if prefix:
                kwargs["logGroupNamePrefix"] = prefix
            if next_token:
                kwargs["nextToken"] = next_token

            response = await self._call(client.describe_log_groups, **kwargs)
            for group in response.get("logGroups") or []:
                name = group.get("logGroupName")
                if name:
                    names.append(name)

            next_token = response.get("nextToken")
            if not next_token:
                break

        return names
