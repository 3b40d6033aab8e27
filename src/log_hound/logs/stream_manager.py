"""
Follow (tail) stream management.

A follow session owns one long-running remote process. A producer task
reads it one line at a time, parses and filters each line, and pushes
matches into a bounded queue the consumer reads from.

Cancellation is cooperative: the producer waits for a line for at most one
poll interval before re-checking the stop flag, so a stop request is seen
within one interval and the remote process is terminated, not just
abandoned.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional, Protocol

from log_hound.core.config import settings
from log_hound.core.exceptions import ChannelClosedError
from log_hound.core.logging import logger
from .base import Follower, LogEntry, SearchQuery, Target


class LineSource(Protocol):
    """A remote process emitting lines, e.g. ``docker logs --follow``."""

    def read_line(self, timeout: float) -> Optional[str]:
        ...

    def terminate(self) -> None:
        ...


class FollowState(str, Enum):
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"
    STOPPED = "stopped"


class FollowSession:
    """
    Receiving end and cancel handle of one follow stream.

    Iterate it with ``async for`` to receive entries; iteration ends when the
    stream is stopped or the remote process exits.
    """

    def __init__(
        self,
        process: LineSource,
        parse_line: Callable[[str], Optional[LogEntry]],
        query: SearchQuery,
        label: str = "follow",
        poll_interval: Optional[float] = None,
        buffer_size: Optional[int] = None,
    ):
        self.process = process
        self.label = label
        self._parse_line = parse_line
        self._query = query
        self.poll_interval = poll_interval if poll_interval is not None else settings.follow_poll_interval
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size or settings.follow_buffer_size)
        self.state = FollowState.RUNNING
        self.error: Optional[Exception] = None
        self._cancelled = False
        self._receiver_closed = False
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "FollowSession":
        if self._task is None:
            self._task = asyncio.create_task(self._produce())
        return self

    @property
    def done(self) -> bool:
        return self.state == FollowState.STOPPED

    async def _produce(self):
        loop = asyncio.get_event_loop()
        logger.info(f"Started follow stream for {self.label}")
        try:
            while not self._cancelled:
                try:
                    line = await loop.run_in_executor(
                        None, self.process.read_line, self.poll_interval
                    )
                except EOFError:
                    logger.info(f"Follow stream for {self.label} ended")
                    break

                if line is None or self._cancelled:
                    continue

                entry = self._parse_line(line)
                if entry is None or not self._query.matches(entry.message):
                    continue
                await self.deliver(entry)
        except ChannelClosedError:
            logger.debug("Follow consumer for %s is gone", self.label)
        except Exception as e:
            logger.error(f"Error in follow stream {self.label}: {e}")
            self.error = e
        finally:
            self.process.terminate()
            self.state = FollowState.STOPPED
            logger.info(f"Stopped follow stream for {self.label}")

    async def deliver(self, entry: LogEntry) -> None:
        """
        Hand an entry to the consumer.

        A full queue is retried every poll interval rather than dropping the
        entry; a closed receiver or a stop request ends delivery for good.
        """
        while True:
            if self._receiver_closed or self._cancelled:
                raise ChannelClosedError()
            try:
                self.queue.put_nowait(entry)
                return
            except asyncio.QueueFull:
                await asyncio.sleep(self.poll_interval)

    def cancel(self) -> None:
        """Request a stop. Nothing is delivered after this returns."""
        self._cancelled = True
        if self.state == FollowState.RUNNING:
            self.state = FollowState.STOP_REQUESTED
        while not self.queue.empty():
            self.queue.get_nowait()

    async def stop(self) -> None:
        """Request a stop and wait until the remote process is terminated."""
        self.cancel()
        if self._task is not None:
            await self._task
        elif self.state != FollowState.STOPPED:
            self.process.terminate()
            self.state = FollowState.STOPPED

    def close(self) -> None:
        """Consumer side hang-up; the producer shuts down on its next delivery."""
        self._receiver_closed = True

    async def receive(self) -> Optional[LogEntry]:
        """Next matching entry, or None once the stream is over."""
        while True:
            if self._cancelled:
                return None
            try:
                return self.queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            if self._task is None or self._task.done():
                return None
            try:
                return await asyncio.wait_for(self.queue.get(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue

    def __aiter__(self):
        return self

    async def __anext__(self) -> LogEntry:
        entry = await self.receive()
        if entry is None:
            raise StopAsyncIteration
        return entry

    async def __aenter__(self) -> "FollowSession":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
        await self.stop()


class FollowStreamManager:
    """Keeps at most one follow session active."""

    def __init__(self):
        self.active: Optional[FollowSession] = None

    async def start(self, follower: Follower, target: Target, query: SearchQuery) -> FollowSession:
        """Start following ``target``, stopping any session already running."""
        await self.stop()
        session = await follower.follow(target, query)
        self.active = session
        return session

    async def stop(self) -> None:
        session, self.active = self.active, None
        if session is not None:
            await session.stop()
