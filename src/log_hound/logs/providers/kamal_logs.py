"""
Kamal log source provider.

Kamal runs each service as Docker containers on plain hosts, so logs are
read over SSH with ``docker logs``. Every server is one target: the
endpoint is the server, the resource is the service.

Docker has no server-side text filtering, so a batch fetch over-fetches
(``--tail``) and filters client-side.
"""

import asyncio
import functools
import shlex
from typing import Callable, List, Optional

from log_hound.core.config import settings
from log_hound.core.exceptions import InvalidInputError, RemoteCommandError, RemoteDiscoveryError
from log_hound.core.logging import logger
from log_hound.core.time_range import parse_docker_timestamp, to_docker_since, utcnow
from log_hound.schemas.kamal import KamalConfig
from log_hound.services.ssh_connection import SSHConnection

from ..base import LogEntry, LogSourceType, SearchQuery, Target, apply_filters, newest_first
from ..stream_manager import FollowSession


SOURCE_GROUP_PREFIX = "kamal:"


def parse_log_line(line: str, server: str, service: str) -> Optional[LogEntry]:
    """
    Parse one ``docker logs --timestamps`` line: ``<RFC3339> <message>``.

    A line without a parseable timestamp prefix is kept whole, stamped with
    the time it was read.
    """
    if not line.strip():
        return None

    timestamp = None
    message = line
    head, sep, rest = line.partition(" ")
    if sep:
        timestamp = parse_docker_timestamp(head)
        if timestamp is not None:
            message = rest

    return LogEntry(
        timestamp=timestamp or utcnow(),
        message=message,
        source_group=f"{SOURCE_GROUP_PREFIX}{server}",
        log_stream=service,
        endpoint=None,
    )


class KamalLogSource:
    """Log source provider for Kamal-deployed Docker containers."""

    source_type = LogSourceType.KAMAL

    def __init__(
        self,
        config: KamalConfig,
        connection_factory: Callable[..., SSHConnection] = SSHConnection,
        overfetch_multiplier: Optional[int] = None,
        overfetch_minimum: Optional[int] = None,
        follow_poll_interval: Optional[float] = None,
        follow_buffer_size: Optional[int] = None,
    ):
        self.config = config
        self._connection_factory = connection_factory
        self.overfetch_multiplier = overfetch_multiplier or settings.overfetch_multiplier
        self.overfetch_minimum = overfetch_minimum or settings.overfetch_minimum
        self.follow_poll_interval = follow_poll_interval
        self.follow_buffer_size = follow_buffer_size

    def targets(self, server: Optional[str] = None) -> List[Target]:
        """One target per configured server, or just ``server`` if given."""
        servers = [server] if server else self.config.servers
        return [Target(resource=self.config.service, endpoint=s) for s in servers]

    def _server_for(self, target: Target) -> str:
        if not target.endpoint:
            raise InvalidInputError("target", f"Kamal target {target.label} has no server")
        return target.endpoint

    def connect(self, server: str) -> SSHConnection:
        return self._connection_factory(server, user=self.config.ssh_user)

    def discovery_command(self) -> str:
        return (
            f"docker ps --filter name={shlex.quote(self.config.container_filter)} "
            "--format '{{.ID}}' | head -1"
        )

    def fetch_limit(self, query: SearchQuery) -> int:
        return max(query.limit * self.overfetch_multiplier, self.overfetch_minimum)

    def logs_command(self, container_id: str, query: SearchQuery, follow: bool = False) -> str:
        parts = [
            "docker logs",
            shlex.quote(container_id),
            "--timestamps",
            "--since",
            to_docker_since(query.start),
        ]
        if follow:
            parts.append("--follow")
        else:
            parts.extend(["--tail", str(self.fetch_limit(query))])
        return " ".join(parts)

    def find_container(self, connection: SSHConnection, server: str) -> str:
        """
        Find the running container of the service on a connected server.

        Raises:
            RemoteCommandError: If ``docker ps`` itself failed
            RemoteDiscoveryError: If no container matches; never mistaken
                for an empty result
        """
        command = self.discovery_command()
        result = connection.run(command)
        if not result.ok:
            raise RemoteCommandError(command, result.exit_status, result.stderr)

        container_id = result.stdout.strip()
        if not container_id:
            raise RemoteDiscoveryError(server, self.config.service)
        logger.debug("Found container %s for %s on %s", container_id, self.config.service, server)
        return container_id

    def parse_output(self, raw: str, server: str, query: SearchQuery) -> List[LogEntry]:
        entries = []
        # Only \n ends a docker line; other separators belong to the message
        for line in raw.split("\n"):
            entry = parse_log_line(line.rstrip("\r"), server, self.config.service)
            if entry is not None:
                entries.append(entry)
        return newest_first(apply_filters(entries, query), query.limit)

    def fetch(self, server: str, query: SearchQuery) -> List[LogEntry]:
        """Blocking batch fetch from one server."""
        with self.connect(server) as connection:
            container_id = self.find_container(connection, server)
            command = self.logs_command(container_id, query)
            # docker logs replays the container's stderr on ours
            result = connection.run(command, combine_stderr=True)
            if not result.ok:
                raise RemoteCommandError(command, result.exit_status, result.stdout)
        return self.parse_output(result.stdout, server, query)

    async def search(self, target: Target, query: SearchQuery) -> List[LogEntry]:
        server = self._server_for(target)
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self.fetch, server, query)

    def _open_follow(self, server: str, query: SearchQuery):
        connection = self.connect(server).connect()
        try:
            container_id = self.find_container(connection, server)
            return connection.open_stream(self.logs_command(container_id, query, follow=True))
        except Exception:
            connection.close()
            raise

    async def follow(self, target: Target, query: SearchQuery) -> FollowSession:
        """Start streaming new lines of the service on one server."""
        server = self._server_for(target)
        loop = asyncio.get_event_loop()
        process = await loop.run_in_executor(None, self._open_follow, server, query)
        session = FollowSession(
            process,
            functools.partial(parse_log_line, server=server, service=self.config.service),
            query,
            label=target.label,
            poll_interval=self.follow_poll_interval,
            buffer_size=self.follow_buffer_size,
        )
        return session.start()
