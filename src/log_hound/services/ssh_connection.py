"""
SSH Connection Handler

Opens SSH sessions to Kamal hosts, runs one-shot commands and long-running
streaming commands (``docker logs --follow``).

Host keys: by default unknown hosts are accepted and trusted on first use
(paramiko's AutoAddPolicy, after loading the user's known_hosts). This is a
convenience trade-off: it makes first contact with a freshly provisioned
server painless but offers no protection against a man-in-the-middle on that
first connection. Set ``LOG_HOUND_SSH_STRICT_HOST_KEYS=true`` to reject hosts
that are not already in known_hosts.
"""

import os
import shlex
import socket
import time
from dataclasses import dataclass
from typing import Callable, Optional

import paramiko

from log_hound.core.config import settings
from log_hound.core.exceptions import SSHConnectionError, SSHAuthenticationError
from log_hound.core.logging import logger


@dataclass
class CommandResult:
    """Outcome of a one-shot remote command"""
    exit_status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class SSHConnection:
    """
    One SSH session to one server.

    Use as a context manager so the session is released whether the work
    inside succeeds or fails.
    """

    def __init__(
        self,
        destination: str,
        user: Optional[str] = None,
        connect_timeout: Optional[float] = None,
        strict_host_keys: Optional[bool] = None,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ):
        """
        Initialize SSH connection handler.

        Args:
            destination: ``host``, ``host:port`` or ``user@host[:port]``
            user: SSH user when the destination does not name one
            connect_timeout: Seconds to wait for the TCP connect and banner
            strict_host_keys: Reject hosts missing from known_hosts
            client_factory: Builds the underlying paramiko client
        """
        self.destination = destination
        self.ssh_user = user or settings.ssh_default_user
        self.ssh_host = None
        self.ssh_port = 22
        self.connect_timeout = connect_timeout if connect_timeout is not None else settings.ssh_connect_timeout
        self.strict_host_keys = settings.ssh_strict_host_keys if strict_host_keys is None else strict_host_keys
        self._client_factory = client_factory
        self._client: Optional[paramiko.SSHClient] = None
        self._parse_destination()

    def _parse_destination(self) -> None:
        """Parse ``[user@]host[:port]``."""
        host_port = self.destination.strip()
        if "@" in host_port:
            self.ssh_user, host_port = host_port.rsplit("@", 1)

        if host_port.count(":") == 1:
            self.ssh_host, port_str = host_port.split(":", 1)
            try:
                self.ssh_port = int(port_str)
            except ValueError:
                raise SSHConnectionError(f"Invalid SSH port: {port_str}", endpoint=self.destination)
        else:
            self.ssh_host = host_port

        if not self.ssh_host:
            raise SSHConnectionError("SSH host not specified", endpoint=self.destination)

    @property
    def label(self) -> str:
        return f"{self.ssh_user}@{self.ssh_host}"

    def _lookup_ssh_config(self) -> dict:
        ssh_config_path = os.path.expanduser("~/.ssh/config")
        if not os.path.exists(ssh_config_path):
            return {}
        try:
            ssh_config = paramiko.SSHConfig.from_path(ssh_config_path)
            return ssh_config.lookup(self.ssh_host)
        except (OSError, paramiko.SSHException) as e:
            logger.warning(f"Failed to load SSH config: {e}")
            return {}

    def connect(self) -> "SSHConnection":
        """
        Open the session.

        Raises:
            SSHAuthenticationError: If authentication fails
            SSHConnectionError: If the host cannot be reached in time
        """
        if self._client is not None:
            return self

        client = self._client_factory()
        try:
            client.load_system_host_keys()
        except (OSError, IOError) as e:
            logger.warning(f"Failed to load known_hosts: {e}")

        if self.strict_host_keys:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        host_config = self._lookup_ssh_config()
        connect_kwargs = {
            "hostname": host_config.get("hostname", self.ssh_host),
            "port": int(host_config.get("port", self.ssh_port)),
            "username": self.ssh_user,
            "timeout": self.connect_timeout,
            "banner_timeout": self.connect_timeout,
            "auth_timeout": self.connect_timeout,
        }
        if "identityfile" in host_config:
            connect_kwargs["key_filename"] = [
                os.path.expanduser(path) for path in host_config["identityfile"]
            ]
        if "proxycommand" in host_config:
            connect_kwargs["sock"] = paramiko.ProxyCommand(host_config["proxycommand"])

        try:
            client.connect(**connect_kwargs)
        except paramiko.AuthenticationException as e:
            client.close()
            raise SSHAuthenticationError(f"SSH authentication failed for {self.label}: {e}", endpoint=self.ssh_host)
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            client.close()
            raise SSHConnectionError(f"Failed to SSH to {self.label}: {e}", endpoint=self.ssh_host)

        logger.debug("SSH session opened to %s", self.label)
        self._client = client
        return self

    def run(self, command: str, combine_stderr: bool = False) -> CommandResult:
        """
        Run a command through ``bash -c`` and collect its output.

        ``docker logs`` writes the container's stderr to ours, so log fetches
        combine both streams; otherwise a chatty stderr could stall the
        channel while stdout is drained.
        """
        client = self._require_client()
        logger.debug("SSH %s: %s", self.label, command)
        try:
            channel = client.get_transport().open_session()
            if combine_stderr:
                channel.set_combine_stderr(True)
            channel.exec_command(f"bash -c {shlex.quote(command)}")
            out = channel.makefile("rb").read()
            err = b"" if combine_stderr else channel.makefile_stderr("rb").read()
            exit_status = channel.recv_exit_status()
            channel.close()
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            raise SSHConnectionError(f"Command failed on {self.label}: {e}", endpoint=self.ssh_host)
        return CommandResult(
            exit_status=exit_status,
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
        )

    def open_stream(self, command: str) -> "RemoteProcess":
        """
        Start a long-running command and hand over the session to it.

        The command runs under a pseudo-terminal so that closing the channel
        hangs up the remote process. The returned RemoteProcess owns this
        connection from now on; terminating it closes the session.
        """
        client = self._require_client()
        logger.debug("SSH %s (stream): %s", self.label, command)
        try:
            transport = client.get_transport()
            channel = transport.open_session()
            channel.get_pty()
            channel.set_combine_stderr(True)
            channel.exec_command(f"bash -c {shlex.quote(command)}")
        except (paramiko.SSHException, socket.timeout, OSError) as e:
            raise SSHConnectionError(f"Failed to start stream on {self.label}: {e}", endpoint=self.ssh_host)
        return RemoteProcess(channel, self)

    def _require_client(self) -> paramiko.SSHClient:
        if self._client is None:
            raise SSHConnectionError(f"SSH session to {self.label} is not open", endpoint=self.ssh_host)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            finally:
                self._client = None
                logger.debug("SSH session to %s closed", self.label)

    def __enter__(self) -> "SSHConnection":
        return self.connect()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RemoteProcess:
    """A remote command whose output is consumed one line at a time."""

    def __init__(self, channel, connection: SSHConnection, chunk_size: int = 4096):
        self._channel = channel
        self._connection = connection
        self._chunk_size = chunk_size
        self._buffer = b""
        self._eof = False
        self.terminated = False

    def read_line(self, timeout: float) -> Optional[str]:
        """
        Return the next complete line, or None if none arrived within ``timeout``.

        Raises:
            EOFError: When the remote process has closed its output
        """
        deadline = time.monotonic() + timeout
        while b"\n" not in self._buffer:
            if self._eof:
                if self._buffer:
                    line, self._buffer = self._buffer, b""
                    return self._decode(line)
                raise EOFError("remote stream closed")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            self._channel.settimeout(remaining)
            try:
                chunk = self._channel.recv(self._chunk_size)
            except socket.timeout:
                return None
            if not chunk:
                self._eof = True
            else:
                self._buffer += chunk

        line, self._buffer = self._buffer.split(b"\n", 1)
        return self._decode(line)

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.decode("utf-8", errors="replace").rstrip("\r")

    def terminate(self) -> None:
        """Hang up the remote process and release the session."""
        if self.terminated:
            return
        self.terminated = True
        try:
            self._channel.close()
        finally:
            self._connection.close()
