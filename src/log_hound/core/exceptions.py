from typing import Optional, Dict, Any, List, Tuple


class LogHoundError(Exception):
    def __init__(
        self,
        message: str,
        code: str = "LOG_HOUND_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(LogHoundError):
    def __init__(self, message: str = "Validation failed", code: str = "VALIDATION_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, details)


class ParseError(ValidationError):
    def __init__(self, value: str, message: str):
        super().__init__(message, "PARSE_ERROR", {"value": value})


class InvalidInputError(ValidationError):
    def __init__(self, field: str, message: str):
        super().__init__(
            f"Invalid input for field '{field}': {message}",
            "INVALID_INPUT",
            {"field": field}
        )


class ConfigError(ValidationError):
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, "CONFIG_ERROR", {"path": path} if path else None)


class AddressParseError(LogHoundError):
    """Raised by the region-prefix check; the resolver always degrades it."""

    def __init__(self, value: str, reason: str):
        super().__init__(
            f"'{value}' is not an endpoint prefix: {reason}",
            "ADDRESS_PARSE_ERROR",
            {"value": value}
        )


class ExternalServiceError(LogHoundError):
    pass


class BackendConnectionError(ExternalServiceError):
    def __init__(self, message: str = "Failed to connect to log backend", endpoint: Optional[str] = None):
        super().__init__(
            message,
            "BACKEND_CONNECTION_ERROR",
            {"endpoint": endpoint} if endpoint else None
        )


class SSHConnectionError(BackendConnectionError):
    """SSH-specific connection error"""
    pass


class SSHAuthenticationError(SSHConnectionError):
    """SSH authentication failure"""
    pass


class QueryTerminalError(ExternalServiceError):
    def __init__(self, query_id: str, status: str):
        self.query_id = query_id
        self.status = status
        super().__init__(
            f"Query {query_id}: {status}",
            "QUERY_TERMINAL_ERROR",
            {"query_id": query_id, "status": status}
        )


class RemoteCommandError(ExternalServiceError):
    def __init__(self, command: str, exit_status: int, stderr: str):
        super().__init__(
            f"Remote command '{command}' failed ({exit_status}): {stderr.strip()}",
            "REMOTE_COMMAND_ERROR",
            {"command": command, "exit_status": exit_status}
        )


class ResourceError(LogHoundError):
    pass


class RemoteDiscoveryError(ResourceError):
    def __init__(self, server: str, service: str):
        super().__init__(
            f"No running container found for service: {service} on {server}",
            "REMOTE_DISCOVERY_ERROR",
            {"server": server, "service": service}
        )


class ChannelClosedError(LogHoundError):
    def __init__(self, message: str = "Follow consumer is gone"):
        super().__init__(message, "CHANNEL_CLOSED")


class AggregateSearchError(LogHoundError):
    def __init__(self, errors: List[Tuple[str, Exception]]):
        self.errors = errors
        summary = "; ".join(f"{label}: {error}" for label, error in errors)
        super().__init__(
            f"All {len(errors)} targets failed: {summary}",
            "ALL_TARGETS_FAILED",
            {"targets": [label for label, _ in errors]}
        )
