"""
Log source router.

Maps a source type (``cloudwatch``, ``kamal``) to the provider class that
searches it.
"""

from typing import Callable, Dict, List, Optional

from log_hound.core.exceptions import InvalidInputError
from .base import LogSourceType, Searcher


class LogRouter:
    """Registry of log source providers by source type."""

    def __init__(self):
        self._providers: Dict[LogSourceType, Callable[..., Searcher]] = {}

    def register_provider(self, source_type: LogSourceType, provider_class: Callable[..., Searcher]):
        """
        Register a log source provider.

        Args:
            source_type: The type of log source
            provider_class: The provider class (not instance)
        """
        self._providers[LogSourceType(source_type)] = provider_class

    def create_provider(self, source_type, **kwargs) -> Searcher:
        """
        Build a provider for a source type.

        Providers carry per-invocation state (client pool, deploy config),
        so every call builds a new one.

        Raises:
            InvalidInputError: If the source type is unknown
        """
        try:
            key = LogSourceType(source_type)
        except ValueError:
            raise InvalidInputError("source", f"Unknown log source type: {source_type}")
        if key not in self._providers:
            raise InvalidInputError("source", f"Unknown log source type: {source_type}")
        return self._providers[key](**kwargs)

    def get_registered_types(self) -> List[LogSourceType]:
        return list(self._providers.keys())

    def is_registered(self, source_type) -> bool:
        try:
            return LogSourceType(source_type) in self._providers
        except ValueError:
            return False


# Global router instance
_log_router: Optional[LogRouter] = None


def get_log_router() -> LogRouter:
    """Get the global log router instance."""
    global _log_router
    if _log_router is None:
        _log_router = LogRouter()
        _register_default_providers(_log_router)
    return _log_router


def _register_default_providers(router: LogRouter):
    # Provider modules pull in boto3 and paramiko
    from .providers.cloudwatch_logs import CloudWatchLogSource
    from .providers.kamal_logs import KamalLogSource

    router.register_provider(LogSourceType.CLOUDWATCH, CloudWatchLogSource)
    router.register_provider(LogSourceType.KAMAL, KamalLogSource)
