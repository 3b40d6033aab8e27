"""
Log source provider implementations.

One provider per backend, each satisfying the ``Searcher`` capability.
"""

from .cloudwatch_logs import CloudWatchLogSource
from .kamal_logs import KamalLogSource

__all__ = [
    'CloudWatchLogSource',
    'KamalLogSource'
]
