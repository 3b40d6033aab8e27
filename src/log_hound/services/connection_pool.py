import asyncio
from typing import Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from log_hound.core.exceptions import BackendConnectionError
from log_hound.core.logging import logger


T = TypeVar("T")

DEFAULT_KEY = "default"

_ABANDONED = object()


class KeyedRegistry(Generic[T]):
    """
    Insert-once registry of lazily constructed values.

    Lookups of an existing key never wait. On a miss the first caller becomes
    the owner and runs the factory; concurrent callers for the same key wait
    on the owner's result instead of constructing their own. A failed
    construction is propagated to every waiter and is never cached. If the
    owner is cancelled, the waiters race again and one of them takes over.
    """

    def __init__(self):
        self._entries: Dict[str, T] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()

    def get(self, key: str) -> Optional[T]:
        return self._entries.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    async def get_or_create(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        while True:
            entry = self._entries.get(key)
            if entry is not None:
                return entry

            async with self._lock:
                entry = self._entries.get(key)
                if entry is not None:
                    return entry
                pending = self._pending.get(key)
                owner = pending is None
                if owner:
                    pending = asyncio.get_event_loop().create_future()
                    self._pending[key] = pending

            if not owner:
                value = await asyncio.shield(pending)
                if value is _ABANDONED:
                    # The owner was cancelled; race again for ownership
                    continue
                return value

            return await self._construct(key, pending, factory)

    async def _construct(self, key: str, pending: asyncio.Future, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await factory()
        except asyncio.CancelledError:
            self._pending.pop(key, None)
            pending.set_result(_ABANDONED)
            raise
        except Exception as e:
            self._pending.pop(key, None)
            pending.set_exception(e)
            # Mark retrieved so an unawaited failure is not reported twice
            pending.exception()
            raise

        self._entries[key] = value
        self._pending.pop(key, None)
        pending.set_result(value)
        return value

    def discard(self, key: str) -> Optional[T]:
        return self._entries.pop(key, None)


class CloudWatchClientPool:
    """CloudWatch Logs clients keyed by region, built on first use."""

    def __init__(
        self,
        profile: Optional[str] = None,
        default_region: Optional[str] = None,
        session_factory: Callable[..., boto3.session.Session] = boto3.session.Session,
        client_config: Optional[Config] = None,
    ):
        self.profile = profile
        self.default_region = default_region
        self._session_factory = session_factory
        self._client_config = client_config or Config(
            connect_timeout=10,
            retries={"max_attempts": 5, "mode": "standard"},
        )
        self._registry: KeyedRegistry = KeyedRegistry()

    def resolve_key(self, region: Optional[str] = None) -> str:
        return region or self.default_region or DEFAULT_KEY

    async def get(self, region: Optional[str] = None):
        """
        Get the shared client for a region.

        Args:
            region: Explicit region, else the pool's default region, else
                whatever boto3 resolves for the profile

        Raises:
            BackendConnectionError: If the client cannot be constructed
        """
        key = self.resolve_key(region)
        effective_region = region or self.default_region
        return await self._registry.get_or_create(
            key, lambda: self._create_client(effective_region)
        )

    async def _create_client(self, region: Optional[str]):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._build_client, region)

    def _build_client(self, region: Optional[str]):
        # boto3 sessions are not thread-safe, so each client gets its own
        try:
            session = self._session_factory(profile_name=self.profile, region_name=region)
            client = session.client("logs", config=self._client_config)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to create CloudWatch Logs client for {region or DEFAULT_KEY}: {e}")
            raise BackendConnectionError(
                f"Failed to create CloudWatch Logs client: {e}", endpoint=region
            )
        logger.debug(
            "Created CloudWatch Logs client (profile=%s, region=%s)",
            self.profile, client.meta.region_name
        )
        return client

    @property
    def regions(self) -> List[str]:
        return self._registry.keys()
