"""
Redis-backed state store for URL lifecycle tracking.

Each lifecycle set lives in its own logical Redis database so that a set's
size is a plain DBSIZE and a uniform random draw is a plain RANDOMKEY.
"""

import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..exceptions import StoreUnavailable
from ..utils.config import RedisConfig, Settings

T = TypeVar('T')

TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError)


class URLSet(Enum):
    """The four mutually exclusive lifecycle sets, valued by their Redis DB."""
    TODO = 0
    DOING = 1
    DONE = 2
    TRASH = 3

    @property
    def label(self) -> str:
        return self.name.lower()


def _make_client(config: RedisConfig, db: int) -> redis.Redis:
    """Create a Redis client with bounded retries and an explicit timeout."""
    return redis.Redis(
        host=config.host,
        port=config.port,
        db=db,
        password=config.password,
        socket_timeout=config.socket_timeout,
        socket_connect_timeout=config.socket_timeout,
        retry=Retry(ExponentialBackoff(cap=2.0, base=0.05), config.max_retries),
        retry_on_error=list(TRANSIENT_ERRORS),
        decode_responses=True
    )


class StateStore:
    """
    Thin async operation set over the Todo/Doing/Done/Trash namespaces.

    Every call is an independent request; there are no cross-call
    transactions. Transient failures are retried by the client and, once
    retries are exhausted, surface as StoreUnavailable.
    """

    def __init__(self, clients: Dict[URLSet, redis.Redis]):
        missing = [url_set.label for url_set in URLSet if url_set not in clients]
        if missing:
            raise ValueError(f"Missing clients for sets: {', '.join(missing)}")
        self.clients = clients
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: RedisConfig) -> 'StateStore':
        """Create one client per lifecycle set."""
        return cls({url_set: _make_client(config, url_set.value) for url_set in URLSet})

    async def _call(self, url_set: URLSet, operation: str,
                    func: Callable[[redis.Redis], Awaitable[T]]) -> T:
        try:
            return await func(self.clients[url_set])
        except TRANSIENT_ERRORS as e:
            self.logger.error(f"Store unavailable during {operation} on {url_set.label}: {e}")
            raise StoreUnavailable(f"{operation} on {url_set.label} failed: {e}") from e

    async def ping(self):
        """Check that every namespace is reachable."""
        for url_set in URLSet:
            await self._call(url_set, 'PING', lambda client: client.ping())

    async def put(self, url_set: URLSet, key: str, value: str = ""):
        await self._call(url_set, 'SET', lambda client: client.set(key, value))

    async def get(self, url_set: URLSet, key: str) -> Tuple[Optional[str], bool]:
        value = await self._call(url_set, 'GET', lambda client: client.get(key))
        return value, value is not None

    async def delete(self, url_set: URLSet, key: str) -> bool:
        """Delete a key. Returns False when the key was already absent."""
        removed = await self._call(url_set, 'DEL', lambda client: client.delete(key))
        return removed > 0

    async def exists(self, url_set: URLSet, key: str) -> bool:
        count = await self._call(url_set, 'EXISTS', lambda client: client.exists(key))
        return count > 0

    async def random_key(self, url_set: URLSet) -> Tuple[Optional[str], bool]:
        key = await self._call(url_set, 'RANDOMKEY', lambda client: client.randomkey())
        return key, key is not None

    async def scan_all(self, url_set: URLSet, count: int = 1000) -> AsyncIterator[str]:
        """Iterate every key in a set with cursor-based SCAN. Not a snapshot."""
        try:
            async for key in self.clients[url_set].scan_iter(count=count):
                yield key
        except TRANSIENT_ERRORS as e:
            self.logger.error(f"Store unavailable during SCAN on {url_set.label}: {e}")
            raise StoreUnavailable(f"SCAN on {url_set.label} failed: {e}") from e

    async def size(self, url_set: URLSet) -> int:
        return await self._call(url_set, 'DBSIZE', lambda client: client.dbsize())

    async def sizes(self) -> Dict[URLSet, int]:
        return {url_set: await self.size(url_set) for url_set in URLSet}

    async def flush_all(self):
        """Erase all four lifecycle sets. Persisted settings are left intact."""
        for url_set in URLSet:
            await self._call(url_set, 'FLUSHDB', lambda client: client.flushdb())
        self.logger.info("Flushed all URL sets")

    async def close(self):
        for client in self.clients.values():
            await client.aclose()


class SettingsStore:
    """Persists the shared site settings as JSON in a dedicated Redis DB."""

    settings_key = "settings"

    def __init__(self, client: redis.Redis):
        self.client = client
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: RedisConfig) -> 'SettingsStore':
        return cls(_make_client(config, config.settings_db))

    async def ping(self):
        try:
            await self.client.ping()
        except TRANSIENT_ERRORS as e:
            raise StoreUnavailable(f"Settings store unreachable: {e}") from e

    async def load(self) -> Optional[Settings]:
        try:
            raw = await self.client.get(self.settings_key)
        except TRANSIENT_ERRORS as e:
            raise StoreUnavailable(f"Could not load settings: {e}") from e
        if raw is None:
            return None
        return Settings.from_json(raw)

    async def save(self, settings: Settings):
        try:
            await self.client.set(self.settings_key, settings.to_json())
        except TRANSIENT_ERRORS as e:
            raise StoreUnavailable(f"Could not save settings: {e}") from e
        self.logger.info(f"Saved settings: {settings}")

    async def close(self):
        await self.client.aclose()
