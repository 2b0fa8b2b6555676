"""Test configuration and fixtures for crawler tests."""

import random
from typing import Dict, List, Optional, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from sitecrawl.crawler.fetcher import FetchResult
from sitecrawl.crawler.scheduler import CrawlerScheduler
from sitecrawl.crawler.url_frontier import URLFrontier
from sitecrawl.storage.state_store import SettingsStore, StateStore, URLSet
from sitecrawl.utils.config import Config, CrawlerConfig


class InMemoryRedis:
    """Async stand-in for a single Redis database."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.fail = False
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def ping(self):
        self._check()
        return True

    async def set(self, key, value):
        self._check()
        self.data[key] = value
        return True

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def exists(self, *keys):
        self._check()
        return sum(1 for key in keys if key in self.data)

    async def randomkey(self):
        self._check()
        if not self.data:
            return None
        return random.choice(list(self.data))

    async def scan_iter(self, count=None):
        self._check()
        for key in list(self.data):
            yield key

    async def dbsize(self):
        self._check()
        return len(self.data)

    async def flushdb(self):
        self._check()
        self.data.clear()
        return True

    async def aclose(self):
        self.closed = True


class FakeFetcher:
    """Serves canned responses; unknown URLs get a 404."""

    def __init__(self, pages: Optional[Dict[str, Tuple[int, bytes]]] = None):
        self.pages = pages or {}
        self.fetched: List[str] = []
        self.started = False

    async def start(self):
        self.started = True

    async def close(self):
        self.started = False

    async def fetch(self, url: str) -> FetchResult:
        self.fetched.append(url)
        status, body = self.pages.get(url, (404, b''))
        if status == 0:
            return FetchResult(url=url, status_code=0, error="Client error: connection reset")
        return FetchResult(url=url, status_code=status, body=body)

    def get_stats(self):
        return {'total_requests': len(self.fetched)}


def html_page(*hrefs: str) -> bytes:
    anchors = ''.join(f'<a href="{href}">link</a>' for href in hrefs)
    return f'<html><body><h1>Title</h1>{anchors}</body></html>'.encode('utf-8')


@pytest.fixture
def redis_clients():
    return {url_set: InMemoryRedis() for url_set in URLSet}


@pytest.fixture
def store(redis_clients):
    return StateStore(redis_clients)


@pytest.fixture
def frontier(store):
    return URLFrontier(store)


@pytest.fixture
def settings_client():
    return InMemoryRedis()


@pytest.fixture
def settings_store(settings_client):
    return SettingsStore(settings_client)


@pytest.fixture
def make_scheduler(store, settings_store):
    """Build a scheduler wired to the in-memory store and a fake fetcher."""
    def _make(pages=None, **crawler_options):
        crawler_options.setdefault('stats_interval', 0.01)
        config = Config(crawler=CrawlerConfig(**crawler_options))
        return CrawlerScheduler(
            config,
            store=store,
            settings_store=settings_store,
            fetcher=FakeFetcher(pages)
        )
    return _make


def keys_of(redis_clients, url_set: URLSet) -> set:
    return set(redis_clients[url_set].data)
