"""
Web page fetcher over a shared, pooled aiohttp session.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError
from aiohttp_socks import ProxyConnector, ProxyError, ProxyConnectionError, ProxyTimeoutError


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    body: bytes = b''
    error: Optional[str] = None
    fetch_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and self.status_code == 200


class WebFetcher:
    """
    Fetches web pages with a fixed timeout and no retry.

    Transport failures are reported through FetchResult.error with a status
    code of 0 instead of being raised.
    """

    def __init__(self, user_agent: str = "", request_timeout: float = 10.0,
                 max_connections: int = 20, proxy_url: Optional[str] = None,
                 max_body_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_connections = max_connections
        self.proxy_url = proxy_url
        self.max_body_size = max_body_size

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _make_connector(self) -> aiohttp.TCPConnector:
        if self.proxy_url:
            return ProxyConnector.from_url(
                self.proxy_url,
                limit=self.max_connections,
                keepalive_timeout=15
            )
        return aiohttp.TCPConnector(
            limit=self.max_connections,
            keepalive_timeout=15,
            ttl_dns_cache=300
        )

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            headers = {'User-Agent': self.user_agent} if self.user_agent else None
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers=headers,
                connector=self._make_connector()
            )
            if self.proxy_url:
                self.logger.info(f"WebFetcher session started through proxy {self.proxy_url}")
            else:
                self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with the status and raw body, or error information
        """
        if self.session is None:
            await self.start()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                body = await self._read_body_safely(response)
                self.stats['total_bytes_downloaded'] += len(body)
                if response.status == 200:
                    self.stats['successful_requests'] += 1
                else:
                    self.stats['failed_requests'] += 1
                self.logger.debug(f"Fetched {url}: {response.status} ({len(body)} bytes)")
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    body=body,
                    fetch_time=time.time() - start_time
                )

        except asyncio.TimeoutError:
            error_msg = "Request timeout"
            self.logger.warning(f"Timeout fetching {url}")

        except (ProxyError, ProxyConnectionError, ProxyTimeoutError) as e:
            error_msg = f"Proxy error: {e}"
            self.logger.warning(f"Proxy error fetching {url}: {e}")

        except ClientError as e:
            error_msg = f"Client error: {e}"
            self.logger.warning(f"Client error fetching {url}: {e}")

        self.stats['failed_requests'] += 1
        return FetchResult(
            url=url,
            status_code=0,
            error=error_msg,
            fetch_time=time.time() - start_time
        )

    async def _read_body_safely(self, response) -> bytes:
        """Read the response body, truncating at max_body_size."""
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")

        chunks = []
        size = 0
        async for chunk in response.content.iter_chunked(8192):
            chunks.append(chunk)
            size += len(chunk)
            if size > self.max_body_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                break
        return b''.join(chunks)[:self.max_body_size]

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
