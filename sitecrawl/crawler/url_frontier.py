"""
URL Frontier implementation for managing the lifecycle of crawl URLs.
Every URL lives in exactly one of Todo, Doing, Done or Trash.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ..storage.state_store import StateStore, URLSet


class URLFrontier:
    """
    State machine over the four lifecycle sets.

    Moves between sets are delete-then-insert without a transaction: a crash
    between the two calls can leave a URL absent from every set.
    """

    def __init__(self, store: StateStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    async def add_seeds(self, urls: Iterable[str], force: bool = True) -> int:
        """
        Add seed URLs to Todo. With force, URLs are inserted unconditionally,
        otherwise they go through the same global dedup as discovered links.
        Returns count of added URLs.
        """
        added_count = 0
        for url in urls:
            if force:
                await self.store.put(URLSet.TODO, url)
                added_count += 1
            elif await self.add_discovered(url):
                added_count += 1
        self.logger.info(f"Added {added_count} seed links")
        return added_count

    async def is_tracked(self, url: str) -> bool:
        """Check membership in any of the four sets."""
        for url_set in URLSet:
            if await self.store.exists(url_set, url):
                return True
        return False

    async def add_discovered(self, url: str) -> bool:
        """
        Add a discovered URL to Todo only if no set tracks it yet.
        Returns True if URL was added.
        """
        if await self.is_tracked(url):
            return False
        await self.store.put(URLSet.TODO, url)
        self.logger.debug(f"Added URL to frontier: {url}")
        return True

    async def add_discovered_many(self, urls: Iterable[str]) -> int:
        added_count = 0
        for url in urls:
            if await self.add_discovered(url):
                added_count += 1
        return added_count

    async def claim_batch(self, n: int) -> List[str]:
        """
        Claim up to n random URLs from Todo and move them to Doing.

        A key whose delete removed nothing was claimed by another instance in
        the meantime and is skipped.
        """
        claimed = []
        for _ in range(n):
            url, ok = await self.store.random_key(URLSet.TODO)
            if not ok:
                break
            if not await self.store.delete(URLSet.TODO, url):
                self.logger.debug(f"Lost claim race for {url}")
                continue
            await self.store.put(URLSet.DOING, url)
            claimed.append(url)
        return claimed

    async def complete_success(self, url: str, extracted_data: str = ""):
        """Move a URL from Doing to Done, storing its extracted data."""
        await self.store.delete(URLSet.DOING, url)
        await self.store.put(URLSet.DONE, url, extracted_data)

    async def complete_failure(self, url: str):
        """Move a URL to Trash, removing it from Doing and Todo."""
        await self.store.delete(URLSet.DOING, url)
        await self.store.delete(URLSet.TODO, url)
        await self.store.put(URLSet.TRASH, url)

    async def recover(self) -> int:
        """
        Move every URL in Doing and Trash back to Todo.
        Only ever invoked by an operator after an abnormal termination.
        """
        moved = 0
        for url_set in (URLSet.DOING, URLSet.TRASH):
            keys = [key async for key in self.store.scan_all(url_set)]
            for key in keys:
                self.logger.debug(f"Moving {key} back to todo list")
                await self.store.delete(url_set, key)
                await self.store.put(URLSet.TODO, key)
                moved += 1
        self.logger.info(f"Recovered {moved} URLs into todo")
        return moved

    async def locate(self, url: str) -> Optional[URLSet]:
        """Return the set currently holding url, if any."""
        for url_set in URLSet:
            if await self.store.exists(url_set, url):
                return url_set
        return None

    async def dump(self) -> List[str]:
        """List every tracked URL across all four sets."""
        all_keys = []
        for url_set in URLSet:
            all_keys.extend([key async for key in self.store.scan_all(url_set)])
        return all_keys

    async def dump_map(self) -> Dict[str, str]:
        """Map every Done URL to its extracted data."""
        result = {}
        keys = [key async for key in self.store.scan_all(URLSet.DONE)]
        for key in keys:
            value, found = await self.store.get(URLSet.DONE, key)
            if found:
                result[key] = value
        return result

    async def todo_size(self) -> int:
        return await self.store.size(URLSet.TODO)

    async def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        sizes = await self.store.sizes()
        return {url_set.label: count for url_set, count in sizes.items()}
