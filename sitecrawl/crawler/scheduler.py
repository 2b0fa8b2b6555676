"""
Crawler scheduler that coordinates crawling tasks and manages the overall crawl process.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, List, Optional

import yaml

from .url_frontier import URLFrontier
from .fetcher import WebFetcher
from .parser import LinkPipeline
from .extractor import Extractor, SelectorExtractor
from .error_policy import ErrorPolicy
from ..exceptions import FATAL_ERRORS, ConfigurationError, StoreUnavailable
from ..storage.state_store import SettingsStore, StateStore
from ..utils.config import Config, Settings, validate_settings
from ..utils.monitoring import CrawlMonitor


class RunState(Enum):
    """Lifecycle of a crawl run."""
    IDLE = 'idle'
    RUNNING = 'running'
    DRAINING = 'draining'
    ABORTED = 'aborted'
    STOPPED = 'stopped'


@dataclass
class CrawlSession:
    """Counters for a single crawl run."""
    start_time: float
    urls_parsed: int = 0
    num_todo: int = 0
    num_doing: int = 0
    num_done: int = 0
    num_trash: int = 0
    consecutive_errors: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def urls_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.urls_parsed / elapsed_minutes if elapsed_minutes > 0 else 0


@dataclass
class WorkerReport:
    """What a worker sends back to the scheduler for one URL."""
    url: str
    worker_id: int
    candidates: int = 0
    elapsed: float = 0.0
    error: Optional[Exception] = None

    @property
    def fatal(self) -> bool:
        return self.error is not None


class CrawlerScheduler:
    """
    Main scheduler that coordinates all crawler components.

    Each round claims up to max_workers URLs, runs one worker per claimed
    URL, and waits for all of them before starting the next round. A fatal
    report from any worker aborts the run at that join.
    """

    def __init__(self, config: Config,
                 store: Optional[StateStore] = None,
                 settings_store: Optional[SettingsStore] = None,
                 fetcher: Optional[WebFetcher] = None,
                 extractor: Optional[Extractor] = None,
                 monitor: Optional[CrawlMonitor] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)

        # Components
        self.store = store
        self.settings_store = settings_store
        self.fetcher = fetcher
        self.extractor = extractor or SelectorExtractor()
        self.monitor = monitor or CrawlMonitor(
            enable_exporter=config.monitoring.metrics_enabled,
            prometheus_port=config.monitoring.prometheus_port
        )
        self.settings: Optional[Settings] = None
        self.frontier: Optional[URLFrontier] = None
        self.pipeline: Optional[LinkPipeline] = None
        self.error_policy = ErrorPolicy(config.crawler.maximum_number_of_errors)

        # Crawl state
        self.state = RunState.IDLE
        self.transitions: List[RunState] = [RunState.IDLE]
        self.session = CrawlSession(start_time=time.time())
        self.is_running = False
        self._stop_requested = False

    def _set_state(self, state: RunState):
        self.logger.debug(f"Run state {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    async def initialize(self, settings: Optional[Settings] = None):
        """
        Connect to the store, then persist the given settings or load the
        ones saved by a previous run.
        """
        redis_config = self.config.redis
        if self.store is None:
            self.store = StateStore.from_config(redis_config)
        if self.settings_store is None:
            self.settings_store = SettingsStore.from_config(redis_config)

        try:
            await self.settings_store.ping()
            await self.store.ping()
        except StoreUnavailable as e:
            raise ConfigurationError(
                f"Redis not available at {redis_config.host}:{redis_config.port}, did you run it? "
                f"The easiest way is\n\n\tdocker run -d -p {redis_config.port}:6379 redis\n"
            ) from e
        self.logger.info("Redis connection established")

        if settings is not None:
            validate_settings(settings)
            await self.settings_store.save(settings)

        loaded = await self.settings_store.load()
        if loaded is None:
            raise ConfigurationError(
                "You need to set the base settings. Use\n\n"
                "\tsitecrawl --url http://www.example.com\n"
            )
        self.settings = loaded
        self.logger.info(f"Loaded settings: {self.settings}")

        self.frontier = URLFrontier(self.store)
        self.pipeline = LinkPipeline(self.settings)

        if self.config.crawler.erase_db:
            await self.flush()

        if self.settings.base_url:
            self.logger.info(f"Adding {self.settings.base_url} to URLs")
            await self.frontier.add_seeds([self.settings.base_url], force=False)

        if self.fetcher is None:
            crawler_config = self.config.crawler
            self.fetcher = WebFetcher(
                user_agent=crawler_config.user_agent,
                request_timeout=crawler_config.request_timeout,
                max_connections=crawler_config.max_connections,
                proxy_url=crawler_config.proxy_url if crawler_config.use_proxy else None
            )
        await self.fetcher.start()

        self.monitor.start_exporter()
        self.logger.info("Crawler scheduler initialized successfully")

    def _require_initialized(self):
        if self.frontier is None:
            raise ConfigurationError("Crawler is not initialized. Call initialize() first.")

    async def add_seeds(self, urls: List[str]) -> int:
        """Add seed URLs to Todo unconditionally."""
        self._require_initialized()
        return await self.frontier.add_seeds(urls, force=True)

    async def crawl(self):
        """
        Crawl until Todo is empty, a stop is requested, or a fatal error
        occurs. Fatal errors are re-raised after the run is stopped.
        """
        self._require_initialized()
        if self.is_running:
            self.logger.warning("Crawler is already running")
            return

        self.is_running = True
        self._stop_requested = False
        self.session = CrawlSession(start_time=time.time())
        self.error_policy.reset()
        self._set_state(RunState.RUNNING)

        self.logger.info(f"Starting crawl on {self.settings.base_url}")
        self.logger.info("Settings:\n" + yaml.safe_dump(asdict(self.settings), sort_keys=True))

        stats_task = asyncio.create_task(self._stats_reporter())
        try:
            while not self._stop_requested:
                if await self.frontier.todo_size() == 0:
                    self.logger.info("No more work to do!")
                    break

                batch = await self.frontier.claim_batch(self.config.crawler.max_workers)
                if not batch:
                    continue

                reports = await self._run_batch(batch)
                for report in reports:
                    if report.fatal:
                        self.logger.error(f"Aborting crawl after {report.url}: {report.error}")
                        raise report.error

            self._set_state(RunState.DRAINING)

        except Exception:
            self._set_state(RunState.ABORTED)
            raise

        finally:
            self.is_running = False
            stats_task.cancel()
            await asyncio.gather(stats_task, return_exceptions=True)
            await self._log_final_stats()
            self._set_state(RunState.STOPPED)

    async def _run_batch(self, batch: List[str]) -> List[WorkerReport]:
        """Fan a claimed batch out to one worker per URL and join on all reports."""
        jobs: asyncio.Queue = asyncio.Queue()
        results: asyncio.Queue = asyncio.Queue()
        for url in batch:
            jobs.put_nowait(url)

        workers = [
            asyncio.create_task(self._worker(worker_id, jobs, results))
            for worker_id in range(len(batch))
        ]
        reports = [await results.get() for _ in batch]
        await asyncio.gather(*workers)
        return reports

    async def _worker(self, worker_id: int, jobs: asyncio.Queue, results: asyncio.Queue):
        """Worker coroutine that processes exactly one claimed URL."""
        url = await jobs.get()
        report = WorkerReport(url=url, worker_id=worker_id)
        start_time = time.time()
        try:
            report.candidates = await self._process_url(url, worker_id)
        except FATAL_ERRORS as e:
            report.error = e
        except Exception as e:
            self.logger.exception(f"Worker {worker_id} failed on {url}")
            report.error = e
        report.elapsed = time.time() - start_time
        await results.put(report)

    async def _process_url(self, url: str, worker_id: int) -> int:
        """Fetch one URL, record its outcome and queue the links it yields."""
        fetch_result = await self.fetcher.fetch(url)

        if not fetch_result.ok:
            self.logger.debug(
                f"Failed to fetch {url}: {fetch_result.error or fetch_result.status_code}"
            )
            await self.frontier.complete_failure(url)
            self.monitor.record_fetch_failure()
            self.error_policy.record_failure()
            return 0

        self.error_policy.record_success()

        extracted_data = ""
        if self.settings.extraction_rules:
            extracted_data = self.extractor.extract(fetch_result.body, self.settings.extraction_rules)

        candidates = self.pipeline.candidates(fetch_result.status_code, fetch_result.body)

        await self.frontier.complete_success(url, extracted_data)
        added = await self.frontier.add_discovered_many(candidates)

        if candidates:
            self.logger.info(
                f"worker #{worker_id}: {len(candidates)} urls ({added} new) from {url} "
                f"[{fetch_result.fetch_time:.2f}s]"
            )
        self.session.urls_parsed += 1
        self.monitor.record_parsed()
        return len(candidates)

    async def _refresh_counts(self):
        stats = await self.frontier.get_stats()
        self.session.num_todo = stats['todo']
        self.session.num_doing = stats['doing']
        self.session.num_done = stats['done']
        self.session.num_trash = stats['trash']
        self.session.consecutive_errors = self.error_policy.consecutive_errors
        self.monitor.update_sizes(stats)
        self.monitor.update_errors(self.session.consecutive_errors)

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        while self.is_running:
            try:
                await asyncio.sleep(self.config.crawler.stats_interval)
                await self._refresh_counts()
                self._log_current_stats()
            except asyncio.CancelledError:
                break
            except StoreUnavailable as e:
                self.logger.warning(f"Could not refresh stats: {e}")

    def _log_current_stats(self):
        """Log current crawl statistics."""
        site = self.settings.base_url.replace('https://', '').replace('http://', '')[:17]
        self.logger.info(
            f"[{site:>17}] "
            f"Parsed={self.session.urls_parsed:,}, "
            f"Rate={self.session.urls_per_minute:.0f} urls/min, "
            f"Todo={self.session.num_todo:,}, "
            f"Done={self.session.num_done:,}, "
            f"Doing={self.session.num_doing:,}, "
            f"Trash={self.session.num_trash:,}, "
            f"Errors={self.session.consecutive_errors:,}"
        )

    async def _log_final_stats(self):
        """Log final crawl statistics."""
        try:
            await self._refresh_counts()
        except StoreUnavailable as e:
            self.logger.warning(f"Final stats unavailable: {e}")
        self._log_current_stats()
        if self.session.num_doing:
            self.logger.warning(
                f"{self.session.num_doing} URLs left in doing; run redo to requeue them"
            )
        self.logger.info(f"Total time: {self.session.elapsed_time:.2f} seconds")
        self.logger.info(f"Fetcher stats: {self.fetcher.get_stats()}")

    async def redo(self) -> int:
        """Requeue every URL left in Doing or Trash."""
        self._require_initialized()
        return await self.frontier.recover()

    recover = redo

    async def flush(self):
        """Erase all URL state."""
        await self.store.flush_all()

    async def dump(self) -> List[str]:
        self._require_initialized()
        return await self.frontier.dump()

    async def dump_map(self) -> Dict[str, str]:
        self._require_initialized()
        return await self.frontier.dump_map()

    async def stop_crawling(self):
        """Stop the crawling process after the current batch."""
        self.logger.info("Stopping crawler...")
        self._stop_requested = True

    async def close(self):
        """Close all connections and cleanup resources."""
        if self.is_running:
            await self.stop_crawling()

        if self.fetcher:
            await self.fetcher.close()

        if self.store:
            await self.store.close()

        if self.settings_store:
            await self.settings_store.close()

        self.logger.info("Crawler scheduler closed")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'state': self.state.value,
            'urls_parsed': self.session.urls_parsed,
            'todo': self.session.num_todo,
            'doing': self.session.num_doing,
            'done': self.session.num_done,
            'trash': self.session.num_trash,
            'consecutive_errors': self.error_policy.consecutive_errors,
            'elapsed_time': self.session.elapsed_time,
            'urls_per_minute': self.session.urls_per_minute,
            'is_running': self.is_running
        }
