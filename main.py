#!/usr/bin/env python3
"""
Main entry point for the site crawler.
"""

import asyncio
import argparse
import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from sitecrawl import __version__
from sitecrawl.crawler.scheduler import CrawlerScheduler
from sitecrawl.exceptions import ConfigurationError, CrawlerError
from sitecrawl.utils.config import Config, ConfigManager, Settings, load_config, validate_config
from sitecrawl.utils.logger import setup_logging


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()

        def signal_handler(signum, frame):
            self.logger.warning(f"Received signal {signum}, stopping after the current batch...")
            loop.call_soon_threadsafe(self._shutdown_event.set)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def run(self, config: Config, args: argparse.Namespace) -> int:
        """Run the requested operator action."""
        self.setup_signal_handlers()
        try:
            self.scheduler = CrawlerScheduler(config)
            await self.scheduler.initialize(build_settings(config, args))

            if args.dry_run:
                self.logger.warning(f"Dry run OK, settings: {self.scheduler.settings}")
                return 0

            if args.flush:
                await self.scheduler.flush()
                print("Flushed all URL state")
                return 0

            if args.redo:
                moved = await self.scheduler.redo()
                print(f"Moved {moved} URLs back to todo")
                return 0

            if args.dump:
                keys = await self.scheduler.dump()
                write_json(args.dump, keys)
                print(f"Wrote {len(keys)} URLs to {args.dump}")
                return 0

            if args.dump_map:
                data = await self.scheduler.dump_map()
                write_json(args.dump_map, data)
                print(f"Wrote {len(data)} entries to {args.dump_map}")
                return 0

            if args.seeds:
                seeds = read_seeds(args.seeds)
                await self.scheduler.add_seeds(seeds)

            await self._crawl_until_done_or_signalled()
            return 0

        except CrawlerError as e:
            self.logger.error(f"Fatal error: {e}")
            print(f"Error: {e}", file=sys.stderr)
            return 1

        except Exception as e:
            self.logger.error(f"Unexpected fatal error: {e}", exc_info=True)
            return 1

        finally:
            if self.scheduler:
                await self.scheduler.close()

    async def _crawl_until_done_or_signalled(self):
        crawl_task = asyncio.create_task(self.scheduler.crawl())
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())

        done, pending = await asyncio.wait(
            [crawl_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED
        )

        if shutdown_task in done:
            await self.scheduler.stop_crawling()
        else:
            shutdown_task.cancel()

        # Propagates a fatal crawl error
        await crawl_task


SITE_FLAGS = ('rules', 'exclude', 'include', 'query', 'hash', 'no_follow')


def build_settings(config: Config, args: argparse.Namespace) -> Optional[Settings]:
    """
    Settings to persist for this run, or None to reuse the stored ones.
    Command line flags override the config file's site section.
    """
    if not args.url and config.site is None:
        given = [f"--{name.replace('_', '-')}" for name in SITE_FLAGS if getattr(args, name)]
        if given:
            raise ConfigurationError(
                f"{', '.join(given)} need --url or a site section in the config file"
            )
        return None

    settings = config.site or Settings()
    overrides = {}
    if args.url:
        overrides['base_url'] = args.url
    if args.rules:
        overrides['extraction_rules'] = Path(args.rules).read_text(encoding='utf-8')
    if args.exclude:
        overrides['keywords_to_exclude'] = split_keywords(args.exclude)
    if args.include:
        overrides['keywords_to_include'] = split_keywords(args.include)
    if args.query:
        overrides['allow_query_parameters'] = True
    if args.hash:
        overrides['allow_hash_parameters'] = True
    if args.no_follow:
        overrides['dont_follow_links'] = True
    return dataclasses.replace(settings, **overrides)


def split_keywords(raw: str) -> List[str]:
    return [keyword.strip() for keyword in raw.split(',') if keyword.strip()]


def read_seeds(path: str) -> List[str]:
    with open(path, 'r', encoding='utf-8') as f:
        return [line.strip() for line in f if line.strip()]


def write_json(path: str, data):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply instance options given on the command line."""
    crawler = config.crawler
    if args.workers is not None:
        crawler.max_workers = args.workers
    if args.connections is not None:
        crawler.max_connections = args.connections
    if args.errors is not None:
        crawler.maximum_number_of_errors = args.errors
    if args.user_agent is not None:
        crawler.user_agent = args.user_agent
    if args.proxy:
        crawler.use_proxy = True
    if args.erase:
        crawler.erase_db = True
    if args.redis_host is not None:
        config.redis.host = args.redis_host
    if args.redis_port is not None:
        config.redis.port = args.redis_port
    validate_config(config)
    return config


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Distributed site crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --url http://www.example.com     # Save settings and crawl
  python main.py                                  # Crawl with stored settings
  python main.py --workers 16 --info              # Another instance, more workers
  python main.py --redo                           # Requeue doing and trash URLs
  python main.py --dump-map done.json             # Export extracted data
        """
    )

    parser.add_argument('--config', default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')

    site = parser.add_argument_group('site settings (persisted for all instances)')
    site.add_argument('--url', help='Base URL to crawl; saves settings')
    site.add_argument('--rules', '--pluck', dest='rules', help='File with extraction rules (YAML)')
    site.add_argument('--exclude', help='Comma-separated keywords to exclude')
    site.add_argument('--include', help='Comma-separated keywords to include')
    site.add_argument('--query', action='store_true', help='Keep query parameters')
    site.add_argument('--hash', action='store_true', help='Keep hash parameters')
    site.add_argument('--no-follow', action='store_true', help="Don't follow links")

    instance = parser.add_argument_group('instance options')
    instance.add_argument('--redis-host', help='Redis host')
    instance.add_argument('--redis-port', type=int, help='Redis port')
    instance.add_argument('--workers', type=int, help='Number of concurrent workers')
    instance.add_argument('--connections', type=int, help='Maximum pooled connections')
    instance.add_argument('--errors', type=int, help='Maximum consecutive errors')
    instance.add_argument('--user-agent', help='User-Agent header to send')
    instance.add_argument('--proxy', action='store_true', help='Fetch through the SOCKS5 proxy')
    instance.add_argument('--erase', action='store_true', help='Erase URL state on start')
    instance.add_argument('--info', action='store_true', help='Info-level logging')
    instance.add_argument('--debug', action='store_true', help='Debug-level logging')
    instance.add_argument('--json-logs', action='store_true', help='JSON formatted log lines')

    actions = parser.add_argument_group('actions')
    actions.add_argument('--seeds', help='File with one seed URL per line')
    actions.add_argument('--redo', action='store_true', help='Move doing and trash back to todo')
    actions.add_argument('--flush', action='store_true', help='Erase all URL state')
    actions.add_argument('--dump', metavar='FILE', help='Write every tracked URL to FILE')
    actions.add_argument('--dump-map', metavar='FILE', help='Write done URL -> data to FILE')
    actions.add_argument('--dry-run', action='store_true',
                         help='Check configuration and connections only')

    parser.add_argument('--version', action='version', version=f'sitecrawl {__version__}')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        if Path(args.config).exists():
            config = load_config(args.config)
        else:
            config = ConfigManager.from_dict({})
        config = apply_overrides(config, args)
    except CrawlerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    level = 'DEBUG' if args.debug else 'INFO' if args.info else None
    setup_logging(config.logging, level=level, enable_json=args.json_logs)

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(config, args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
