"""
Monitoring and metrics collection for the crawler.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server


class CrawlMonitor:
    """
    Prometheus view of a crawl run. Values are telemetry only and are read
    and written without locking.
    """

    def __init__(self, enable_exporter: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enable_exporter = enable_exporter
        self.prometheus_port = prometheus_port
        self.registry = CollectorRegistry()
        self._exporter_started = False

        self.set_size = Gauge(
            'crawler_urls',
            'Number of URLs in each lifecycle set',
            ['state'],
            registry=self.registry
        )
        self.consecutive_errors = Gauge(
            'crawler_consecutive_errors',
            'Consecutive fetch failures since the last success',
            registry=self.registry
        )
        self.urls_parsed = Counter(
            'crawler_urls_parsed_total',
            'Total number of URLs parsed',
            registry=self.registry
        )
        self.fetch_failures = Counter(
            'crawler_fetch_failures_total',
            'Total number of failed fetches',
            registry=self.registry
        )

    def start_exporter(self):
        """Start the Prometheus metrics HTTP server."""
        if not self.enable_exporter or self._exporter_started:
            return
        start_http_server(self.prometheus_port, registry=self.registry)
        self._exporter_started = True
        self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")

    def record_parsed(self):
        self.urls_parsed.inc()

    def record_fetch_failure(self):
        self.fetch_failures.inc()

    def update_sizes(self, sizes: Dict[str, int]):
        for state, count in sizes.items():
            self.set_size.labels(state=state).set(count)

    def update_errors(self, consecutive: int):
        self.consecutive_errors.set(consecutive)

    def get_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read a sample back from the registry."""
        return self.registry.get_sample_value(name, labels)
