"""
Crawl statistics and Prometheus metrics.
"""

import time
import logging
import threading
from typing import Dict, Optional, Any
from dataclasses import dataclass, field

from prometheus_client import Counter, Gauge, CollectorRegistry, start_http_server


@dataclass
class CrawlStats:
    """Counters shared by all workers of one crawl."""
    start_time: float = field(default_factory=time.time)
    pages_crawled: int = 0
    pages_stored: int = 0
    links_discovered: int = 0
    duplicates_skipped: int = 0
    retries: int = 0
    worker_errors: int = 0
    failures: Dict[str, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_crawled / elapsed_minutes if elapsed_minutes > 0 else 0

    @property
    def total_failures(self) -> int:
        with self._lock:
            return sum(self.failures.values())

    def increment(self, name: str, amount: int = 1):
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def record_failure(self, kind: str):
        with self._lock:
            self.failures[kind] = self.failures.get(kind, 0) + 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'pages_crawled': self.pages_crawled,
                'pages_stored': self.pages_stored,
                'links_discovered': self.links_discovered,
                'duplicates_skipped': self.duplicates_skipped,
                'retries': self.retries,
                'worker_errors': self.worker_errors,
                'failures': dict(self.failures),
                'elapsed_time': self.elapsed_time,
            }


class MetricsCollector:
    """Prometheus metrics for one crawler process, kept in a private registry."""

    def __init__(self, enable_prometheus: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port
        self.registry = CollectorRegistry()

        self.pages_crawled = Counter(
            'guugle_pages_crawled',
            'Pages fetched and recorded as visited',
            registry=self.registry
        )
        self.pages_stored = Counter(
            'guugle_pages_stored',
            'Pages recorded with HTML content',
            registry=self.registry
        )
        self.fetch_failures = Counter(
            'guugle_fetch_failures',
            'Pages recorded with a failure sentinel',
            ['kind'],
            registry=self.registry
        )
        self.links_discovered = Counter(
            'guugle_links_discovered',
            'New pages added to the frontier',
            registry=self.registry
        )
        self.duplicates_skipped = Counter(
            'guugle_duplicates_skipped',
            'Discovered links that were already stored',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'guugle_active_workers',
            'Number of running crawler workers',
            registry=self.registry
        )
        self.frontier_size = Gauge(
            'guugle_frontier_size',
            'Pages waiting to be visited',
            registry=self.registry
        )

    def start_server(self):
        """Start the Prometheus HTTP exporter if enabled."""
        if not self.enable_prometheus:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")


class CrawlerMonitor:
    """Single recording point that feeds both the stats and the metrics."""

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.metrics = metrics or MetricsCollector()
        self.stats = CrawlStats()
        self.logger = logging.getLogger(__name__)

    def record_page_stored(self):
        self.stats.increment('pages_crawled')
        self.stats.increment('pages_stored')
        self.metrics.pages_crawled.inc()
        self.metrics.pages_stored.inc()

    def record_failure(self, kind: str):
        self.stats.increment('pages_crawled')
        self.stats.record_failure(kind)
        self.metrics.pages_crawled.inc()
        self.metrics.fetch_failures.labels(kind=kind).inc()

    def record_retry(self):
        self.stats.increment('retries')

    def record_link_discovered(self):
        self.stats.increment('links_discovered')
        self.metrics.links_discovered.inc()

    def record_duplicate_skipped(self):
        self.stats.increment('duplicates_skipped')
        self.metrics.duplicates_skipped.inc()

    def record_worker_error(self):
        self.stats.increment('worker_errors')

    def worker_started(self):
        self.metrics.active_workers.inc()

    def worker_finished(self):
        self.metrics.active_workers.dec()

    def update_frontier_size(self, size: int):
        self.metrics.frontier_size.set(size)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the crawl so far."""
        summary = self.stats.snapshot()
        summary['pages_per_minute'] = self.stats.pages_per_minute
        return summary
