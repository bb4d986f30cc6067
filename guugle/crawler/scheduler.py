"""
Crawler scheduler that runs the worker pool over the page store.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Optional

from .fetcher import (
    HtmlFetcher, HtmlDocument, FetchError, NotHtml, TransportFailure, BadStatus, ContentTooLarge
)
from .parser import extract_links
from ..storage.database import PageStore, DuplicateUrl
from ..storage.lease import PageLease
from ..utils.config import CrawlerConfig
from ..utils.logger import CrawlerLogAdapter, get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


NOT_HTML_CONTENT = "NOT HTML"
ERROR_CONTENT = "ERROR"

RETRYABLE_ERRORS = (TransportFailure, BadStatus)
FINAL_ERRORS = (ContentTooLarge,)


def failure_content(error: FetchError) -> str:
    """Sentinel stored in place of the body of a page that failed."""
    return NOT_HTML_CONTENT if isinstance(error, NotHtml) else ERROR_CONTENT


class CrawlerScheduler:
    """
    Coordinates a fixed pool of worker threads over one page store.

    Each worker owns an event loop and a fetcher session, and repeatedly
    leases a frontier page, fetches and classifies it, records the outcome
    and queues the links it found. Workers stop once the frontier is empty.

    The emptiness check is not synchronized with in-flight work: a worker
    may see an empty frontier and stop while another worker is about to
    insert new links. That worker keeps crawling, so the crawl still
    completes, just with fewer workers.
    """

    def __init__(self, store: PageStore, config: CrawlerConfig,
                 fetcher_factory: Optional[Callable[[], Any]] = None,
                 monitor: Optional[CrawlerMonitor] = None):
        self.store = store
        self.config = config
        self.fetcher_factory = fetcher_factory or (lambda: HtmlFetcher.from_config(config))
        self.monitor = monitor or CrawlerMonitor()
        self.logger = logging.getLogger(__name__)

        self._stop_event = threading.Event()
        self.is_running = False

    def add_seed_urls(self, urls: Optional[Iterable[str]] = None) -> int:
        """Insert seed URLs into the frontier. Already known URLs are skipped."""
        urls = self.config.seed_urls if urls is None else urls
        added_count = 0
        for url in urls:
            try:
                self.store.insert_unvisited(url)
                added_count += 1
            except DuplicateUrl:
                self.logger.debug(f"Seed URL already stored: {url}")

        self.logger.info(f"Added {added_count} seed URLs to frontier")
        return added_count

    def start_crawling(self, seed_urls: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Seed the frontier and crawl until it is exhausted.

        Returns:
            Summary of the crawl statistics
        """
        if self.is_running:
            raise RuntimeError("Crawler is already running")

        self.is_running = True
        self._stop_event.clear()
        try:
            self.add_seed_urls(seed_urls)

            worker_count = self.config.worker_count
            self.logger.info(f"Started crawling with {worker_count} workers")

            with ThreadPoolExecutor(max_workers=worker_count,
                                    thread_name_prefix="guugle-worker") as executor:
                futures = {
                    executor.submit(self._run_worker, f"worker-{i}"): f"worker-{i}"
                    for i in range(worker_count)
                }
                for future in as_completed(futures):
                    worker_id = futures[future]
                    error = future.exception()
                    if error is not None:
                        self.monitor.record_worker_error()
                        self.logger.error(
                            f"Worker {worker_id} failed: {error}",
                            exc_info=(type(error), error, error.__traceback__)
                        )

            self.monitor.update_frontier_size(self.store.count_frontier())
            self._log_final_stats()
            return self.monitor.get_summary()
        finally:
            self.is_running = False

    def stop_crawling(self):
        """Ask all workers to stop after their current page."""
        self.logger.info("Stopping crawler...")
        self._stop_event.set()

    def _run_worker(self, worker_id: str):
        asyncio.run(self._worker(worker_id))

    def _page_limit_reached(self) -> bool:
        max_pages = self.config.max_pages
        return max_pages is not None and self.monitor.stats.pages_crawled >= max_pages

    async def _worker(self, worker_id: str):
        """Lease, fetch and record pages until the frontier is empty."""
        log = get_crawler_logger(__name__, worker=worker_id)
        log.debug("Worker started")
        self.monitor.worker_started()

        try:
            async with self.fetcher_factory() as fetcher:
                while not self._stop_event.is_set():
                    if self._page_limit_reached():
                        log.info(f"Reached max pages limit: {self.config.max_pages}")
                        break

                    if self.store.is_frontier_empty():
                        log.debug("No new pages to crawl found, shutting down worker")
                        break

                    lease = self.store.lease_next()
                    if lease is None:
                        await asyncio.sleep(self.config.backoff_interval)
                        continue

                    with lease:
                        try:
                            await self._process_page(fetcher, lease, log)
                        except Exception as e:
                            self._record_unexpected_error(lease, e, log)

                    self.monitor.update_frontier_size(self.store.count_frontier())
        finally:
            self.monitor.worker_finished()
            log.debug("Worker finished")

    async def _process_page(self, fetcher, lease: PageLease, log: CrawlerLogAdapter):
        """Fetch one leased page and write the outcome back to the store."""
        try:
            document = await self._fetch_with_retry(fetcher, lease.url, log)
        except FetchError as e:
            self.store.record_visited(lease.page_id, failure_content(e), [])
            self.monitor.record_failure(type(e).__name__)
            log.log_page_event(logging.DEBUG, lease.page_id, lease.url,
                               f"Recorded failure {type(e).__name__}: {e.message}")
            return

        links = extract_links(document.text)
        self.store.record_visited(lease.page_id, document.text, links)
        self.monitor.record_page_stored()
        log.log_page_event(logging.DEBUG, lease.page_id, lease.url,
                           f"Stored page with {len(links)} links")

        self._queue_new_urls(links, log)

    def _record_unexpected_error(self, lease: PageLease, error: Exception,
                                 log: CrawlerLogAdapter):
        """
        Record a page whose processing raised something other than a fetch error.

        The page is stored as ``"ERROR"`` so it is not leased again, and the
        worker moves on to the next page.
        """
        self.monitor.record_worker_error()
        log.log_page_event(logging.ERROR, lease.page_id, lease.url,
                           f"Unexpected error: {error}", exc_info=error)
        self.store.record_visited(lease.page_id, ERROR_CONTENT, [])

    async def _fetch_with_retry(self, fetcher, url: str, log: CrawlerLogAdapter) -> HtmlDocument:
        """
        Fetch a page, retrying transport and status failures.

        ``NotHtml``, ``InvalidUrl`` and ``ContentTooLarge`` are raised on the
        first occurrence.
        """
        attempt = 0
        while True:
            try:
                return await fetcher.get_html(url)
            except RETRYABLE_ERRORS as e:
                if isinstance(e, FINAL_ERRORS) or attempt >= self.config.retry_attempts:
                    raise
                delay = self.config.retry_backoff * (2 ** attempt)
                attempt += 1
                self.monitor.record_retry()
                log.debug(f"Retrying {url} ({attempt}/{self.config.retry_attempts}) "
                          f"in {delay:.2f}s after {type(e).__name__}")
                await asyncio.sleep(delay)

    def _queue_new_urls(self, links: List[str], log: CrawlerLogAdapter):
        """Insert discovered links into the frontier."""
        added_count = 0
        for link in links:
            try:
                self.store.insert_unvisited(link)
            except DuplicateUrl:
                self.monitor.record_duplicate_skipped()
                continue
            added_count += 1
            self.monitor.record_link_discovered()

        if links:
            log.debug(f"Queued {added_count} of {len(links)} discovered links")

    def _log_final_stats(self):
        """Log final crawl statistics."""
        summary = self.monitor.get_summary()

        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Pages crawled: {summary['pages_crawled']}")
        self.logger.info(f"Pages stored: {summary['pages_stored']}")
        self.logger.info(f"Failures: {summary['failures']}")
        self.logger.info(f"Retries: {summary['retries']}")
        self.logger.info(f"Links discovered: {summary['links_discovered']}")
        self.logger.info(f"Duplicates skipped: {summary['duplicates_skipped']}")
        self.logger.info(f"Worker errors: {summary['worker_errors']}")
        self.logger.info(f"Total time: {summary['elapsed_time']:.2f} seconds")
        self.logger.info(f"Average rate: {summary['pages_per_minute']:.1f} pages/min")
        self.logger.info(f"Pages remaining in frontier: {self.store.count_frontier()}")
