"""
Command line interface: ``start`` runs a crawl, ``search`` queries the store.
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional, TextIO

import yaml

from . import __version__
from .crawler.scheduler import CrawlerScheduler
from .ranking.ranker import RankedPage, rank_pages
from .storage.database import PageStore, StorageFault
from .utils.config import Config, load_config
from .utils.logger import setup_logging, log_system_info
from .utils.monitoring import CrawlerMonitor, MetricsCollector


CONTENT_PREVIEW_LENGTH = 80


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def format_result(index: int, ranked: RankedPage) -> str:
    """One output line for a search hit."""
    page = ranked.page
    content = (page.content or "").strip().replace("\n", " ")
    if len(content) > CONTENT_PREVIEW_LENGTH:
        content = content[:CONTENT_PREVIEW_LENGTH] + "..."
    return (
        f"{index}: rank={ranked.rank} id={page.id} url={page.url} "
        f"visited={page.visited} in_use={page.in_use} "
        f"links_to={page.links_to!r} content={content!r}"
    )


class CrawlerApp:
    """Main application class for the crawler and search commands."""

    def __init__(self, out: Optional[TextIO] = None):
        self.out = out
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)

    def load(self, args: argparse.Namespace) -> Config:
        """Load the configuration and apply command line overrides."""
        config = load_config(args.config, required=args.config_required)
        if args.db_path:
            config.database.path = args.db_path
        if getattr(args, 'seed_urls', None):
            config.crawler.seed_urls = list(args.seed_urls)
        if getattr(args, 'threads', None):
            config.crawler.worker_count = args.threads
        if getattr(args, 'max_pages', None):
            config.crawler.max_pages = args.max_pages

        setup_logging(config.logging, verbose=args.verbose)
        return config

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            self.logger.warning(f"Received signal {signum}, initiating shutdown...")
            if self.scheduler:
                self.scheduler.stop_crawling()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def start(self, config: Config) -> int:
        """Run the crawler until the frontier is exhausted."""
        self.logger.info("=== CRAWLER STARTING ===")
        log_system_info(config.database.path)
        self.logger.info(f"Page store: {config.database.path}")
        self.logger.info(f"Seed URLs: {config.crawler.seed_urls}")
        self.logger.info(f"Workers: {config.crawler.worker_count}")

        metrics = MetricsCollector(
            enable_prometheus=config.monitoring.metrics_enabled,
            prometheus_port=config.monitoring.prometheus_port
        )
        metrics.start_server()

        with PageStore.open(config.database.path) as store:
            if not config.crawler.seed_urls and store.is_frontier_empty():
                self.logger.warning("No seed URLs given and nothing left to crawl")

            self.scheduler = CrawlerScheduler(
                store, config.crawler, monitor=CrawlerMonitor(metrics)
            )
            if threading.current_thread() is threading.main_thread():
                self.setup_signal_handlers()
            summary = self.scheduler.start_crawling()

        self.logger.info(f"=== CRAWLER FINISHED === {summary}")
        return 0

    def search(self, config: Config, query: str, amount: int) -> int:
        """Print up to ``amount`` ranked results for ``query``."""
        path = config.database.path
        if path != ":memory:" and not Path(path).exists():
            self.logger.error(f"Page store not found: {path}")
            print(f"Error: page store '{path}' not found. Run 'guugle start' first.",
                  file=sys.stderr)
            return 1

        with PageStore.open(path) as store:
            results = rank_pages(store, query, limit=amount)

        for index, ranked in enumerate(results):
            print(format_result(index, ranked), file=self.out or sys.stdout)

        self.logger.info(f"Search for {query!r} returned {len(results)} results")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guugle",
        description="Small web crawler and keyword search engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  guugle start --seed-urls http://example.com/     # crawl from a seed
  guugle start --threads 10 --db-path crawl.db3    # more workers, other store
  guugle search crystal                            # top 10 results
  guugle search "team crystal" 25                  # top 25 results
        """
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'guugle {__version__}'
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Print debug output to the console'
    )
    common.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml, optional)'
    )
    common.add_argument(
        '--db-path',
        help='Path to the page store (overrides database.path)'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    start_parser = subparsers.add_parser('start', parents=[common], help='Starts the indexer')
    start_parser.add_argument(
        '--seed-urls',
        nargs='+',
        metavar='URL',
        help='URLs to start crawling from'
    )
    start_parser.add_argument(
        '--threads',
        type=positive_int,
        help='Number of crawler workers'
    )
    start_parser.add_argument(
        '--max-pages',
        type=positive_int,
        help='Stop after this many pages have been crawled'
    )

    search_parser = subparsers.add_parser(
        'search', parents=[common], help='Searches the database for the keyword'
    )
    search_parser.add_argument('search_word', help='the key for which the database should be searched')
    search_parser.add_argument(
        'amount',
        nargs='?',
        type=positive_int,
        default=10,
        help='the amount of results displayed (default: 10)'
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    # an explicitly named config file has to exist
    args.config_required = args.config != 'config.yaml'

    app = CrawlerApp()
    try:
        config = app.load(args)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    try:
        if args.command == 'start':
            return app.start(config)
        return app.search(config, args.search_word, args.amount)
    except StorageFault as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
