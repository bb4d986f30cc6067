"""
Logging utilities for the crawler and the search command.
"""

import logging
import logging.handlers
import json
import platform
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

import psutil

from .config import LoggingConfig


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the crawl context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'thread': record.threadName,
            'message': record.getMessage(),
            'source': f"{record.module}:{record.lineno}",
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for key in ('worker', 'page_id', 'url'):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that tags every record with the worker that emitted it."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Add the adapter context and prefix the worker name."""
        extra = kwargs.setdefault('extra', {})
        extra.update(self.extra)

        worker = self.extra.get('worker')
        if worker:
            msg = f"[{worker}] {msg}"
        return msg, kwargs

    def log_page_event(self, level: int, page_id: int, url: str, message: str, **kwargs):
        """Log an event about a single page."""
        extra = kwargs.get('extra', {})
        extra['page_id'] = page_id
        extra['url'] = url
        kwargs['extra'] = extra
        self.log(level, f"{message} (page {page_id}: {url})", **kwargs)


class PerformanceFilter(logging.Filter):
    """Filter to suppress noisy third-party logs."""

    def __init__(self, suppress_modules: Optional[list] = None):
        super().__init__()
        self.suppress_modules = suppress_modules or [
            'aiohttp.access',
            'aiohttp.client',
            'asyncio',
        ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter out noisy log records."""
        if record.levelno >= logging.WARNING:
            return True
        return not any(record.name.startswith(module) for module in self.suppress_modules)


def setup_logging(config: LoggingConfig, verbose: bool = False) -> logging.Logger:
    """
    Setup logging for a command run.

    Args:
        config: Logging configuration section
        verbose: Show debug records on the console

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else getattr(logging, config.level.upper()))

    # Clear existing handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if config.json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(config.format)

    # Console handler; stdout carries search results, so logs go to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(PerformanceFilter())
    root_logger.addHandler(console_handler)

    # File handler with rotation
    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(PerformanceFilter())
        root_logger.addHandler(file_handler)

    for logger_name in ('aiohttp', 'asyncio', 'urllib3'):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.debug(f"Logging initialized (level={config.level}, file={config.file}, json={config.json})")
    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """Module logger wrapped so every record carries ``extra_context``, e.g. ``worker=...``."""
    return CrawlerLogAdapter(logging.getLogger(name), extra_context)


def log_system_info(store_path: Optional[str] = None):
    """Log the host the crawl runs on and the free space next to the page store."""
    logger = logging.getLogger(__name__)

    memory = psutil.virtual_memory()
    logger.info(f"Host: {platform.node()} ({platform.platform()}), Python {platform.python_version()}")
    logger.info(f"CPUs: {psutil.cpu_count()}, memory available: "
                f"{memory.available / 1024**3:.1f} of {memory.total / 1024**3:.1f} GB")

    if store_path and store_path != ":memory:":
        directory = Path(store_path).resolve().parent
        if directory.exists():
            disk = psutil.disk_usage(str(directory))
            logger.info(f"Free disk at {directory}: {disk.free / 1024**3:.1f} GB")
