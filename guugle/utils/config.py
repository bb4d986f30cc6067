"""
Configuration management for the crawler and the search command.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field, fields


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_urls: List[str] = field(default_factory=list)
    worker_count: int = 5
    backoff_interval: float = 0.1
    request_timeout: int = 30
    retry_attempts: int = 2
    retry_backoff: float = 0.5
    max_content_size: int = 10 * 1024 * 1024
    max_pages: Optional[int] = None
    user_agent: str = "guugle/1.0 (+https://github.com/team-crystal/guugle)"


@dataclass
class DatabaseConfig:
    """Configuration for the page store."""
    path: str = "./database.db3"


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: Optional[str] = "logs/guugle.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _build_section(section_cls, data: Optional[Dict[str, Any]]):
    """Create a config section, rejecting keys the section does not know."""
    data = data or {}
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(
            f"Unknown {section_cls.__name__} keys: {', '.join(sorted(unknown))}"
        )
    return section_cls(**data)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = "config.yaml"):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    def load_config(self, required: bool = False) -> Config:
        """
        Load configuration from a YAML file.

        A missing file yields the built-in defaults unless ``required`` is set.
        """
        if self.config_path is None or not self.config_path.exists():
            if required:
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
            self._config = Config()
            self._validate_config()
            return self._config

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        if not isinstance(config_data, dict):
            raise ValueError(f"Configuration root must be a mapping: {self.config_path}")

        self._config = Config(
            crawler=_build_section(CrawlerConfig, config_data.get('crawler')),
            database=_build_section(DatabaseConfig, config_data.get('database')),
            logging=_build_section(LoggingConfig, config_data.get('logging')),
            monitoring=_build_section(MonitoringConfig, config_data.get('monitoring'))
        )

        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ValueError("Configuration not loaded")

        crawler = self._config.crawler

        if crawler.worker_count < 1:
            raise ValueError("worker_count must be at least 1")

        if crawler.backoff_interval < 0:
            raise ValueError("backoff_interval must be non-negative")

        if crawler.retry_attempts < 0:
            raise ValueError("retry_attempts must be non-negative")

        if crawler.retry_backoff < 0:
            raise ValueError("retry_backoff must be non-negative")

        if crawler.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

        if crawler.max_pages is not None and crawler.max_pages < 1:
            raise ValueError("max_pages must be at least 1")

        if not self._config.database.path:
            raise ValueError("database.path must not be empty")

        if not isinstance(getattr(logging, self._config.logging.level.upper(), None), int):
            raise ValueError(f"Unknown log level: {self._config.logging.level}")

        logging.debug("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


def load_config(config_path: Optional[str] = "config.yaml", required: bool = False) -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config(required=required)
