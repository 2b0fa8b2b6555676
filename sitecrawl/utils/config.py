"""
Configuration management for the crawler.
"""

import json
import yaml
import logging
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Dict, List, Any, Optional
from urllib.parse import urlparse

from ..exceptions import ConfigurationError


@dataclass(frozen=True)
class Settings:
    """
    Per-site crawl settings shared by every instance working on the same store.
    Persisted as JSON so that all workers crawl with identical rules.
    """
    base_url: str = ""
    extraction_rules: str = ""
    keywords_to_exclude: List[str] = field(default_factory=list)
    keywords_to_include: List[str] = field(default_factory=list)
    allow_query_parameters: bool = False
    allow_hash_parameters: bool = False
    dont_follow_links: bool = False

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> 'Settings':
        return cls.from_dict(json.loads(raw))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in (data or {}).items() if key in known}
        for key in ('keywords_to_exclude', 'keywords_to_include'):
            if values.get(key) is None:
                values[key] = []
            else:
                values[key] = list(values[key])
        if values.get('extraction_rules') is None:
            values['extraction_rules'] = ""
        return cls(**values)


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    max_workers: int = 8
    max_connections: int = 20
    maximum_number_of_errors: int = 20
    request_timeout: float = 10.0
    user_agent: str = ""
    use_proxy: bool = False
    proxy_url: str = "socks5://127.0.0.1:9050"
    stats_interval: float = 1.0
    erase_db: bool = False


@dataclass
class RedisConfig:
    """Configuration for Redis."""
    host: str = "localhost"
    port: int = 6379
    password: Optional[str] = None
    socket_timeout: float = 30.0
    max_retries: int = 10
    settings_db: int = 4


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "WARNING"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    site: Optional[Settings] = None


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        self._config = self.from_dict(config_data)
        validate_config(self._config)
        return self._config

    @staticmethod
    def from_dict(config_data: Dict[str, Any]) -> Config:
        """Build a Config from parsed YAML, applying defaults for omitted sections."""
        try:
            site_data = config_data.get('site')
            return Config(
                crawler=CrawlerConfig(**(config_data.get('crawler') or {})),
                redis=RedisConfig(**(config_data.get('redis') or {})),
                logging=LoggingConfig(**(config_data.get('logging') or {})),
                monitoring=MonitoringConfig(**(config_data.get('monitoring') or {})),
                site=Settings.from_dict(site_data) if site_data else None
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self._config


def validate_settings(settings: Settings):
    """Validate a site settings record."""
    if settings.base_url:
        parsed = urlparse(settings.base_url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ConfigurationError(
                f"base_url must be an absolute http(s) URL, got {settings.base_url!r}"
            )


def validate_config(config: Config):
    """Validate configuration values."""
    if config.crawler.max_workers < 1:
        raise ConfigurationError("max_workers must be at least 1")

    if config.crawler.max_connections < 1:
        raise ConfigurationError("max_connections must be at least 1")

    if config.crawler.maximum_number_of_errors < 0:
        raise ConfigurationError("maximum_number_of_errors must be non-negative")

    if config.crawler.request_timeout <= 0:
        raise ConfigurationError("request_timeout must be positive")

    if config.crawler.stats_interval <= 0:
        raise ConfigurationError("stats_interval must be positive")

    if config.redis.max_retries < 0:
        raise ConfigurationError("redis.max_retries must be non-negative")

    if config.redis.settings_db < 4:
        raise ConfigurationError("redis.settings_db must not overlap URL databases 0-3")

    if config.site is not None:
        validate_settings(config.site)

    logging.getLogger(__name__).debug("Configuration validation passed")


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
