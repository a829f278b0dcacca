"""
Configuration management for webspider.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field


SCHEDULER_TYPES = ('queue', 'priority', 'redis')
PIPELINE_TYPES = ('json_file', 'console')


class ConfigError(ValueError):
    """Raised when a configuration file is missing values or invalid."""
    pass


@dataclass
class SpiderSection:
    """Configuration for the crawl orchestrator."""
    identity: Optional[str] = None
    thread_num: int = 1
    max_depth: int = 3
    empty_sleep_time: float = 15.0
    wait_interval: float = 0.05
    exit_when_complete: bool = True
    spawn_url: bool = True
    data_directory: str = 'data'
    scheduler: str = 'queue'
    status_interval: float = 30.0


@dataclass
class SiteConfig:
    """Configuration for the crawled site."""
    start_urls: List[str] = field(default_factory=list)
    domain: Optional[str] = None
    sleep_time: float = 0.0
    cycle_retry_times: int = 3
    content_type: str = 'html'
    user_agent: Optional[str] = None
    timeout: float = 30.0
    headers: Dict[str, str] = field(default_factory=dict)
    accepted_status_codes: List[int] = field(default_factory=lambda: [200])
    http_proxy_pool_enable: bool = False
    proxies: List[str] = field(default_factory=list)
    allowed_domains: List[str] = field(default_factory=list)
    blocked_domains: List[str] = field(default_factory=list)


@dataclass
class RedisConfig:
    """Configuration for Redis."""
    host: str = 'localhost'
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/webspider.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    spider: SpiderSection
    site: SiteConfig
    redis: RedisConfig
    logging: LoggingConfig
    monitoring: MonitoringConfig
    pipelines: List[str] = field(default_factory=lambda: ['json_file'])


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as file:
            config_data = yaml.safe_load(file) or {}

        self._config = parse_config(config_data)
        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigError("Configuration not loaded")
        validate_config(self._config)
        logging.getLogger(__name__).info("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def _section(cls, data: Optional[Dict[str, Any]], name: str):
    try:
        return cls(**(data or {}))
    except TypeError as e:
        raise ConfigError(f"Invalid '{name}' section: {e}") from e


def parse_config(config_data: Dict[str, Any]) -> Config:
    """Build a Config from an already-parsed YAML mapping."""
    return Config(
        spider=_section(SpiderSection, config_data.get('spider'), 'spider'),
        site=_section(SiteConfig, config_data.get('site'), 'site'),
        redis=_section(RedisConfig, config_data.get('redis'), 'redis'),
        logging=_section(LoggingConfig, config_data.get('logging'), 'logging'),
        monitoring=_section(MonitoringConfig, config_data.get('monitoring'), 'monitoring'),
        pipelines=list(config_data.get('pipelines') or ['json_file']),
    )


def validate_config(config: Config):
    spider = config.spider
    if spider.thread_num < 1:
        raise ConfigError("thread_num must be at least 1")

    if spider.max_depth < 1:
        raise ConfigError("max_depth must be at least 1")

    if spider.wait_interval <= 0:
        raise ConfigError("wait_interval must be positive")

    if spider.empty_sleep_time < spider.wait_interval:
        raise ConfigError("empty_sleep_time must not be shorter than wait_interval")

    if spider.scheduler not in SCHEDULER_TYPES:
        raise ConfigError(f"scheduler must be one of {', '.join(SCHEDULER_TYPES)}")

    if config.site.sleep_time < 0:
        raise ConfigError("sleep_time must be non-negative")

    if config.site.cycle_retry_times < 0:
        raise ConfigError("cycle_retry_times must be non-negative")

    for pipeline in config.pipelines:
        if pipeline not in PIPELINE_TYPES:
            raise ConfigError(f"Unknown pipeline: {pipeline}")


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
