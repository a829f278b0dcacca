"""
Logging setup for webspider.

Every spider logs through a SpiderLogAdapter bound to its identity, so several
spiders sharing one process stay distinguishable in plain text and JSON output.
"""

import json
import logging
import logging.handlers
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .config import LoggingConfig


# Attributes a SpiderLogAdapter may attach to a record
CONTEXT_FIELDS = ('spider', 'event', 'url', 'depth')

NOISY_LOGGERS = ('aiohttp.access', 'urllib3.connectionpool')

THIRD_PARTY_LEVELS = {
    'aiohttp': logging.WARNING,
    'urllib3': logging.WARNING,
    'redis': logging.WARNING,
    'asyncio': logging.WARNING,
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, carrying spider context when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'thread': record.threadName,
            'message': record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


class SpiderLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with the spider identity and attaches it as a record field."""

    def __init__(self, logger: logging.Logger, identity: str):
        super().__init__(logger, {'spider': identity})

    @property
    def identity(self) -> str:
        return self.extra['spider']

    def process(self, msg: str, kwargs: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        kwargs['extra'] = {**self.extra, **(kwargs.get('extra') or {})}
        return f"[{self.identity}] {msg}", kwargs

    def request_event(self, level: int, event: str, request, message: str, **kwargs):
        """Log the outcome of one request with its url and depth as fields."""
        extra = dict(kwargs.pop('extra', None) or {})
        extra.update(event=event, url=request.url, depth=request.depth)
        self.log(level, f"{message}: {request.url}", extra=extra, **kwargs)


class NoiseFilter(logging.Filter):
    """Drops records from chatty third-party loggers."""

    def __init__(self, prefixes: Tuple[str, ...] = NOISY_LOGGERS):
        super().__init__()
        self.prefixes = prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        return not record.name.startswith(self.prefixes)


def _rotating_handler(path: Path, level: int, max_bytes: int, backup_count: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: Optional[LoggingConfig] = None,
                  filter_noise: bool = True) -> logging.Logger:
    """
    Configure the root logger from the `logging` config section.

    Installs a stdout handler at INFO, a rotating file with everything the
    configured level lets through, and a rotating errors-only file next to it.
    `config.json` switches all three to JSONFormatter.
    """
    config = config or LoggingConfig()
    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    error_log_file = log_file.parent / 'errors.log'

    formatter = JSONFormatter() if config.json else logging.Formatter(config.format)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    handlers = [
        console_handler,
        _rotating_handler(log_file, logging.DEBUG, 50 * 1024 * 1024, 5, formatter),
        _rotating_handler(error_log_file, logging.ERROR, 10 * 1024 * 1024, 3, formatter),
    ]
    for handler in handlers:
        if filter_noise:
            handler.addFilter(NoiseFilter())
        root_logger.addHandler(handler)

    for logger_name, level in THIRD_PARTY_LEVELS.items():
        logging.getLogger(logger_name).setLevel(level)

    root_logger.info(f"Logging to {log_file} (errors: {error_log_file}), level {config.level}")
    return root_logger


def get_spider_logger(name: str, identity: str) -> SpiderLogAdapter:
    return SpiderLogAdapter(logging.getLogger(name), identity)


def log_system_info():
    """Log host resources, useful when sizing thread_num."""
    import platform
    import psutil

    logger = logging.getLogger(__name__)
    memory = psutil.virtual_memory()

    logger.info(f"Platform: {platform.platform()}, Python {platform.python_version()}")
    logger.info(f"CPU cores: {psutil.cpu_count()} ({psutil.cpu_count(logical=False)} physical)")
    logger.info(f"Memory: {memory.total / 1024**3:.1f} GB total, "
                f"{memory.available / 1024**3:.1f} GB available")
    logger.info(f"Process threads: {threading.active_count()}")
