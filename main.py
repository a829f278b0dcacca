#!/usr/bin/env python3
"""
Main entry point for webspider.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import redis

from webspider import __version__
from webspider.crawler.processor import LinkPageProcessor
from webspider.crawler.scheduler import PriorityScheduler, QueueScheduler, RedisScheduler, Scheduler
from webspider.crawler.site import Site
from webspider.crawler.spider import Spider
from webspider.storage.pipeline import ConsolePipeline, JsonFilePipeline
from webspider.utils.config import Config, load_config
from webspider.utils.logger import log_system_info, setup_logging


def build_scheduler(config: Config) -> Scheduler:
    """Create the frontier named in the configuration."""
    scheduler_type = config.spider.scheduler
    if scheduler_type == 'priority':
        return PriorityScheduler()
    if scheduler_type == 'redis':
        redis_client = redis.Redis(
            host=config.redis.host,
            port=config.redis.port,
            db=config.redis.db,
            password=config.redis.password
        )
        return RedisScheduler(redis_client)
    return QueueScheduler()


def build_spider(config: Config) -> Spider:
    """Wire a spider from a loaded configuration."""
    site = Site.from_config(config.site)

    spider = Spider(
        LinkPageProcessor(site),
        scheduler=build_scheduler(config),
        identity=config.spider.identity,
        data_root=config.spider.data_directory,
    )
    spider.set_thread_num(config.spider.thread_num)
    spider.set_wait_interval(config.spider.wait_interval)
    spider.set_empty_sleep_time(config.spider.empty_sleep_time)
    spider.max_depth = config.spider.max_depth
    spider.spawn_url = config.spider.spawn_url
    spider.exit_when_complete = config.spider.exit_when_complete
    spider.status_interval = config.spider.status_interval

    for name in config.pipelines:
        if name == 'console':
            spider.add_pipeline(ConsolePipeline())
        elif name == 'json_file':
            spider.add_pipeline(JsonFilePipeline(spider.data_directory))

    return spider


class CrawlerApp:
    """Main application class for webspider."""

    def __init__(self):
        self.spider: Optional[Spider] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, waiting for in-flight requests...")
            if self.spider:
                self.spider.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def run(self, config_path: str, threads: Optional[int] = None,
            max_depth: Optional[int] = None, dry_run: bool = False) -> int:
        """Run the spider until it finishes or is interrupted."""
        try:
            config = load_config(config_path)
            if threads is not None:
                config.spider.thread_num = threads
            if max_depth is not None:
                config.spider.max_depth = max_depth

            setup_logging(config.logging)
            log_system_info()

            self.logger.info("=== WEBSPIDER STARTING ===")
            self.logger.info(f"Configuration loaded from: {config_path}")
            self.logger.info(f"Start URLs: {config.site.start_urls}")
            self.logger.info(f"Max depth: {config.spider.max_depth}")
            self.logger.info(f"Threads: {config.spider.thread_num}")
            self.logger.info(f"Scheduler: {config.spider.scheduler}")

            self.spider = build_spider(config)

            if dry_run:
                self.logger.info("DRY RUN MODE: configuration is valid, nothing will be crawled")
                return 0

            if config.monitoring.metrics_enabled:
                self.spider.monitor.start_server(config.monitoring.prometheus_port)

            self.setup_signal_handlers()
            self.spider.start()
            self.spider.wait_for_exit()

            self.logger.info(f"Final stats: {self.spider.get_stats()}")

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            self.logger.info("=== WEBSPIDER FINISHED ===")

        return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="webspider: multi-threaded web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                           # Run with default config.yaml
  python main.py --config my_config.yaml   # Run with custom config
  python main.py --threads 8               # Override the worker count
  python main.py --dry-run                 # Validate configuration only
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--threads',
        type=int,
        help='Number of worker threads'
    )

    parser.add_argument(
        '--max-depth',
        type=int,
        help='Maximum crawl depth'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate configuration without crawling'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'webspider {__version__}'
    )

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        print("Please create a config.yaml file or specify a different path with --config")
        return 1

    app = CrawlerApp()
    return app.run(
        config_path=args.config,
        threads=args.threads,
        max_depth=args.max_depth,
        dry_run=args.dry_run
    )


if __name__ == '__main__':
    sys.exit(main())
