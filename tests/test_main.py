"""Tests for wiring a spider from configuration."""

from __future__ import annotations

from unittest.mock import patch

from main import CrawlerApp, build_scheduler, build_spider
from webspider.crawler.processor import LinkPageProcessor
from webspider.crawler.scheduler import PriorityScheduler, QueueScheduler, RedisScheduler
from webspider.storage.pipeline import ConsolePipeline, JsonFilePipeline
from webspider.utils.config import parse_config


class TestBuildSpider:
    def test_spider_from_config(self, tmp_path) -> None:
        config = parse_config({
            "spider": {
                "identity": "news",
                "thread_num": 3,
                "max_depth": 2,
                "spawn_url": False,
                "data_directory": str(tmp_path),
            },
            "site": {"start_urls": ["https://example.com/"], "domain": "example.com"},
            "pipelines": ["console", "json_file"],
        })

        spider = build_spider(config)

        assert spider.identity == "news"
        assert spider.thread_num == 3
        assert spider.max_depth == 2
        assert spider.spawn_url is False
        assert isinstance(spider.page_processor, LinkPageProcessor)
        assert [type(p) for p in spider.pipelines] == [ConsolePipeline, JsonFilePipeline]
        assert spider.data_directory == tmp_path / "news"

    def test_scheduler_types(self) -> None:
        assert isinstance(build_scheduler(parse_config({})), QueueScheduler)
        assert isinstance(build_scheduler(parse_config({"spider": {"scheduler": "priority"}})),
                          PriorityScheduler)
        with patch("main.redis.Redis") as redis_cls:
            scheduler = build_scheduler(parse_config({"spider": {"scheduler": "redis"}}))
        assert isinstance(scheduler, RedisScheduler)
        redis_cls.assert_called_once_with(host="localhost", port=6379, db=0, password=None)


class TestCrawlerApp:
    def test_dry_run_builds_without_crawling(self, tmp_path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            "spider:\n"
            f"  data_directory: {tmp_path / 'data'}\n"
            "site:\n"
            "  start_urls: [https://example.com/]\n"
            "logging:\n"
            f"  file: {tmp_path / 'logs' / 'webspider.log'}\n",
            encoding="utf-8",
        )
        app = CrawlerApp()

        with patch("main.log_system_info"), patch("main.setup_logging") as setup_logging:
            assert app.run(str(config_path), dry_run=True) == 0

        setup_logging.assert_called_once()

        assert app.spider is not None
        assert app.spider.status.value == "init"

    def test_missing_config_returns_error(self, tmp_path) -> None:
        assert CrawlerApp().run(str(tmp_path / "missing.yaml")) == 1
