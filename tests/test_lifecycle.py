"""Tests for the run-state machine, shutdown and teardown."""

from __future__ import annotations

import threading
import time

import pytest

from webspider.crawler.exceptions import SpiderError
from webspider.crawler.request import Request
from webspider.crawler.spider import AtomicCounter, RunState, Status
from webspider.storage.pipeline import CollectorPipeline, Pipeline

from conftest import DownloadLog, GraphProcessor, OrderPipeline, ScriptedDownloader

URLS = [f"http://example.com/{name}" for name in "ABCD"]


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FailingClosePipeline(Pipeline):
    def process(self, result_items, spider) -> None:
        pass

    def close(self) -> None:
        raise IOError("cannot flush")


class TestRunState:
    def test_starts_in_init(self) -> None:
        assert RunState().get() is Status.INIT

    def test_compare_and_set_only_from_expected(self) -> None:
        state = RunState()
        assert state.compare_and_set(Status.RUNNING, Status.STOPPED) is False
        state.begin_running()
        assert state.compare_and_set(Status.RUNNING, Status.STOPPED) is True
        assert state.get() is Status.STOPPED

    def test_begin_running_twice_raises(self) -> None:
        state = RunState()
        state.begin_running()
        with pytest.raises(SpiderError):
            state.begin_running()

    def test_atomic_counter_under_contention(self) -> None:
        counter = AtomicCounter()

        def bump():
            for _ in range(1000):
                counter.increment()

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert counter.value == 8000


class TestStop:
    def test_stop_waits_for_in_flight_requests(self, make_spider) -> None:
        gate = threading.Event()
        log = DownloadLog()
        collector = CollectorPipeline()
        spider = make_spider(downloader=ScriptedDownloader(gate=gate, log=log),
                             threads=2, pipelines=[collector])
        spider.add_start_urls(URLS)

        spider.start()
        assert wait_until(lambda: len(log.fetched) == 2)

        spider.stop()
        assert spider.status is Status.STOPPED
        assert spider.wait_for_exit(0.2) is False

        gate.set()
        assert spider.wait_for_exit(5)

        assert spider.status is Status.STOPPED
        assert len(log.fetched) == 2
        # In-flight requests completed normally
        assert len(collector.items) == 2
        assert len(spider.failure_log) == 0

    def test_stop_before_start_is_a_no_op(self, make_spider) -> None:
        spider = make_spider()
        spider.stop()
        assert spider.status is Status.INIT

    def test_shutdown_stops_an_idle_long_running_spider(self, make_spider) -> None:
        spider = make_spider()
        spider.exit_when_complete = False
        spider.start()

        assert wait_until(lambda: spider.monitor.value("webspider_active_workers") == 1)
        assert spider.shutdown(5)
        assert spider.status is Status.STOPPED
        assert spider.monitor.value("webspider_active_workers") == 0


class TestExit:
    def test_exit_fires_closing_immediately_and_once(self, make_spider) -> None:
        gate = threading.Event()
        log = DownloadLog()
        closing = []
        spider = make_spider(downloader=ScriptedDownloader(gate=gate, log=log))
        spider.on_closing(lambda: closing.append(time.monotonic()))
        spider.add_start_urls(URLS)

        spider.start()
        assert wait_until(lambda: len(log.fetched) == 1)

        spider.exit()
        assert spider.status is Status.EXITED
        assert len(closing) == 1

        gate.set()
        assert spider.wait_for_exit(5)
        assert len(closing) == 1
        assert log.fetched == URLS[:1]

    def test_closing_fires_once_on_natural_finish(self, make_spider) -> None:
        closing = []
        spider = make_spider()
        spider.on_closing(lambda: closing.append(True))
        spider.add_start_urls(URLS)

        spider.run()

        assert closing == [True]

    def test_exit_outside_a_run_does_not_fire_closing(self, make_spider) -> None:
        closing = []
        spider = make_spider()
        spider.on_closing(lambda: closing.append(True))

        spider.exit()
        assert spider.status is Status.INIT
        assert closing == []

        spider.add_start_urls(URLS[:1])
        spider.run()
        spider.exit()

        assert spider.status is Status.FINISHED
        assert closing == [True]


class TestTeardown:
    def test_failing_close_does_not_block_other_components(self, make_spider) -> None:
        calls: list = []
        healthy = OrderPipeline("healthy", calls, threading.Lock())
        processor = GraphProcessor()
        log = DownloadLog()
        spider = make_spider(processor=processor, downloader=ScriptedDownloader(log=log),
                             pipelines=[FailingClosePipeline(), healthy])
        spider.add_start_urls(URLS[:1])

        spider.run()

        assert healthy.closed
        assert processor.closed
        assert log.closed == 2
        assert spider.status is Status.FINISHED
        assert spider.wait_for_exit(0)

    def test_duplicate_check_is_reset_after_a_run(self, make_spider) -> None:
        log = DownloadLog()
        spider = make_spider(downloader=ScriptedDownloader(log=log))
        spider.add_start_urls(URLS[:1])

        spider.run()
        assert spider.scheduler.total_count() == 0

        spider.add_request(Request(URLS[0]))
        spider.run()

        assert log.count(URLS[0]) == 2

    def test_default_pipeline_writes_json_files(self, make_spider, tmp_path) -> None:
        spider = make_spider(pipelines=[])
        spider.add_start_urls(URLS[:2])

        spider.run()

        content = list((tmp_path / "test-spider" / "content").rglob("*.json"))
        assert len(content) == 2
        assert (tmp_path / "test-spider" / "index.json").exists()
