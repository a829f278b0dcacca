"""Shared fakes for the spider test-suite.

The fakes stand in for the pluggable strategies so the orchestrator can be
exercised without network access:

- ``ScriptedDownloader`` replays a per-URL list of outcomes (an exception to
  raise, ``"retry"``, ``"skip"`` or ``"ok"``) and can block on a gate event.
- ``GraphProcessor`` follows a fixed link graph and records one field per page.
- ``RecordingScheduler`` remembers every push so retries can be counted.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

import pytest

from webspider.crawler.downloader import Downloader
from webspider.crawler.page import Page
from webspider.crawler.processor import PageProcessor
from webspider.crawler.request import Request
from webspider.crawler.scheduler import QueueScheduler
from webspider.crawler.site import Site
from webspider.crawler.spider import Spider
from webspider.storage.pipeline import CollectorPipeline, Pipeline


class DownloadLog:
    """State shared by a downloader prototype and all of its clones."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.fetched: List[str] = []
        self.clones = 0
        self.closed = 0

    def count(self, url: str) -> int:
        with self.lock:
            return self.fetched.count(url)


class ScriptedDownloader(Downloader):
    def __init__(self, script: Optional[Dict[str, list]] = None,
                 gate: Optional[threading.Event] = None,
                 log: Optional[DownloadLog] = None) -> None:
        self.script = script if script is not None else {}
        self.gate = gate
        self.log = log or DownloadLog()

    def clone(self) -> "ScriptedDownloader":
        with self.log.lock:
            self.log.clones += 1
        return ScriptedDownloader(self.script, self.gate, self.log)

    def download(self, request: Request, spider) -> Page:
        with self.log.lock:
            self.log.fetched.append(request.url)
            outcomes = self.script.get(request.url)
            outcome = outcomes.pop(0) if outcomes else "ok"

        if self.gate is not None:
            self.gate.wait(5)

        if isinstance(outcome, Exception):
            raise outcome

        page = Page(request=request, status_code=200, content=f"<html>{request.url}</html>")
        if outcome == "retry":
            page.is_need_cycle_retry = True
        elif outcome == "skip":
            page.skip = True
        return page

    def close(self) -> None:
        with self.log.lock:
            self.log.closed += 1


class GraphProcessor(PageProcessor):
    def __init__(self, links: Optional[Dict[str, List[str]]] = None,
                 site: Optional[Site] = None) -> None:
        super().__init__(site)
        self.links = links or {}
        self.closed = False

    def process(self, page: Page) -> None:
        page.put_field("url", page.url)
        page.add_target_requests(self.links.get(page.url, []))

    def close(self) -> None:
        self.closed = True


class RecordingScheduler(QueueScheduler):
    def __init__(self) -> None:
        super().__init__()
        self.pushed: List[Request] = []
        self._record_lock = threading.Lock()

    def push(self, request: Request) -> bool:
        with self._record_lock:
            self.pushed.append(request)
        return super().push(request)


class OrderPipeline(Pipeline):
    """Appends ``(name, url)`` to a shared list."""

    def __init__(self, name: str, calls: list, lock: threading.Lock) -> None:
        self.name = name
        self.calls = calls
        self.lock = lock
        self.closed = False

    def process(self, result_items, spider) -> None:
        with self.lock:
            self.calls.append((self.name, result_items.request.url))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_spider(tmp_path):
    """Factory for spiders with fast idle timing and fake strategies."""
    spiders: List[Spider] = []

    def factory(processor: Optional[PageProcessor] = None,
                downloader: Optional[Downloader] = None,
                scheduler=None,
                threads: int = 1,
                identity: str = "test-spider",
                pipelines: Optional[list] = None) -> Spider:
        spider = Spider(
            processor or GraphProcessor(),
            scheduler=scheduler,
            identity=identity,
            data_root=str(tmp_path),
        )
        spider.set_thread_num(threads)
        spider.set_wait_interval(0.01)
        spider.set_empty_sleep_time(0.2)
        spider.status_interval = 60
        spider.set_downloader(downloader or ScriptedDownloader())
        spider.add_pipelines(pipelines if pipelines is not None else [CollectorPipeline()])
        spiders.append(spider)
        return spider

    yield factory

    for spider in spiders:
        spider.stop()
        spider.wait_for_exit(5)
