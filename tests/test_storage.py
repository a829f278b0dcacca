"""Tests for output pipelines and the failed-request log."""

from __future__ import annotations

import json
import logging
import threading

from webspider.crawler.page import ResultItems
from webspider.crawler.request import Request, RequestExtras
from webspider.storage.failure_log import FailedRequestLog
from webspider.storage.pipeline import CollectorPipeline, ConsolePipeline, JsonFilePipeline


def items(url: str, **fields) -> ResultItems:
    return ResultItems(request=Request(url, depth=2), fields=dict(fields))


class TestJsonFilePipeline:
    def test_writes_one_file_per_url(self, tmp_path) -> None:
        pipeline = JsonFilePipeline(tmp_path)
        pipeline.process(items("http://a.com/", title="A"), spider=None)
        pipeline.process(items("http://a.com/b", title="B"), spider=None)

        files = sorted((tmp_path / "content").rglob("*.json"))
        assert len(files) == 2

        stored = json.loads(pipeline._get_file_path("http://a.com/").read_text(encoding="utf-8"))
        assert stored["url"] == "http://a.com/"
        assert stored["depth"] == 2
        assert stored["fields"] == {"title": "A"}

    def test_close_writes_index_and_stats(self, tmp_path) -> None:
        pipeline = JsonFilePipeline(tmp_path)
        pipeline.process(items("http://a.com/", title="A"), spider=None)

        pipeline.close()

        index = json.loads((tmp_path / "index.json").read_text(encoding="utf-8"))
        stats = json.loads((tmp_path / "stats.json").read_text(encoding="utf-8"))
        assert list(index) == ["http://a.com/"]
        assert index["http://a.com/"]["file_path"].startswith("content")
        assert stats["total_stored"] == 1

    def test_concurrent_writes(self, tmp_path) -> None:
        pipeline = JsonFilePipeline(tmp_path)

        def write(start):
            for i in range(start, start + 25):
                pipeline.process(items(f"http://a.com/{i}", n=i), spider=None)

        threads = [threading.Thread(target=write, args=(n * 25,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert pipeline.stats["total_stored"] == 100
        assert len(list((tmp_path / "content").rglob("*.json"))) == 100


class TestOtherPipelines:
    def test_collector_returns_a_copy(self) -> None:
        pipeline = CollectorPipeline()
        pipeline.process(items("http://a.com/", title="A"), spider=None)

        collected = pipeline.items
        collected.clear()

        assert len(pipeline.items) == 1

    def test_console_logs_fields(self, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="webspider.storage.pipeline"):
            ConsolePipeline().process(items("http://a.com/", title="Hello"), spider=None)
        assert "http://a.com/" in caplog.text
        assert "title='Hello'" in caplog.text


class TestFailedRequestLog:
    def test_append_and_read(self, tmp_path) -> None:
        log = FailedRequestLog(tmp_path / "run" / "error_requests.txt")
        log.append(Request("http://a.com/ü", depth=3, extras=RequestExtras(referer="http://a.com/")))
        log.append(Request("http://a.com/2"))

        replayed = list(log.read())

        assert [r.url for r in replayed] == ["http://a.com/ü", "http://a.com/2"]
        assert replayed[0].depth == 3
        assert replayed[0].extras.referer == "http://a.com/"
        assert len(log) == 2

    def test_one_json_document_per_line(self, tmp_path) -> None:
        path = tmp_path / "error_requests.txt"
        log = FailedRequestLog(path)
        log.append(Request("http://a.com/"))

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["url"] == "http://a.com/"

    def test_missing_file_reads_empty(self, tmp_path) -> None:
        log = FailedRequestLog(tmp_path / "nothing.txt")
        assert list(log.read()) == []
        assert len(log) == 0

    def test_concurrent_appends_keep_lines_intact(self, tmp_path) -> None:
        log = FailedRequestLog(tmp_path / "error_requests.txt")

        def append(n):
            for i in range(50):
                log.append(Request(f"http://a.com/{n}/{i}"))

        threads = [threading.Thread(target=append, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(log) == 200
