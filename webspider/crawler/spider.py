"""
Spider: the crawl orchestrator.

Owns the worker thread pool, the run-state machine, the cycle-retry policy and
failure recording. It composes four pluggable parts: a Scheduler (frontier), a
Downloader (cloned once per worker), a PageProcessor and a list of Pipelines.
"""

import logging
import re
import sys
import threading
import time
import uuid
from dataclasses import replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .downloader import Downloader, HttpDownloader
from .exceptions import SpiderError
from .page import Page
from .processor import PageProcessor
from .request import Request, requests_from_urls
from .scheduler import QueueScheduler, Scheduler
from ..storage.failure_log import FailedRequestLog
from ..storage.pipeline import JsonFilePipeline, Pipeline
from ..utils.logger import get_spider_logger
from ..utils.monitoring import SpiderMonitor


IDENTITY_PATTERN = re.compile(r'^[A-Za-z0-9_\-/]+$')

RequestListener = Callable[[Request], None]


class Status(Enum):
    """Lifecycle states of a spider run."""
    INIT = 'init'
    RUNNING = 'running'
    STOPPED = 'stopped'
    FINISHED = 'finished'
    EXITED = 'exited'


class RunState:
    """Lock-guarded holder for the spider status."""

    def __init__(self):
        self._status = Status.INIT
        self._lock = threading.Lock()

    def get(self) -> Status:
        with self._lock:
            return self._status

    def compare_and_set(self, expected: Status, status: Status) -> bool:
        with self._lock:
            if self._status is not expected:
                return False
            self._status = status
            return True

    def begin_running(self):
        with self._lock:
            if self._status is Status.RUNNING:
                raise SpiderError("Spider is already running!")
            self._status = Status.RUNNING


class AtomicCounter:
    """Integer counter safe to update from any thread."""

    def __init__(self, value: int = 0):
        self._value = value
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def decrement(self) -> int:
        with self._lock:
            self._value -= 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class Spider:
    """
    Multi-threaded crawl orchestrator.

    Typical use:

        spider = Spider(MyProcessor(site), identity="news")
        spider.set_thread_num(4).add_pipeline(ConsolePipeline())
        spider.run()
    """

    def __init__(self, page_processor: PageProcessor,
                 scheduler: Optional[Scheduler] = None,
                 identity: Optional[str] = None,
                 data_root: str = 'data',
                 monitor: Optional[SpiderMonitor] = None):
        self.page_processor = page_processor
        self.site = page_processor.site

        if not identity:
            identity = self.site.domain or str(uuid.uuid4())
        elif not IDENTITY_PATTERN.match(identity):
            raise SpiderError("Spider identity can only contain A-Z a-z 0-9 _ - /")
        self.identity = identity

        self.logger = get_spider_logger(__name__, identity)
        self.scheduler = scheduler or QueueScheduler()
        self.downloader: Optional[Downloader] = None
        self.pipelines: List[Pipeline] = []
        self.page_handlers: List[Callable[[Page], None]] = []
        self.settings: Dict[str, Any] = {}

        self.thread_num = 1
        self.max_depth = sys.maxsize
        self.spawn_url = True
        self.exit_when_complete = True
        self.status_interval = 30.0

        self.data_directory = Path(data_root) / identity
        self.failure_log = FailedRequestLog(self.data_directory / 'error_requests.txt')
        self.monitor = monitor or SpiderMonitor(identity)

        self.finished_page_count = AtomicCounter()
        self.start_time: Optional[datetime] = None
        self.finished_time: Optional[datetime] = None

        self._start_requests: List[Request] = list(self.site.start_requests)
        self._wait_interval = 0.05
        self._empty_sleep_time = 15.0
        self._state = RunState()
        self._in_flight = AtomicCounter()
        self._exited = threading.Event()
        self._exited.set()
        self._closing_lock = threading.Lock()
        self._closing_fired = False
        self._initialized = False

        self._success_listeners: List[RequestListener] = []
        self._failure_listeners: List[RequestListener] = []
        self._closing_listeners: List[Callable[[], None]] = []

    @classmethod
    def create(cls, page_processor: PageProcessor,
               scheduler: Optional[Scheduler] = None, **kwargs) -> 'Spider':
        return cls(page_processor, scheduler, **kwargs)

    # Configuration

    @property
    def status(self) -> Status:
        return self._state.get()

    @property
    def wait_interval(self) -> float:
        return self._wait_interval

    @property
    def empty_sleep_time(self) -> float:
        return self._empty_sleep_time

    @property
    def wait_count_limit(self) -> int:
        """Idle polls a worker tolerates before declaring the frontier exhausted."""
        return int(self._empty_sleep_time / self._wait_interval)

    def _check_if_running(self):
        if self._state.get() is Status.RUNNING:
            raise SpiderError("Spider is already running!")

    def set_thread_num(self, thread_num: int) -> 'Spider':
        self._check_if_running()
        if thread_num <= 0:
            raise SpiderError("thread_num should be at least 1")
        self.thread_num = thread_num
        if self.downloader is not None:
            self.downloader.thread_num = thread_num
        return self

    def set_wait_interval(self, seconds: float) -> 'Spider':
        """Backoff between polls of an empty frontier."""
        self._check_if_running()
        if seconds <= 0:
            raise SpiderError("wait_interval must be positive")
        self._wait_interval = seconds
        return self

    def set_empty_sleep_time(self, seconds: float) -> 'Spider':
        """How long a worker waits on an empty frontier before finishing."""
        self._check_if_running()
        if seconds <= 0 or seconds < self._wait_interval:
            raise SpiderError("empty_sleep_time must be positive and not shorter than wait_interval")
        self._empty_sleep_time = seconds
        return self

    def set_downloader(self, downloader: Downloader) -> 'Spider':
        self._check_if_running()
        downloader.thread_num = self.thread_num
        self.downloader = downloader
        return self

    def add_pipeline(self, pipeline: Pipeline) -> 'Spider':
        self._check_if_running()
        self.pipelines.append(pipeline)
        return self

    def add_pipelines(self, pipelines: Iterable[Pipeline]) -> 'Spider':
        for pipeline in pipelines:
            self.add_pipeline(pipeline)
        return self

    def clear_pipelines(self) -> 'Spider':
        self._check_if_running()
        self.pipelines = []
        return self

    def add_page_handler(self, handler: Callable[[Page], None]) -> 'Spider':
        """Observer called with every downloaded page before processing."""
        self._check_if_running()
        self.page_handlers.append(handler)
        return self

    def add_start_urls(self, urls: Iterable[str]) -> 'Spider':
        """Replace the start requests, taking priority over the site's."""
        self._check_if_running()
        self._start_requests = requests_from_urls(urls)
        return self

    def add_start_requests(self, requests: Iterable[Request]) -> 'Spider':
        self._check_if_running()
        self._start_requests = list(requests)
        return self

    def add_start_url(self, *urls: str) -> 'Spider':
        self._check_if_running()
        self._start_requests.extend(requests_from_urls(urls))
        return self

    def add_request(self, *requests: Request) -> 'Spider':
        """Push requests straight into the frontier; allowed while running."""
        for request in requests:
            self.scheduler.push(request)
        return self

    # Events

    def on_request_succeeded(self, listener: RequestListener):
        self._success_listeners.append(listener)

    def on_request_failed(self, listener: RequestListener):
        self._failure_listeners.append(listener)

    def on_closing(self, listener: Callable[[], None]):
        self._closing_listeners.append(listener)

    def _fire(self, listeners: List[Callable], *args):
        for listener in listeners:
            try:
                listener(*args)
            except Exception as e:
                self.logger.error(f"Event listener {listener!r} failed: {e}", exc_info=True)

    def _fire_closing(self):
        with self._closing_lock:
            if self._closing_fired:
                return
            self._closing_fired = True
        self._fire(self._closing_listeners)

    # Lifecycle

    def init_component(self):
        """Default the missing components and seed the frontier. Runs once."""
        if self._initialized:
            self.logger.info("Component already initialized")
            return

        self.scheduler.init(self)

        if self.downloader is None:
            self.downloader = HttpDownloader()
        self.downloader.thread_num = self.thread_num

        if not self.pipelines:
            self.pipelines.append(JsonFilePipeline(self.data_directory))

        if self._start_requests:
            self.logger.info(f"Pushing {len(self._start_requests)} start requests to the frontier")
            accepted = self.scheduler.load(self._start_requests)
            self._start_requests = []
            self.logger.info(f"Frontier seeded with {accepted} requests")
        else:
            self.logger.info("Pushed zero start requests to the frontier")

        self._initialized = True

    def run(self):
        """Crawl in the calling thread until the run leaves RUNNING."""
        self._begin()
        self._execute()

    def start(self) -> threading.Thread:
        """Crawl in a background thread."""
        self._begin()
        thread = threading.Thread(target=self._execute, name=f"spider-{self.identity}", daemon=True)
        thread.start()
        return thread

    def stop(self):
        """Ask workers to exit after their current request."""
        if self._state.compare_and_set(Status.RUNNING, Status.STOPPED):
            self.logger.warning("Trying to stop spider...")

    def exit(self):
        """Like stop, but announces the shutdown to closing listeners at once."""
        if self._state.compare_and_set(Status.RUNNING, Status.EXITED):
            self.logger.warning("Trying to exit spider...")
            self._fire_closing()

    def wait_for_exit(self, timeout: Optional[float] = None) -> bool:
        """Block until every worker has exited and teardown is done."""
        return self._exited.wait(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Stop and wait. Used by interrupt handlers."""
        self.stop()
        return self.wait_for_exit(timeout)

    def _begin(self):
        self._state.begin_running()
        self._exited.clear()
        with self._closing_lock:
            self._closing_fired = False

    def _execute(self):
        try:
            self.logger.info("Spider initializing components...")
            self.init_component()
            self.logger.info(f"Spider started with {self.thread_num} threads")

            if self.start_time is None:
                self.start_time = datetime.now()

            reporter = threading.Thread(target=self._report_status,
                                        name=f"{self.identity}-status", daemon=True)
            reporter.start()

            workers = [
                threading.Thread(target=self._worker_loop, name=f"{self.identity}-worker-{i}")
                for i in range(self.thread_num)
            ]
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join()

            self.finished_time = datetime.now()
        except Exception:
            self._state.compare_and_set(Status.RUNNING, Status.STOPPED)
            raise
        finally:
            self._log_status()
            self._close_components()

            status = self._state.get()
            if status is Status.FINISHED:
                self.logger.info("Spider finished")
            elif status is Status.STOPPED:
                self.logger.info("Spider stopped")
            elif status is Status.EXITED:
                self.logger.info("Spider exited")

            self._fire_closing()
            self._exited.set()

    def _close_components(self):
        for pipeline in self.pipelines:
            self._safe_close(pipeline)

        try:
            self.scheduler.reset_duplicate_check()
        except Exception as e:
            self.logger.warning(f"Failed to reset duplicate check: {e}")

        self._safe_close(self.scheduler)
        self._safe_close(self.page_processor)
        if self.downloader is not None:
            self._safe_close(self.downloader)

    def _safe_close(self, component):
        try:
            component.close()
        except Exception as e:
            self.logger.warning(f"Failed to close {type(component).__name__}: {e}")

    # Worker loop

    def _worker_loop(self):
        downloader = self.downloader.clone()
        self.monitor.worker_started()
        wait_count = 0

        try:
            while self._state.get() is Status.RUNNING:
                # Counted as in flight before polling so idle peers never see
                # an empty frontier while a request is between poll and handling
                self._in_flight.increment()
                try:
                    request = self.scheduler.poll()
                except Exception as e:
                    self._in_flight.decrement()
                    self.logger.error(f"Failed to poll frontier: {e}", exc_info=True)
                    time.sleep(self._wait_interval)
                    continue

                if request is None:
                    self._in_flight.decrement()
                    if wait_count > self.wait_count_limit and self.exit_when_complete \
                            and self._frontier_exhausted():
                        if self._state.compare_and_set(Status.RUNNING, Status.FINISHED):
                            self.logger.info("Frontier exhausted, finishing")
                        break
                    time.sleep(self._wait_interval)
                    wait_count += 1
                    continue

                wait_count = 0
                try:
                    self._handle(request, downloader)
                finally:
                    self._in_flight.decrement()

                if self.site.sleep_time > 0:
                    time.sleep(self.site.sleep_time)
        finally:
            self.monitor.worker_stopped()
            self._safe_close(downloader)

    def _frontier_exhausted(self) -> bool:
        if self._in_flight.value != 0:
            return False
        try:
            return self.scheduler.left_count() == 0
        except Exception as e:
            self.logger.error(f"Failed to read frontier size: {e}", exc_info=True)
            return False

    def _handle(self, request: Request, downloader: Downloader):
        try:
            sizes = self._update_queue_stats()
            if sizes is not None:
                self.logger.debug(f"Left: {sizes[0]} Total: {sizes[1]} Thread: {self.thread_num}")

            if self._process_request(request, downloader):
                self._on_success(request)
        except Exception as e:
            self.logger.request_event(logging.ERROR, "failed", request, f"Request failed ({e})", exc_info=True)
            self._on_error(request)
        finally:
            self._return_proxy(request)
            self.finished_page_count.increment()
            self.monitor.record_finished()

    def _process_request(self, request: Request, downloader: Downloader) -> bool:
        """
        Download, process and dispatch one request.

        Returns True when the request completed. Returns False when it was
        handed to the retry policy, which records permanent failures itself.
        Pipeline errors propagate to the caller.
        """
        try:
            page = downloader.download(request, self)
            if page.skip:
                self.logger.debug(f"Skipped page: {request.url}")
                return True

            for handler in self.page_handlers:
                handler(page)

            if not page.is_need_cycle_retry:
                self.page_processor.process(page)
        except Exception as e:
            self.logger.warning(f"Download or process page {request.url} failed: {e}")
            self._cycle_retry(request)
            return False

        if page.is_need_cycle_retry:
            self._cycle_retry(request)
            return False

        if page.skip:
            return True

        if not page.miss_target_urls and self.spawn_url:
            self._extract_and_add_requests(page)

        if not page.result_items.is_skip:
            for pipeline in self.pipelines:
                pipeline.process(page.result_items, self)
            self.logger.request_event(logging.INFO, "succeeded", request, "Request succeeded")
        else:
            self.logger.request_event(logging.WARNING, "empty", request, "Request produced no results")

        return True

    def _extract_and_add_requests(self, page: Page):
        if page.request.next_depth > self.max_depth:
            if page.target_requests:
                self.logger.debug(f"Beyond max depth {self.max_depth}, dropping "
                                  f"{len(page.target_requests)} follow-ups of {page.url}")
            return
        for target in page.target_requests:
            self.scheduler.push(target)

    def _cycle_retry(self, request: Request):
        """Re-queue a request for another attempt, or abandon it."""
        max_times = self.site.cycle_retry_times
        tried = request.extras.cycle_tried_times

        if max_times <= 0:
            self._on_error(request)
            return

        if tried is None:
            tried = 1
        else:
            tried += 1
            if tried >= max_times:
                self.logger.request_event(logging.WARNING, "abandoned", request,
                                          f"Abandoned after {tried} attempts")
                self._on_error(request)
                return

        request.extras.cycle_tried_times = tried
        self.scheduler.push(request.with_priority(0))
        self.monitor.record_retry()
        self.logger.request_event(logging.INFO, "retry", request, f"Retrying ({tried}/{max_times})")

    def _return_proxy(self, request: Request):
        proxy = request.extras.proxy
        if self.site.http_proxy_pool_enable and proxy is not None:
            self.site.return_proxy(proxy, request.extras.status_code)

    def _on_success(self, request: Request):
        self.monitor.record_success()
        self._fire(self._success_listeners, request)

    def _on_error(self, request: Request):
        # Logged without retry bookkeeping so the line can seed a fresh run as is
        clean = replace(request, extras=replace(request.extras, cycle_tried_times=None))
        self.failure_log.append(clean)
        self.monitor.record_failure()
        self._fire(self._failure_listeners, request)

    # Monitoring

    def _report_status(self):
        while not self._exited.wait(self.status_interval):
            self._log_status()

    def _update_queue_stats(self) -> Optional[Tuple[int, int]]:
        try:
            left, total = self.scheduler.left_count(), self.scheduler.total_count()
        except Exception as e:
            self.logger.warning(f"Failed to read frontier size: {e}")
            return None
        self.monitor.update_queue(left, total)
        return left, total

    def _log_status(self):
        sizes = self._update_queue_stats()
        if sizes is None:
            return
        left, total = sizes
        self.logger.info(
            f"Status: {self.status.value}, "
            f"Left={left}, Total={total}, "
            f"Finished={self.finished_page_count.value}, "
            f"Threads={self.thread_num}"
        )

    def get_stats(self) -> Dict[str, Any]:
        """Progress counters, safe to read while the spider runs."""
        return {
            'identity': self.identity,
            'status': self.status.value,
            'left': self.scheduler.left_count(),
            'total': self.scheduler.total_count(),
            'finished': self.finished_page_count.value,
            'thread_num': self.thread_num,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'finished_time': self.finished_time.isoformat() if self.finished_time else None,
        }
