"""
Monitoring and metrics collection for webspider.
"""

import logging
import time
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server


class SpiderMonitor:
    """
    Prometheus metrics for one spider run.
    Each monitor owns its registry so several spiders can live in one process.
    """

    def __init__(self, identity: str, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.identity = identity
        self.registry = registry or CollectorRegistry()
        self.start_time = time.time()

        labels = ['spider']
        self._succeeded = Counter(
            'webspider_requests_succeeded_total',
            'Requests processed without error',
            labels, registry=self.registry
        ).labels(spider=identity)
        self._failed = Counter(
            'webspider_requests_failed_total',
            'Requests recorded as failed',
            labels, registry=self.registry
        ).labels(spider=identity)
        self._retried = Counter(
            'webspider_requests_retried_total',
            'Requests pushed back by the cycle-retry policy',
            labels, registry=self.registry
        ).labels(spider=identity)
        self._finished = Counter(
            'webspider_requests_finished_total',
            'Requests taken off the frontier and handled',
            labels, registry=self.registry
        ).labels(spider=identity)
        self._left = Gauge(
            'webspider_requests_left',
            'Requests waiting in the frontier',
            labels, registry=self.registry
        ).labels(spider=identity)
        self._total = Gauge(
            'webspider_requests_seen',
            'Requests ever accepted by the frontier',
            labels, registry=self.registry
        ).labels(spider=identity)
        self._active_workers = Gauge(
            'webspider_active_workers',
            'Worker threads currently running',
            labels, registry=self.registry
        ).labels(spider=identity)

    def start_server(self, port: int):
        """Expose the registry over HTTP."""
        try:
            start_http_server(port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def record_success(self):
        self._succeeded.inc()

    def record_failure(self):
        self._failed.inc()

    def record_retry(self):
        self._retried.inc()

    def record_finished(self):
        self._finished.inc()

    def update_queue(self, left: int, total: int):
        self._left.set(left)
        self._total.set(total)

    def worker_started(self):
        self._active_workers.inc()

    def worker_stopped(self):
        self._active_workers.dec()

    def value(self, name: str) -> float:
        """Read a sample for this spider from the registry."""
        sample = self.registry.get_sample_value(name, {'spider': self.identity})
        return sample or 0.0

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        runtime = time.time() - self.start_time
        finished = self.value('webspider_requests_finished_total')
        return {
            'runtime_seconds': runtime,
            'succeeded': self.value('webspider_requests_succeeded_total'),
            'failed': self.value('webspider_requests_failed_total'),
            'retried': self.value('webspider_requests_retried_total'),
            'finished': finished,
            'left': self.value('webspider_requests_left'),
            'total': self.value('webspider_requests_seen'),
            'requests_per_second': finished / runtime if runtime > 0 else 0,
        }
