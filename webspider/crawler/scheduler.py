"""
Frontier implementations: thread-safe queues of pending requests.

All schedulers accept concurrent push/poll from any number of worker threads.
`poll()` never blocks; it returns None when nothing is queued and leaves the
backoff to the caller.
"""

import heapq
import itertools
import logging
import threading
from collections import deque
from typing import Deque, Iterable, List, Optional, Tuple

import redis

from .request import Request
from ..storage.duplicate_remover import (
    DuplicateRemover,
    HashSetDuplicateRemover,
    RedisDuplicateRemover,
    request_fingerprint,
)


class Scheduler:
    """Abstract base class for frontiers."""

    def init(self, spider):
        """Called once before the spider seeds start requests."""
        pass

    def push(self, request: Request) -> bool:
        """Queue a request. Returns False if it was rejected as a duplicate."""
        raise NotImplementedError

    def poll(self) -> Optional[Request]:
        """Take the next request, or None if the frontier is empty."""
        raise NotImplementedError

    def load(self, requests: Iterable[Request]) -> int:
        """Bulk seed. Returns the number of requests accepted."""
        return sum(1 for request in requests if self.push(request))

    def left_count(self) -> int:
        raise NotImplementedError

    def total_count(self) -> int:
        raise NotImplementedError

    def reset_duplicate_check(self):
        pass

    def close(self):
        pass


class DuplicateRemovedScheduler(Scheduler):
    """
    Scheduler that filters logically duplicate requests before queueing.
    Pass remove_duplicates=False for a frontier without suppression.
    """

    def __init__(self, duplicate_remover: Optional[DuplicateRemover] = None,
                 remove_duplicates: bool = True):
        self.logger = logging.getLogger(__name__)
        if remove_duplicates and duplicate_remover is None:
            duplicate_remover = HashSetDuplicateRemover()
        self.duplicate_remover = duplicate_remover if remove_duplicates else None
        self._pushed = 0
        self._pushed_lock = threading.Lock()

    def _should_reserve(self, request: Request) -> bool:
        # Retried requests were seen already; let them back in
        return request.extras.cycle_tried_times is not None

    def _accept(self, request: Request) -> bool:
        if self.duplicate_remover is None or self._should_reserve(request):
            return True
        if self.duplicate_remover.is_duplicate(request):
            self.logger.debug(f"Duplicate request ignored: {request.url}")
            return False
        return True

    def push(self, request: Request) -> bool:
        if not self._accept(request):
            return False
        self._count_pushed(1)
        self._push_when_no_duplicate(request)
        return True

    def _count_pushed(self, count: int):
        with self._pushed_lock:
            self._pushed += count

    def _push_when_no_duplicate(self, request: Request):
        raise NotImplementedError

    def total_count(self) -> int:
        if self.duplicate_remover is not None:
            return self.duplicate_remover.total_count()
        with self._pushed_lock:
            return self._pushed

    def reset_duplicate_check(self):
        if self.duplicate_remover is not None:
            self.duplicate_remover.reset()

    def close(self):
        if self.duplicate_remover is not None:
            self.duplicate_remover.close()


class QueueScheduler(DuplicateRemovedScheduler):
    """FIFO frontier held in memory."""

    def __init__(self, duplicate_remover: Optional[DuplicateRemover] = None,
                 remove_duplicates: bool = True):
        super().__init__(duplicate_remover, remove_duplicates)
        self._queue: Deque[Request] = deque()
        self._lock = threading.Lock()

    def _push_when_no_duplicate(self, request: Request):
        with self._lock:
            self._queue.append(request)

    def poll(self) -> Optional[Request]:
        with self._lock:
            if not self._queue:
                return None
            return self._queue.popleft()

    def load(self, requests: Iterable[Request]) -> int:
        accepted = [request for request in requests if self._accept(request)]
        with self._lock:
            self._queue.extend(accepted)
        self._count_pushed(len(accepted))
        return len(accepted)

    def left_count(self) -> int:
        with self._lock:
            return len(self._queue)


class PriorityScheduler(DuplicateRemovedScheduler):
    """Frontier that polls higher priorities first, FIFO among equals."""

    def __init__(self, duplicate_remover: Optional[DuplicateRemover] = None,
                 remove_duplicates: bool = True):
        super().__init__(duplicate_remover, remove_duplicates)
        self._heap: List[Tuple[int, int, Request]] = []
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def _entry(self, request: Request) -> Tuple[int, int, Request]:
        return (-request.priority, next(self._sequence), request)

    def _push_when_no_duplicate(self, request: Request):
        with self._lock:
            heapq.heappush(self._heap, self._entry(request))

    def poll(self) -> Optional[Request]:
        with self._lock:
            if not self._heap:
                return None
            return heapq.heappop(self._heap)[2]

    def load(self, requests: Iterable[Request]) -> int:
        accepted = [request for request in requests if self._accept(request)]
        with self._lock:
            for request in accepted:
                self._heap.append(self._entry(request))
            heapq.heapify(self._heap)
        self._count_pushed(len(accepted))
        return len(accepted)

    def left_count(self) -> int:
        with self._lock:
            return len(self._heap)


class RedisScheduler(DuplicateRemovedScheduler):
    """
    FIFO frontier stored in a Redis list, with a Redis set for duplicate checks.
    Priorities are not honoured. Keys are namespaced by spider identity.
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "webspider"):
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self.queue_key = f"{key_prefix}:queue"
        super().__init__(RedisDuplicateRemover(redis_client, f"{key_prefix}:set"))

    def init(self, spider):
        self.queue_key = f"{self.key_prefix}:queue:{spider.identity}"
        self.duplicate_remover.key = f"{self.key_prefix}:set:{spider.identity}"
        self.logger.info(f"Redis frontier using {self.queue_key}")

    def _push_when_no_duplicate(self, request: Request):
        self.redis_client.rpush(self.queue_key, request.to_json())

    def poll(self) -> Optional[Request]:
        raw = self.redis_client.lpop(self.queue_key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        return Request.from_json(raw)

    def load(self, requests: Iterable[Request]) -> int:
        requests = list(requests)
        if not requests:
            return 0

        # One round trip to learn which requests are new, one to queue them
        fingerprint_pipe = self.redis_client.pipeline()
        reserved = []
        for request in requests:
            if self._should_reserve(request):
                reserved.append(request)
            else:
                fingerprint_pipe.sadd(self.duplicate_remover.key,
                                      request_fingerprint(request))
        added = fingerprint_pipe.execute()

        fresh = [r for r in requests if not self._should_reserve(r)]
        accepted = reserved + [r for r, flag in zip(fresh, added) if flag]

        queue_pipe = self.redis_client.pipeline()
        for request in accepted:
            queue_pipe.rpush(self.queue_key, request.to_json())
        queue_pipe.execute()
        return len(accepted)

    def left_count(self) -> int:
        return int(self.redis_client.llen(self.queue_key))
