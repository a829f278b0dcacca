"""
Duplicate request suppression for the frontier.
"""

import hashlib
import logging
import threading
from typing import Set
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import redis

from ..crawler.request import Request


TRACKING_PARAMS = frozenset([
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'fbclid', 'gclid',
])


def normalize_url(url: str) -> str:
    """Normalize URL for consistent hashing."""
    parsed = urlparse(url)

    if parsed.query:
        params = parse_qs(parsed.query, keep_blank_values=True)
        filtered = {k: v for k, v in params.items() if k not in TRACKING_PARAMS}
        query = urlencode(sorted(filtered.items()), doseq=True)
    else:
        query = ''

    # Drop trailing slash unless it's root
    path = parsed.path
    if len(path) > 1 and path.endswith('/'):
        path = path[:-1]

    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        path,
        parsed.params,
        query,
        ''
    ))


def request_fingerprint(request: Request) -> str:
    """Stable digest identifying a logically duplicate request."""
    return hashlib.sha256(normalize_url(request.url).encode('utf-8')).hexdigest()


class DuplicateRemover:
    """Abstract base class for duplicate removers."""

    def is_duplicate(self, request: Request) -> bool:
        """Record the request and report whether it was seen before."""
        raise NotImplementedError

    def reset(self):
        raise NotImplementedError

    def total_count(self) -> int:
        """Number of distinct requests seen."""
        raise NotImplementedError

    def close(self):
        pass


class HashSetDuplicateRemover(DuplicateRemover):
    """In-memory fingerprint set."""

    def __init__(self):
        self._seen: Set[str] = set()
        self._lock = threading.Lock()

    def is_duplicate(self, request: Request) -> bool:
        fingerprint = request_fingerprint(request)
        with self._lock:
            if fingerprint in self._seen:
                return True
            self._seen.add(fingerprint)
            return False

    def reset(self):
        with self._lock:
            self._seen.clear()

    def total_count(self) -> int:
        with self._lock:
            return len(self._seen)


class RedisDuplicateRemover(DuplicateRemover):
    """Fingerprint set kept in Redis, shared by every process using the key."""

    def __init__(self, redis_client: redis.Redis, key: str = "webspider:duplicates"):
        self.redis_client = redis_client
        self.key = key
        self.logger = logging.getLogger(__name__)

    def is_duplicate(self, request: Request) -> bool:
        # SADD reports 1 only for a new member, which makes check-and-add atomic
        added = self.redis_client.sadd(self.key, request_fingerprint(request))
        return added == 0

    def reset(self):
        self.redis_client.delete(self.key)
        self.logger.info(f"Duplicate set reset: {self.key}")

    def total_count(self) -> int:
        return int(self.redis_client.scard(self.key))
