"""
Minimal HTTP proxy pool shared by all workers of a spider.
"""

import logging
import threading
from typing import Dict, List, Optional


class ProxyPool:
    """Abstract base class for proxy pools."""

    def get_proxy(self) -> Optional[str]:
        """Borrow a proxy URL, or None if none is available."""
        raise NotImplementedError

    def return_proxy(self, proxy: str, status_code: Optional[int]):
        """Give a proxy back together with the status it produced."""
        raise NotImplementedError


class StaticProxyPool(ProxyPool):
    """
    Round-robin over a fixed proxy list.
    A proxy is dropped after `max_failures` consecutive bad statuses.
    """

    def __init__(self, proxies: List[str], max_failures: int = 3):
        self.logger = logging.getLogger(__name__)
        self.max_failures = max_failures
        self._proxies = list(proxies)
        self._failures: Dict[str, int] = {proxy: 0 for proxy in self._proxies}
        self._index = 0
        self._lock = threading.Lock()

    def get_proxy(self) -> Optional[str]:
        with self._lock:
            if not self._proxies:
                return None
            proxy = self._proxies[self._index % len(self._proxies)]
            self._index += 1
            return proxy

    def return_proxy(self, proxy: str, status_code: Optional[int]):
        with self._lock:
            if proxy not in self._failures:
                return
            if status_code is not None and 200 <= status_code < 400:
                self._failures[proxy] = 0
                return
            self._failures[proxy] += 1
            if self._failures[proxy] >= self.max_failures:
                self._proxies.remove(proxy)
                del self._failures[proxy]
                self.logger.warning(f"Dropped proxy after {self.max_failures} failures: {proxy}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._proxies)
