"""
Append-only log of requests that failed permanently.
"""

import threading
from pathlib import Path
from typing import Iterator, Union

from ..crawler.request import Request


class FailedRequestLog:
    """One JSON-serialized request per line, UTF-8."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, request: Request):
        line = request.to_json() + '\n'
        with self._lock:
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(line)

    def read(self) -> Iterator[Request]:
        """Yield the recorded requests, e.g. to seed a fresh run."""
        if not self.path.exists():
            return
        with open(self.path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line:
                    yield Request.from_json(line)

    def __len__(self) -> int:
        return sum(1 for _ in self.read())
