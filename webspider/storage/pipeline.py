"""
Output sinks for extracted result items.

Pipelines are shared by all worker threads; each implementation serializes
its own state.
"""

import hashlib
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from ..crawler.page import ResultItems


class Pipeline:
    """Abstract base class for output sinks."""

    def process(self, result_items: ResultItems, spider):
        raise NotImplementedError

    def close(self):
        pass


class ConsolePipeline(Pipeline):
    """Writes each result set to the log."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def process(self, result_items: ResultItems, spider):
        fields = ', '.join(f"{key}={value!r:.80}" for key, value in result_items.fields.items())
        self.logger.info(f"Result from {result_items.request.url}: {fields}")


class CollectorPipeline(Pipeline):
    """Keeps every result set in memory."""

    def __init__(self):
        self._items: List[ResultItems] = []
        self._lock = threading.Lock()

    def process(self, result_items: ResultItems, spider):
        with self._lock:
            self._items.append(result_items)

    @property
    def items(self) -> List[ResultItems]:
        with self._lock:
            return list(self._items)


class JsonFilePipeline(Pipeline):
    """
    One JSON document per URL under `<data_directory>/content/`,
    plus a URL index written on close.
    """

    def __init__(self, data_directory: str):
        self.data_directory = Path(data_directory)
        self.logger = logging.getLogger(__name__)
        self._index: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.stats = {
            'total_stored': 0,
            'total_size_bytes': 0
        }
        (self.data_directory / 'content').mkdir(parents=True, exist_ok=True)
        self.logger.info(f"File pipeline writing to {self.data_directory}")

    def _get_file_path(self, url: str) -> Path:
        url_hash = hashlib.sha256(url.encode('utf-8')).hexdigest()
        # First 2 chars as subdirectory
        return self.data_directory / 'content' / url_hash[:2] / f"{url_hash}.json"

    def process(self, result_items: ResultItems, spider):
        url = result_items.request.url
        file_path = self._get_file_path(url)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            'url': url,
            'depth': result_items.request.depth,
            'fields': result_items.fields,
            'stored_at': datetime.now(timezone.utc).isoformat(),
        }
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)

        with self._lock:
            self.stats['total_stored'] += 1
            self.stats['total_size_bytes'] += file_path.stat().st_size
            self._index[url] = {
                'file_path': str(file_path.relative_to(self.data_directory)),
                'indexed_at': data['stored_at']
            }

        self.logger.debug(f"Stored result to {file_path}")

    def close(self):
        """Write the URL index and statistics."""
        with self._lock:
            index = dict(self._index)
            stats = dict(self.stats)

        index_file = self.data_directory / 'index.json'
        with open(index_file, 'w', encoding='utf-8') as f:
            json.dump(index, f, ensure_ascii=False, indent=2)

        with open(self.data_directory / 'stats.json', 'w', encoding='utf-8') as f:
            json.dump(stats, f, indent=2)

        self.logger.info(f"File pipeline closed: {stats['total_stored']} results stored")
