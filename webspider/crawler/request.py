"""
Request model: one unit of crawl work.
"""

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class RequestExtras:
    """Side-channel metadata attached to a request.

    The request itself is immutable; this bag is the only part the spider and
    page processors are allowed to change.
    """
    cycle_tried_times: Optional[int] = None
    proxy: Optional[str] = None
    status_code: Optional[int] = None
    referer: Optional[str] = None
    custom: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'cycle_tried_times': self.cycle_tried_times,
            'proxy': self.proxy,
            'status_code': self.status_code,
            'referer': self.referer,
            'custom': dict(self.custom),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'RequestExtras':
        data = data or {}
        return cls(
            cycle_tried_times=data.get('cycle_tried_times'),
            proxy=data.get('proxy'),
            status_code=data.get('status_code'),
            referer=data.get('referer'),
            custom=dict(data.get('custom') or {}),
        )


@dataclass(frozen=True)
class Request:
    """Represents a URL to fetch."""
    url: str
    depth: int = 1
    priority: int = 0
    extras: RequestExtras = field(default_factory=RequestExtras, compare=False, hash=False)

    @property
    def next_depth(self) -> int:
        """Depth assigned to requests discovered on this page."""
        return self.depth + 1

    def with_priority(self, priority: int) -> 'Request':
        """Copy with a new priority; the extras object is shared."""
        return replace(self, priority=priority, extras=self.extras)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'depth': self.depth,
            'priority': self.priority,
            'extras': self.extras.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Request':
        """Create a Request from dictionary."""
        return cls(
            url=data['url'],
            depth=data.get('depth', 1),
            priority=data.get('priority', 0),
            extras=RequestExtras.from_dict(data.get('extras')),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> 'Request':
        return cls.from_dict(json.loads(raw))


def requests_from_urls(urls: Iterable[str], depth: int = 1) -> List[Request]:
    """Wrap plain URLs as requests at the given depth."""
    return [Request(url=url, depth=depth) for url in urls]
