"""
Fetched page and the result items extracted from it.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Union

from .request import Request, RequestExtras


@dataclass
class ResultItems:
    """Structured output extracted from one page."""
    request: Request
    fields: Dict[str, Any] = field(default_factory=dict)
    skip: bool = False

    @property
    def is_skip(self) -> bool:
        """True when marked skip or nothing was extracted."""
        return self.skip or not self.fields

    def put(self, key: str, value: Any):
        self.fields[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass
class Page:
    """Result of fetching one request. Owned by a single worker."""
    request: Request
    status_code: int = 0
    content: Optional[str] = None
    content_type: Optional[str] = None
    skip: bool = False
    is_need_cycle_retry: bool = False
    miss_target_urls: bool = False
    target_requests: List[Request] = field(default_factory=list)
    result_items: ResultItems = None

    def __post_init__(self):
        if self.result_items is None:
            self.result_items = ResultItems(request=self.request)

    @property
    def url(self) -> str:
        return self.request.url

    def add_target_request(self, target: Union[str, Request]):
        """Queue a follow-up request discovered on this page, one level deeper."""
        if isinstance(target, str):
            target = Request(
                url=target,
                depth=self.request.next_depth,
                extras=RequestExtras(referer=self.request.url),
            )
        elif target.depth != self.request.next_depth:
            target = replace(target, depth=self.request.next_depth)
        self.target_requests.append(target)

    def add_target_requests(self, targets: Iterable[Union[str, Request]]):
        for target in targets:
            self.add_target_request(target)

    def put_field(self, key: str, value: Any):
        self.result_items.put(key, value)
