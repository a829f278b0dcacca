"""
Per-site crawl policy, shared read-only by every worker.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .proxy import ProxyPool, StaticProxyPool
from .request import Request, requests_from_urls
from ..utils.config import SiteConfig


DEFAULT_USER_AGENT = 'webspider/1.0 (+https://github.com/webspider)'


@dataclass(frozen=True)
class Site:
    """Immutable policy bag read at start-up."""
    domain: Optional[str] = None
    sleep_time: float = 0.0
    cycle_retry_times: int = 0
    content_type: str = 'html'
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0
    headers: Dict[str, str] = field(default_factory=dict, hash=False)
    accepted_status_codes: Tuple[int, ...] = (200,)
    http_proxy_pool_enable: bool = False
    proxy_pool: Optional[ProxyPool] = field(default=None, compare=False, hash=False)
    start_requests: Tuple[Request, ...] = ()
    allowed_domains: Tuple[str, ...] = ()
    blocked_domains: Tuple[str, ...] = ()

    def return_proxy(self, proxy: str, status_code: Optional[int]):
        if self.proxy_pool is not None:
            self.proxy_pool.return_proxy(proxy, status_code)

    @classmethod
    def from_config(cls, config: SiteConfig) -> 'Site':
        """Build a Site from the `site` section of the YAML configuration."""
        proxy_pool = None
        if config.http_proxy_pool_enable and config.proxies:
            proxy_pool = StaticProxyPool(config.proxies)
        return cls(
            domain=config.domain,
            sleep_time=config.sleep_time,
            cycle_retry_times=config.cycle_retry_times,
            content_type=config.content_type,
            user_agent=config.user_agent or DEFAULT_USER_AGENT,
            timeout=config.timeout,
            headers=dict(config.headers or {}),
            accepted_status_codes=tuple(config.accepted_status_codes),
            http_proxy_pool_enable=config.http_proxy_pool_enable,
            proxy_pool=proxy_pool,
            start_requests=tuple(requests_from_urls(config.start_urls)),
            allowed_domains=tuple(config.allowed_domains or ()),
            blocked_domains=tuple(config.blocked_domains or ()),
        )
