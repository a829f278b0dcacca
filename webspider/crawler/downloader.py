"""
Fetch strategies: turn one request into one page.

Workers never share a downloader. The spider clones its prototype once per
worker thread, and each HttpDownloader clone owns a private event loop and
aiohttp session.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from .exceptions import DownloadError
from .page import Page
from .request import Request
from .site import Site


TEXT_CONTENT_TYPES = (
    'text/html',
    'text/plain',
    'text/xml',
    'application/xml',
    'application/xhtml+xml',
    'application/json',
    'application/ld+json',
)


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None


class Downloader:
    """Abstract base class for fetch strategies."""

    thread_num: int = 1

    def clone(self) -> 'Downloader':
        """Fresh instance for a single worker; must not share mutable state."""
        raise NotImplementedError

    def download(self, request: Request, spider) -> Page:
        raise NotImplementedError

    def close(self):
        pass


class HttpDownloader(Downloader):
    """
    Fetches pages over HTTP with aiohttp.
    Site policy comes from the spider unless one is given explicitly.
    """

    def __init__(self, site: Optional[Site] = None,
                 max_content_size: int = 10 * 1024 * 1024):
        self.site = site
        self.max_content_size = max_content_size
        self.logger = logging.getLogger(__name__)

        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    def clone(self) -> 'HttpDownloader':
        downloader = HttpDownloader(self.site, self.max_content_size)
        downloader.thread_num = self.thread_num
        return downloader

    def download(self, request: Request, spider) -> Page:
        site = self.site or spider.site

        proxy = None
        if site.http_proxy_pool_enable and site.proxy_pool is not None:
            proxy = site.proxy_pool.get_proxy()
            request.extras.proxy = proxy

        if self.loop is None:
            self.loop = asyncio.new_event_loop()
        result = self.loop.run_until_complete(self._fetch(request.url, site, proxy))
        request.extras.status_code = result.status_code
        return self._to_page(request, site, result)

    def _to_page(self, request: Request, site: Site, result: FetchResult) -> Page:
        if result.error:
            raise DownloadError(request.url, result.error, result.status_code)

        if result.status_code not in site.accepted_status_codes:
            if site.cycle_retry_times > 0:
                page = Page(request=request, status_code=result.status_code)
                page.is_need_cycle_retry = True
                return page
            raise DownloadError(request.url, f"Unaccepted status {result.status_code}",
                                result.status_code)

        page = Page(
            request=request,
            status_code=result.status_code,
            content=result.content,
            content_type=result.content_type or site.content_type,
        )
        if not self._is_text_content(result.content_type or ''):
            self.logger.debug(f"Skipping non-text content: {request.url} ({result.content_type})")
            page.skip = True
        elif result.content is None:
            raise DownloadError(request.url, "Content too large", result.status_code)
        return page

    async def _start(self, site: Site):
        if self.session is None:
            headers = {'User-Agent': site.user_agent}
            headers.update(site.headers)
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=site.timeout),
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=max(2, self.thread_num),
                    ttl_dns_cache=300,
                )
            )
            self.logger.debug("HttpDownloader session started")

    async def _fetch(self, url: str, site: Site, proxy: Optional[str]) -> FetchResult:
        """Fetch a single URL; transport errors come back in FetchResult.error."""
        await self._start(site)
        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url, proxy=proxy) as response:
                content_type = response.headers.get('content-type', '').lower()
                content = None
                if self._is_text_content(content_type):
                    content = await self._read_content_safely(response)

                if content:
                    self.stats['total_bytes_downloaded'] += len(content)
                self.stats['successful_requests'] += 1

                self.logger.debug(f"Fetched {url}: {response.status} ({len(content) if content else 0} bytes)")
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=content,
                    headers=dict(response.headers),
                    content_type=content_type,
                    encoding=response.charset,
                    fetch_time=time.time() - start_time
                )

        except asyncio.TimeoutError:
            error_msg = "Request timeout"
            self.logger.warning(f"Timeout fetching {url}")

        except ClientError as e:
            error_msg = f"Client error: {e}"
            self.logger.warning(f"Client error fetching {url}: {e}")

        self.stats['failed_requests'] += 1
        return FetchResult(
            url=url,
            status_code=0,
            error=error_msg,
            fetch_time=time.time() - start_time
        )

    def _is_text_content(self, content_type: str) -> bool:
        return any(text_type in content_type for text_type in TEXT_CONTENT_TYPES)

    async def _read_content_safely(self, response) -> Optional[str]:
        """Read the body, or None when it exceeds max_content_size."""
        content_length = response.headers.get('content-length')
        if content_length and int(content_length) > self.max_content_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()

    def close(self):
        """Close the session and the private event loop."""
        if self.loop is None:
            return
        if self.session is not None:
            self.loop.run_until_complete(self.session.close())
            self.session = None
        self.loop.close()
        self.loop = None
        self.logger.debug("HttpDownloader closed")
