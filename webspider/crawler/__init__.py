"""
Crawler core components.
"""

from .request import Request, RequestExtras, requests_from_urls
from .page import Page, ResultItems
from .site import Site
from .proxy import ProxyPool, StaticProxyPool
from .exceptions import SpiderError, DownloadError
from .scheduler import Scheduler, QueueScheduler, PriorityScheduler, RedisScheduler
from .downloader import Downloader, HttpDownloader, FetchResult
from .processor import PageProcessor, LinkPageProcessor
from .spider import Spider, Status

__all__ = [
    'Request', 'RequestExtras', 'requests_from_urls',
    'Page', 'ResultItems', 'Site',
    'ProxyPool', 'StaticProxyPool',
    'SpiderError', 'DownloadError',
    'Scheduler', 'QueueScheduler', 'PriorityScheduler', 'RedisScheduler',
    'Downloader', 'HttpDownloader', 'FetchResult',
    'PageProcessor', 'LinkPageProcessor',
    'Spider', 'Status',
]
