"""
webspider

A multi-threaded crawl engine: a frontier of requests, a pool of workers,
pluggable download/extraction/output strategies and a bounded retry policy.
"""

__version__ = "1.0.0"
__description__ = "Multi-threaded web crawling engine with pluggable strategies"

# The crawler package must load before storage; storage modules import its models
from .crawler import (
    Request, Page, ResultItems, Site,
    Spider, Status, SpiderError,
    QueueScheduler, PriorityScheduler, RedisScheduler,
    HttpDownloader, PageProcessor, LinkPageProcessor,
)
from .storage import ConsolePipeline, CollectorPipeline, JsonFilePipeline, FailedRequestLog

__all__ = [
    'Request', 'Page', 'ResultItems', 'Site',
    'Spider', 'Status', 'SpiderError',
    'QueueScheduler', 'PriorityScheduler', 'RedisScheduler',
    'HttpDownloader', 'PageProcessor', 'LinkPageProcessor',
    'ConsolePipeline', 'CollectorPipeline', 'JsonFilePipeline', 'FailedRequestLog',
]
