"""
Web crawler core components.
"""

from .url_frontier import URLFrontier
from .fetcher import WebFetcher, FetchResult
from .parser import LinkPipeline, canonicalize
from .extractor import Extractor, SelectorExtractor
from .error_policy import ErrorPolicy
from .scheduler import CrawlerScheduler, CrawlSession, RunState, WorkerReport

__all__ = [
    'URLFrontier',
    'WebFetcher', 'FetchResult',
    'LinkPipeline', 'canonicalize',
    'Extractor', 'SelectorExtractor',
    'ErrorPolicy',
    'CrawlerScheduler', 'CrawlSession', 'RunState', 'WorkerReport'
]
