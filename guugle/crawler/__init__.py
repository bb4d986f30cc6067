"""
Web crawler core components.
"""

from .parser import extract_links, is_html
from .fetcher import (
    WebFetcher, FetchResult, HtmlFetcher, HtmlDocument,
    FetchError, NotHtml, TransportFailure, BadStatus, InvalidUrl
)
from .scheduler import CrawlerScheduler

__all__ = [
    'extract_links', 'is_html',
    'WebFetcher', 'FetchResult', 'HtmlFetcher', 'HtmlDocument',
    'FetchError', 'NotHtml', 'TransportFailure', 'BadStatus', 'InvalidUrl',
    'CrawlerScheduler'
]
