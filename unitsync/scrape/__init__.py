"""Catalog scraping: rendering, extraction and the crawl worker pool."""

from .config import ScrapeConfig
from .fetcher import FetchEngine, PageCache
from .extractor import check_unit_page, looks_like_unit_page, parse_unit_html
from .crawler import CrawlScheduler, CrawlSummary

__all__ = [
    'ScrapeConfig',
    'FetchEngine',
    'PageCache',
    'parse_unit_html',
    'looks_like_unit_page',
    'check_unit_page',
    'CrawlScheduler',
    'CrawlSummary',
]
