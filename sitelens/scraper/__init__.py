"""Scraper package — browser lifecycle, fetching, extraction and crawling."""

from sitelens.scraper.browser import BrowserManager, check_robots_txt, install_shutdown_hooks
from sitelens.scraper.crawler import CrawlResult, canonicalize_url, crawl_site
from sitelens.scraper.extractor import extract_document, extract_from_page
from sitelens.scraper.fetcher import fetch_document, fetch_html
from sitelens.scraper.models import ExtractedDocument, ImageRecord, ProductRecord
from sitelens.scraper.products import parse_price

__all__ = [
    "BrowserManager",
    "check_robots_txt",
    "install_shutdown_hooks",
    "CrawlResult",
    "canonicalize_url",
    "crawl_site",
    "extract_document",
    "extract_from_page",
    "fetch_document",
    "fetch_html",
    "ExtractedDocument",
    "ImageRecord",
    "ProductRecord",
    "parse_price",
]
