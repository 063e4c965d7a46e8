"""Scrape orchestration shared by the HTTP API and the CLI.

Acquisition (browser, robots.txt, navigation) failures are fatal to a
request and propagate as :class:`~sitelens.errors.SiteLensError` subclasses.
Enrichment steps run concurrently afterwards and can only degrade their own
part of the result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from sitelens.config import settings
from sitelens.enrichment.analyzer import (
    analyze_content,
    default_analysis,
    enhance_products,
    extract_key_info,
    generate_faqs,
    generate_training_data,
)
from sitelens.enrichment.models import (
    ContentAnalysisRecord,
    EnhancedProductRecord,
    FAQRecord,
    KeyInfoRecord,
    TrainingExample,
)
from sitelens.errors import PolicyError, ValidationError
from sitelens.scraper.browser import BrowserManager
from sitelens.scraper.crawler import StopReason, browser_fetcher, crawl_site
from sitelens.scraper.extractor import extract_from_page
from sitelens.scraper.fetcher import fetch_document
from sitelens.scraper.models import ExtractedDocument

logger = logging.getLogger(__name__)

CRAWL_MODES = ("browser", "static")


@dataclass
class ScrapeOptions:
    generate_faq: bool = False
    analyze_content: bool = False
    enhance_products: bool = False
    extract_key_info: bool = False
    generate_training_data: bool = False
    max_faqs: int = 10
    wait_until: str = "networkidle"


@dataclass
class ScrapeOutcome:
    """One extracted page plus whichever enrichment steps were requested."""

    document: ExtractedDocument
    faqs: Optional[list[FAQRecord]] = None
    analysis: Optional[ContentAnalysisRecord] = None
    enhanced_products: Optional[list[EnhancedProductRecord]] = None
    key_info: Optional[KeyInfoRecord] = None
    training_data: Optional[list[TrainingExample]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"content": self.document.to_dict()}
        if self.faqs is not None:
            data["faqs"] = [faq.to_dict() for faq in self.faqs]
        if self.analysis is not None:
            data["analysis"] = self.analysis.to_dict()
        if self.enhanced_products is not None:
            data["enhancedProducts"] = [p.to_dict() for p in self.enhanced_products]
        if self.key_info is not None:
            data["keyInfo"] = self.key_info.to_dict()
        if self.training_data is not None:
            data["trainingData"] = [example.to_dict() for example in self.training_data]
        return data


@dataclass
class CrawlOutcome:
    pages: list[ScrapeOutcome] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    stop_reason: StopReason = StopReason.FRONTIER_EXHAUSTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "pages": [page.to_dict() for page in self.pages],
            "failures": dict(self.failures),
            "stopReason": self.stop_reason.value,
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_url(url: Optional[str]) -> str:
    """Return *url* stripped, or raise if it is not an absolute http(s) URL.

    Raises:
        ValidationError: ``"URL is required"`` or ``"Invalid URL format"``.
    """
    if url is None or not url.strip():
        raise ValidationError("URL is required")
    url = url.strip()
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError as exc:
        raise ValidationError("Invalid URL format") from exc
    if parsed.scheme not in ("http", "https") or not host:
        raise ValidationError("Invalid URL format")
    return url


# ---------------------------------------------------------------------------
# Acquisition
# ---------------------------------------------------------------------------

async def scrape_document(
    manager: BrowserManager, url: str, wait_until: str = "networkidle"
) -> ExtractedDocument:
    """Render *url* in a fresh page and extract it.

    The page is closed on every path, including errors.

    Raises:
        BrowserInitError: If the browser cannot be launched.
        PolicyError: If robots.txt disallows the site.
        NavigationError: If the page cannot be loaded.
    """
    await manager.init()
    if not await manager.check_robots_txt(url):
        raise PolicyError("Scraping not allowed by robots.txt")

    page = await manager.new_page()
    try:
        await manager.goto(page, url, wait_until=wait_until)
        document = await extract_from_page(page)
    finally:
        await manager.close_page(page)

    logger.info(
        "[scrape] %s: %d chars, %d product(s), %d link(s)",
        document.url,
        len(document.body_text),
        len(document.products),
        len(document.links),
    )
    return document


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------

async def _faqs_with_training(
    doc: ExtractedDocument, options: ScrapeOptions
) -> tuple[list[FAQRecord], Optional[list[TrainingExample]]]:
    faqs = await generate_faqs(doc, options.max_faqs)
    if not options.generate_training_data:
        return faqs, None
    return faqs, await generate_training_data(doc, faqs)


def _fallback(step: str, doc: ExtractedDocument) -> Any:
    """Result reported for a step that raised unexpectedly."""
    if step == "faqs":
        return [], None
    if step == "analysis":
        return default_analysis(doc)
    if step == "enhanced_products":
        return [EnhancedProductRecord.from_product(p) for p in doc.products]
    return KeyInfoRecord()


async def enrich_document(doc: ExtractedDocument, options: ScrapeOptions) -> ScrapeOutcome:
    """Run the requested enrichment steps on *doc* concurrently.

    Product enhancement only runs when the page has products and uses the
    page's body text as context.  A step that raises is logged and replaced
    by its empty result so the other steps still report.
    """
    steps: dict[str, Any] = {}
    if options.generate_faq or options.generate_training_data:
        steps["faqs"] = _faqs_with_training(doc, options)
    if options.analyze_content:
        steps["analysis"] = analyze_content(doc)
    if options.enhance_products and doc.products:
        steps["enhanced_products"] = enhance_products(doc.products, doc.body_text)
    if options.extract_key_info:
        steps["key_info"] = extract_key_info(doc)

    outcome = ScrapeOutcome(document=doc)
    if not steps:
        return outcome

    results = await asyncio.gather(*steps.values(), return_exceptions=True)
    for step, result in zip(steps, results):
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            logger.error("[enrich] %s step failed for %s: %s", step, doc.url, result)
            result = _fallback(step, doc)
        if step == "faqs":
            outcome.faqs, outcome.training_data = result
            if not options.generate_faq:
                outcome.faqs = None
        else:
            setattr(outcome, step, result)
    return outcome


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def scrape_and_enrich(
    manager: BrowserManager, url: Optional[str], options: Optional[ScrapeOptions] = None
) -> ScrapeOutcome:
    """Validate, scrape and enrich a single page."""
    options = options or ScrapeOptions()
    url = validate_url(url)
    document = await scrape_document(manager, url, wait_until=options.wait_until)
    return await enrich_document(document, options)


async def crawl_and_enrich(
    manager: BrowserManager,
    url: Optional[str],
    options: Optional[ScrapeOptions] = None,
    max_pages: Optional[int] = None,
    mode: str = "browser",
) -> CrawlOutcome:
    """Crawl the site at *url* and enrich every extracted page in turn.

    Args:
        manager: Browser used in ``browser`` mode (not launched in ``static``).
        url: Seed URL.
        options: Enrichment flags applied to every page.
        max_pages: Page budget (default ``settings.crawl_max_pages``).
        mode: ``"browser"`` to render pages, ``"static"`` for plain HTTP.

    Raises:
        ValidationError: Bad URL or mode.
        PolicyError: If robots.txt disallows the site.
    """
    options = options or ScrapeOptions()
    url = validate_url(url)
    if mode not in CRAWL_MODES:
        raise ValidationError(f"mode must be one of {', '.join(CRAWL_MODES)}")

    if mode == "browser":
        await manager.init()
        result = await crawl_site(
            url,
            browser_fetcher(manager, options.wait_until),
            max_pages=max_pages,
            respect_robots=True,
        )
    else:
        async with httpx.AsyncClient(
            timeout=settings.request_timeout, follow_redirects=True
        ) as client:

            async def fetch(page_url: str) -> ExtractedDocument:
                return await fetch_document(page_url, client=client)

            result = await crawl_site(url, fetch, max_pages=max_pages, respect_robots=True)

    outcome = CrawlOutcome(failures=result.failures, stop_reason=result.stop_reason)
    for document in result.documents:
        outcome.pages.append(await enrich_document(document, options))
    return outcome
