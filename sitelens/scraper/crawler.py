"""Bounded breadth-first crawl of a single host.

Every URL moves through ``QUEUED → FETCHING → EXTRACTED | FAILED``.  URLs are
canonicalized (fragment stripped, query kept, scheme/host lowercased) before
both visited-set membership and host comparison, so ``/a`` and ``/a#top`` are
the same page while ``/a?page=2`` is a different one.

A crawl is strictly sequential: one fetch at a time with a fixed delay
between fetches.  Independent crawls may run concurrently and share a
:class:`~sitelens.scraper.browser.BrowserManager`, but the state of one crawl
is never shared with another.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterator, Optional
from urllib.parse import urlsplit, urlunsplit

from sitelens.config import settings
from sitelens.errors import NavigationError, PolicyError
from sitelens.scraper.browser import check_robots_txt
from sitelens.scraper.extractor import extract_from_page
from sitelens.scraper.models import ExtractedDocument

logger = logging.getLogger(__name__)

# Lower bound on the pause between two fetches against the same host.
MIN_CRAWL_DELAY = 1.0

# Wall clock for the crawl time limit.
_clock = time.monotonic

Fetcher = Callable[[str], Awaitable[ExtractedDocument]]


class UrlStatus(str, Enum):
    QUEUED = "queued"
    FETCHING = "fetching"
    EXTRACTED = "extracted"
    FAILED = "failed"


class StopReason(str, Enum):
    FRONTIER_EXHAUSTED = "frontier_exhausted"
    MAX_PAGES = "max_pages"
    TIME_LIMIT = "time_limit"


# ---------------------------------------------------------------------------
# URL canonicalization
# ---------------------------------------------------------------------------

def canonicalize_url(url: str) -> str:
    """Return the canonical form of *url* used for dedup and host checks.

    ``scheme://host/path?query`` with scheme and host lowercased, an empty
    path turned into ``/`` and any fragment removed.
    """
    parts = urlsplit(url.strip())
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", parts.query, "")
    )


def url_host(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


# ---------------------------------------------------------------------------
# Crawl state
# ---------------------------------------------------------------------------

class Frontier:
    """FIFO queue of canonical URLs with constant-time membership checks."""

    def __init__(self) -> None:
        self._queue: deque[str] = deque()
        self._members: set[str] = set()

    def push(self, url: str) -> bool:
        """Append *url* unless it is already queued; return whether it was added."""
        if url in self._members:
            return False
        self._queue.append(url)
        self._members.add(url)
        return True

    def pop(self) -> str:
        url = self._queue.popleft()
        self._members.discard(url)
        return url

    def __contains__(self, url: object) -> bool:
        return url in self._members

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self) -> Iterator[str]:
        return iter(self._queue)


@dataclass
class CrawlState:
    base_host: str
    frontier: Frontier = field(default_factory=Frontier)
    visited: set[str] = field(default_factory=set)
    statuses: dict[str, UrlStatus] = field(default_factory=dict)
    pages_extracted: int = 0

    def enqueue(self, url: str) -> bool:
        """Queue *url* if it is an unseen same-host http(s) URL."""
        canonical = canonicalize_url(url)
        if urlsplit(canonical).scheme not in ("http", "https"):
            return False
        if url_host(canonical) != self.base_host:
            return False
        if canonical in self.visited or canonical in self.frontier:
            return False
        self.frontier.push(canonical)
        self.statuses[canonical] = UrlStatus.QUEUED
        return True


@dataclass
class CrawlResult:
    documents: list[ExtractedDocument] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    stop_reason: StopReason = StopReason.FRONTIER_EXHAUSTED
    visited: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Fetchers
# ---------------------------------------------------------------------------

def browser_fetcher(manager, wait_until: str = "networkidle") -> Fetcher:
    """Return a fetcher that renders each URL in its own browser page."""

    async def fetch(url: str) -> ExtractedDocument:
        page = await manager.new_page()
        try:
            await manager.goto(page, url, wait_until=wait_until)
            return await extract_from_page(page)
        finally:
            await manager.close_page(page)

    return fetch


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def crawl_site(
    start_url: str,
    fetch: Fetcher,
    max_pages: Optional[int] = None,
    delay: Optional[float] = None,
    time_limit: Optional[float] = None,
    respect_robots: bool = False,
) -> CrawlResult:
    """Crawl from *start_url* breadth-first, staying on the seed's host.

    Stops when the frontier is empty, *max_pages* documents have been
    extracted, or *time_limit* seconds have elapsed.  A page that fails to
    fetch or extract is recorded in ``failures`` and the crawl continues,
    except for the seed itself: an unreachable seed fails the whole crawl.

    Args:
        start_url: Seed URL; its host bounds the crawl.
        fetch: Coroutine function turning a URL into an ExtractedDocument.
        max_pages: Page budget (default ``settings.crawl_max_pages``).
        delay: Seconds between fetches, never less than ``MIN_CRAWL_DELAY``.
        time_limit: Wall-clock ceiling in seconds
            (default ``settings.crawl_time_limit``).
        respect_robots: Check the seed origin's robots.txt first.

    Raises:
        PolicyError: If *respect_robots* is set and robots.txt disallows
            the site.
        NavigationError: If the seed URL cannot be fetched.
    """
    max_pages = settings.crawl_max_pages if max_pages is None else max_pages
    if max_pages < 1:
        raise ValueError("max_pages must be at least 1")
    delay = max(settings.crawl_delay if delay is None else delay, MIN_CRAWL_DELAY)
    time_limit = settings.crawl_time_limit if time_limit is None else time_limit

    if respect_robots and not await check_robots_txt(start_url):
        raise PolicyError("Scraping not allowed by robots.txt")

    seed = canonicalize_url(start_url)
    state = CrawlState(base_host=url_host(seed))
    state.enqueue(start_url)
    result = CrawlResult()
    started = _clock()

    while state.frontier:
        if state.pages_extracted >= max_pages:
            break
        if _clock() - started >= time_limit:
            result.stop_reason = StopReason.TIME_LIMIT
            logger.warning(
                "[crawl] time limit of %.0fs reached after %d page(s)",
                time_limit,
                state.pages_extracted,
            )
            break

        url = state.frontier.pop()
        if url in state.visited:
            continue
        state.visited.add(url)
        result.visited.append(url)

        if len(result.visited) > 1:
            await asyncio.sleep(delay)

        state.statuses[url] = UrlStatus.FETCHING
        logger.info("[crawl] (%d/%d) fetching %s", state.pages_extracted + 1, max_pages, url)
        try:
            document = await fetch(url)
        except Exception as exc:  # noqa: BLE001
            state.statuses[url] = UrlStatus.FAILED
            if url == seed:
                logger.error("[crawl] seed %s unreachable: %s", url, exc)
                if isinstance(exc, NavigationError):
                    raise
                raise NavigationError(f"Could not reach {url}: {exc}") from exc
            result.failures[url] = str(exc) or exc.__class__.__name__
            logger.warning("[crawl] ✗ %s: %s", url, exc)
            continue

        state.statuses[url] = UrlStatus.EXTRACTED
        state.pages_extracted += 1
        result.documents.append(document)

        # A redirect target counts as visited so it is not fetched twice.
        final_url = canonicalize_url(document.url)
        if final_url != url and url_host(final_url) == state.base_host:
            state.visited.add(final_url)

        queued = sum(1 for link in document.links if state.enqueue(link))
        logger.debug("[crawl] %s queued %d new link(s)", url, queued)

    if result.stop_reason != StopReason.TIME_LIMIT and state.pages_extracted >= max_pages:
        result.stop_reason = StopReason.MAX_PAGES

    logger.info(
        "[crawl] done: %d page(s), %d failure(s), stop=%s",
        len(result.documents),
        len(result.failures),
        result.stop_reason.value,
    )
    return result
