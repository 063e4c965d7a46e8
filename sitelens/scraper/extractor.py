"""Content extraction: turns page HTML into an :class:`ExtractedDocument`.

``extract_document`` is a pure function over HTML so it can be used for both
browser-rendered pages (:func:`extract_from_page`) and statically fetched
ones.  It never raises on malformed or missing markup; absent fields fall
back to empty values.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

import trafilatura
from bs4 import BeautifulSoup

from sitelens.config import settings
from sitelens.scraper.models import ExtractedDocument, ImageRecord
from sitelens.scraper.products import extract_products

logger = logging.getLogger(__name__)

MAX_LINKS = 500
MAX_IMAGES = 100
# Minimum length for an isolated block to count as the page's main text.
MIN_MAIN_TEXT_CHARS = 100

_NON_CONTENT_TAGS = ["script", "style", "noscript", "iframe", "template", "svg"]
_BOILERPLATE_TAGS = ["nav", "header", "footer", "aside", "form"]
_MAIN_SELECTORS = [
    "main",
    "article",
    '[role="main"]',
    ".main-content",
    "#main-content",
    ".content",
    "#content",
    ".post-content",
    ".article-content",
]
_SKIPPED_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _extract_metadata(soup: BeautifulSoup) -> dict[str, str]:
    """Collect every ``name``/``property``/``itemprop`` → ``content`` meta pair."""
    metadata: dict[str, str] = {}
    for meta in soup.find_all("meta"):
        key = meta.get("name") or meta.get("property") or meta.get("itemprop")
        content = meta.get("content")
        if key and content:
            metadata[key.strip()] = content.strip()
    return metadata


def _extract_title(soup: BeautifulSoup, metadata: dict[str, str]) -> str:
    """Return ``<title>``, falling back to og/twitter titles and the first ``<h1>``."""
    if soup.title is not None:
        title = _collapse(soup.title.get_text())
        if title:
            return title
    for key in ("og:title", "twitter:title"):
        if metadata.get(key):
            return metadata[key]
    h1 = soup.find("h1")
    return _collapse(h1.get_text(" ")) if h1 else ""


def _extract_description(metadata: dict[str, str]) -> str:
    for key in ("description", "og:description", "twitter:description"):
        if metadata.get(key):
            return metadata[key]
    return ""


def _base_url(soup: BeautifulSoup, page_url: str) -> str:
    base = soup.find("base", href=True)
    if base is None:
        return page_url
    try:
        return urljoin(page_url, base["href"].strip())
    except ValueError:
        return page_url


def _resolve_url(raw: Optional[str], base: str) -> Optional[str]:
    """Resolve *raw* against *base*; ``None`` for non-navigable targets."""
    if not raw:
        return None
    raw = raw.strip()
    if not raw or raw.lower().startswith(_SKIPPED_PREFIXES):
        return None
    try:
        absolute, _fragment = urldefrag(urljoin(base, raw))
        scheme = urlparse(absolute).scheme
    except ValueError:
        return None
    if scheme not in ("http", "https"):
        return None
    return absolute


def _extract_links(soup: BeautifulSoup, base: str) -> List[str]:
    """Return deduplicated absolute ``<a href>`` targets in document order."""
    seen: set[str] = set()
    links: List[str] = []
    for a in soup.find_all("a", href=True):
        url = _resolve_url(a["href"], base)
        if url and url not in seen:
            seen.add(url)
            links.append(url)
            if len(links) >= MAX_LINKS:
                break
    return links


def _int_attr(value: Any) -> Optional[int]:
    if value is None:
        return None
    match = re.match(r"\s*(\d+)", str(value))
    return int(match.group(1)) if match else None


def _extract_images(soup: BeautifulSoup, base: str) -> List[ImageRecord]:
    seen: set[str] = set()
    images: List[ImageRecord] = []
    for img in soup.find_all("img"):
        src = _resolve_url(
            img.get("src") or img.get("data-src") or img.get("data-lazy-src"), base
        )
        if not src or src in seen:
            continue
        seen.add(src)
        images.append(
            ImageRecord(
                src=src,
                alt=_collapse(img.get("alt", "")) or None,
                width=_int_attr(img.get("width")),
                height=_int_attr(img.get("height")),
            )
        )
        if len(images) >= MAX_IMAGES:
            break
    return images


def _extract_structured_data(soup: BeautifulSoup) -> List[Any]:
    """Parse every JSON-LD block; invalid JSON is skipped."""
    blocks: List[Any] = []
    for script in soup.find_all("script", attrs={"type": re.compile(r"ld\+json", re.I)}):
        payload = script.string or script.get_text()
        if not payload or not payload.strip():
            continue
        try:
            blocks.append(json.loads(payload, strict=False))
        except ValueError:
            logger.debug("[extract] skipping invalid JSON-LD block")
    return blocks


def _largest_text_block(soup: BeautifulSoup) -> str:
    """Return the longest run of sibling paragraphs under one container."""
    best = ""
    for container in soup.find_all(["div", "section", "article", "main", "td"]):
        paragraphs = [
            _collapse(child.get_text(" "))
            for child in container.find_all(["p", "blockquote", "pre"], recursive=False)
        ]
        text = " ".join(p for p in paragraphs if p)
        if len(text) > len(best):
            best = text
    return best if len(best) >= MIN_MAIN_TEXT_CHARS else ""


def _isolate_main_text(html: str, soup: BeautifulSoup, url: str) -> str:
    """Best-effort reading text; empty string when no confident block is found.

    Tries ``trafilatura`` first, then well-known content containers, then the
    largest paragraph block.  *soup* must already have boilerplate removed.
    """
    try:
        text = trafilatura.extract(
            html,
            include_links=False,
            include_images=False,
            include_tables=True,
            no_fallback=False,
            url=url,
        )
    except Exception as exc:  # noqa: BLE001
        logger.debug("[extract] trafilatura failed for %s: %s", url, exc)
        text = None

    if text and len(_collapse(text)) >= MIN_MAIN_TEXT_CHARS:
        return _collapse(text)

    for selector in _MAIN_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        candidate = _collapse(element.get_text(" "))
        if len(candidate) > MIN_MAIN_TEXT_CHARS:
            return candidate

    return _largest_text_block(soup)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_document(html: str, url: str) -> ExtractedDocument:
    """Extract a structured document from *html* fetched at *url*."""
    soup = BeautifulSoup(html or "", "html.parser")
    base = _base_url(soup, url)

    metadata = _extract_metadata(soup)
    title = _extract_title(soup, metadata)
    structured_data = _extract_structured_data(soup)
    links = _extract_links(soup, base)
    images = _extract_images(soup, base)
    products = extract_products(soup, structured_data, base)

    # Text extraction works on a stripped tree; everything above needed the
    # scripts (JSON-LD) and navigation (links) intact.
    for tag in soup(_NON_CONTENT_TAGS):
        tag.decompose()
    body = soup.body or soup
    raw_text = _collapse(body.get_text(" "))[: settings.max_text_chars]

    for tag in soup(_BOILERPLATE_TAGS):
        tag.decompose()
    main_text = _isolate_main_text(html or "", soup, url) or raw_text

    return ExtractedDocument(
        url=url,
        title=title,
        description=_extract_description(metadata),
        raw_text=raw_text,
        main_text=main_text[: settings.max_main_text_chars],
        products=tuple(products),
        images=tuple(images),
        links=tuple(links),
        metadata=metadata,
        structured_data=tuple(structured_data),
    )


async def extract_from_page(page: Any) -> ExtractedDocument:
    """Extract a document from a rendered Playwright page."""
    html = await page.content()
    return extract_document(html, page.url)
