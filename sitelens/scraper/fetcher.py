"""Plain HTTP fetcher for pages that need no JavaScript rendering.

Used by the crawler's ``static`` mode.  Rendering-dependent pages should go
through :class:`~sitelens.scraper.browser.BrowserManager` instead.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from sitelens.config import settings
from sitelens.errors import NavigationError
from sitelens.scraper.extractor import extract_document
from sitelens.scraper.models import ExtractedDocument

logger = logging.getLogger(__name__)

# Markers client-side frameworks leave in the HTML they serve.
_SPA_MARKERS = [
    re.compile(r'<div[^>]+id=["\'](?:root|app|__next|__nuxt)["\']\s*>\s*</div>', re.IGNORECASE),
    re.compile(r"window\.__(?:NEXT_DATA|NUXT)__"),
    re.compile(r"\bng-version="),
    re.compile(r"\bdata-reactroot\b"),
]

# A document this large with this little visible text is an unrendered shell.
_SHELL_MIN_HTML_CHARS = 2000
_SHELL_MAX_VISIBLE_CHARS = 200

_DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


def looks_like_spa(html: str) -> bool:
    """Return ``True`` if static *html* is probably a client-rendered shell."""
    if any(marker.search(html) for marker in _SPA_MARKERS):
        return True
    if len(html) <= _SHELL_MIN_HTML_CHARS:
        return False
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    visible = " ".join(soup.get_text(" ").split())
    return len(visible) < _SHELL_MAX_VISIBLE_CHARS


async def fetch_html(
    url: str, client: Optional[httpx.AsyncClient] = None
) -> tuple[str, str]:
    """Fetch *url* and return ``(final_url, html)`` after redirects.

    Raises:
        NavigationError: On transport failure or a 4xx/5xx response.
    """
    headers = {**_DEFAULT_HEADERS, "User-Agent": settings.bot_user_agent}

    async def _get(c: httpx.AsyncClient) -> httpx.Response:
        response = await c.get(url, headers=headers)
        response.raise_for_status()
        return response

    try:
        if client is not None:
            response = await _get(client)
        else:
            async with httpx.AsyncClient(
                timeout=settings.request_timeout, follow_redirects=True
            ) as c:
                response = await _get(c)
    except httpx.HTTPStatusError as exc:
        raise NavigationError(
            f"Failed to fetch {url}: HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise NavigationError(f"Failed to fetch {url}: {exc}") from exc

    return str(response.url), response.text


async def fetch_document(
    url: str, client: Optional[httpx.AsyncClient] = None
) -> ExtractedDocument:
    """Fetch *url* over plain HTTP and extract it."""
    final_url, html = await fetch_html(url, client=client)
    if looks_like_spa(html):
        logger.warning("[fetch] %s looks JavaScript-rendered; static extraction may be sparse", final_url)
    return extract_document(html, final_url)
