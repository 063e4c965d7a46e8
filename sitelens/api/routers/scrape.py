"""Scrape endpoints.

Routes
------
POST /scrape          Body: {"url": ..., "generateFAQ": bool, ...}   → scrape + enrich
GET  /scrape?url=...                                                  → extraction only
POST /scrape/crawl    Body: {"url": ..., "maxPages": 10, "mode": "browser", ...}

Every response is ``{"success": bool, "data"?: ..., "error"?: str, "message"?: str}``.
Status codes: 400 missing/invalid URL or malformed body, 403 robots.txt disallow, 500 anything
else (``message`` carries the underlying error text).
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Literal, Optional

from fastapi import APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from sitelens.config import settings
from sitelens.errors import PolicyError, ValidationError
from sitelens.pipeline import ScrapeOptions, crawl_and_enrich, scrape_and_enrich

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ScrapeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Optional so a missing URL is reported as 400 rather than 422.
    url: Optional[str] = None
    generate_faq: bool = Field(False, alias="generateFAQ")
    analyze_content: bool = Field(False, alias="analyzeContent")
    enhance_products: bool = Field(False, alias="enhanceProducts")
    extract_key_info: bool = Field(False, alias="extractKeyInfo")
    generate_training_data: bool = Field(False, alias="generateTrainingData")
    max_faqs: int = Field(10, alias="maxFAQs", ge=1, le=50)

    def to_options(self) -> ScrapeOptions:
        return ScrapeOptions(
            generate_faq=self.generate_faq,
            analyze_content=self.analyze_content,
            enhance_products=self.enhance_products,
            extract_key_info=self.extract_key_info,
            generate_training_data=self.generate_training_data,
            max_faqs=self.max_faqs,
        )


class CrawlRequest(ScrapeRequest):
    max_pages: int = Field(
        default_factory=lambda: settings.crawl_max_pages, alias="maxPages", ge=1, le=100
    )
    mode: Literal["browser", "static"] = "browser"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error_response(status_code: int, error: str, message: Optional[str] = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": error}
    if message:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content)


def validation_error_response(exc: RequestValidationError) -> JSONResponse:
    """Map a request-body validation failure onto a 400 envelope."""
    errors = exc.errors()
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}"
        for err in errors
    )
    if any("url" in err.get("loc", ()) for err in errors):
        return _error_response(400, "Invalid URL format", details)
    return _error_response(400, "Invalid request body", details)


async def _respond(url: Optional[str], work: Awaitable[Any]) -> Any:
    """Await *work* and map its outcome or error onto the response envelope."""
    try:
        outcome = await work
    except ValidationError as exc:
        return _error_response(400, str(exc))
    except PolicyError as exc:
        return _error_response(403, str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("[api] scrape of %s failed", url)
        return _error_response(500, "Internal server error", str(exc))
    return {"success": True, "data": outcome.to_dict()}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("")
async def scrape_endpoint(body: ScrapeRequest, request: Request) -> Any:
    """Scrape one URL and run the requested enrichment steps."""
    manager = request.app.state.browser
    return await _respond(body.url, scrape_and_enrich(manager, body.url, body.to_options()))


@router.get("")
async def scrape_get_endpoint(request: Request, url: Optional[str] = None) -> Any:
    """Scrape one URL without any enrichment."""
    manager = request.app.state.browser
    return await _respond(url, scrape_and_enrich(manager, url, ScrapeOptions()))


@router.post("/crawl")
async def crawl_endpoint(body: CrawlRequest, request: Request) -> Any:
    """Crawl a site from ``url`` and enrich every page found."""
    manager = request.app.state.browser
    return await _respond(
        body.url,
        crawl_and_enrich(
            manager,
            body.url,
            body.to_options(),
            max_pages=body.max_pages,
            mode=body.mode,
        ),
    )
