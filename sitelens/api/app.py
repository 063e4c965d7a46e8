"""FastAPI application factory.

Lifespan
--------
On startup the app configures logging and creates one
:class:`~sitelens.scraper.browser.BrowserManager`, shared by every request via
``request.app.state.browser``.  Chromium itself is launched lazily by the
first scrape.  On shutdown the browser is closed.

Routers
-------
    /scrape    — single-page scrape, extraction-only GET, and site crawl
    /health    — liveness and browser status
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from sitelens import __version__
from sitelens.config import settings
from sitelens.log import setup_logging
from sitelens.scraper.browser import BrowserManager, install_shutdown_hooks

from sitelens.api.routers import scrape as scrape_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared browser manager on startup and close it on shutdown."""
    setup_logging(settings.log_level)
    manager = BrowserManager()
    # uvicorn owns SIGINT/SIGTERM and runs this lifespan's shutdown path.
    install_shutdown_hooks(manager, handle_signals=False)
    app.state.browser = manager
    try:
        yield
    finally:
        await app.state.browser.close()


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="SiteLens API",
        description=(
            "Scrapes web pages with a shared headless browser, extracts text, "
            "products and metadata, crawls sites breadth-first and enriches "
            "the results with LLM-generated FAQs, analysis and product copy."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # Malformed bodies get the same envelope as every other failure.
        return scrape_router.validation_error_response(exc)

    app.include_router(scrape_router.router, prefix="/scrape", tags=["scrape"])

    @app.get("/health", tags=["health"])
    async def health(request: Request) -> dict[str, Any]:
        browser = getattr(request.app.state, "browser", None)
        return {
            "status": "ok",
            "browserInitialized": bool(browser is not None and browser.is_initialized()),
        }

    return app


# Module-level instance used by uvicorn:
#   uvicorn sitelens.api.app:app --reload
app = create_app()
