"""SiteLens CLI — scrape, crawl and serve from the command line.

Usage:
    python cli/main.py --help

Commands:
    scrape    Render one page and optionally enrich it with the LLM
    crawl     Breadth-first crawl of one site
    robots    Check whether robots.txt allows scraping a site
    serve     Run the HTTP API with uvicorn
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from sitelens.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any working
# directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
from typing import Optional

import typer

from sitelens.config import settings
from sitelens.errors import SiteLensError
from sitelens.log import setup_logging
from sitelens.pipeline import CRAWL_MODES, ScrapeOptions, crawl_and_enrich, scrape_and_enrich
from sitelens.scraper.browser import BrowserManager, check_robots_txt, install_shutdown_hooks

from cli.rendering import render_crawl, render_outcome

app = typer.Typer(
    name="sitelens",
    help="SiteLens scraping CLI.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Configure logging for every command."""
    setup_logging("DEBUG" if verbose else settings.log_level)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

async def _with_browser(run):
    """Run ``run(manager)`` with a browser that is closed however it ends."""
    manager = BrowserManager()
    install_shutdown_hooks(manager)
    try:
        return await run(manager)
    finally:
        await manager.close()


def _fail(tag: str, exc: Exception) -> None:
    typer.echo(f"[{tag}] ✗ {exc}", err=True)
    raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command("scrape")
def scrape(
    url: str = typer.Argument(..., help="URL to scrape."),
    faq: bool = typer.Option(False, "--faq", help="Generate FAQs."),
    analyze: bool = typer.Option(False, "--analyze", help="Summarise and classify the page."),
    enhance: bool = typer.Option(False, "--enhance", help="Write product descriptions."),
    key_info: bool = typer.Option(False, "--key-info", help="Extract company/contact info."),
    training: bool = typer.Option(
        False, "--training", help="Expand FAQs into chatbot training pairs."
    ),
    max_faqs: int = typer.Option(10, "--max-faqs", min=1, max=50, help="Maximum FAQs."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
) -> None:
    """Render a URL in the headless browser and extract its content."""
    options = ScrapeOptions(
        generate_faq=faq,
        analyze_content=analyze,
        enhance_products=enhance,
        extract_key_info=key_info,
        generate_training_data=training,
        max_faqs=max_faqs,
    )
    typer.echo(f"[scrape] Fetching {url!r} …", err=True)
    try:
        outcome = asyncio.run(
            _with_browser(lambda manager: scrape_and_enrich(manager, url, options))
        )
    except SiteLensError as exc:
        _fail("scrape", exc)

    if as_json:
        typer.echo(json.dumps(outcome.to_dict(), ensure_ascii=False, indent=2))
    else:
        typer.echo(render_outcome(outcome))


@app.command("crawl")
def crawl(
    url: str = typer.Argument(..., help="Seed URL; the crawl stays on its host."),
    max_pages: Optional[int] = typer.Option(
        None, "--max-pages", min=1, help="Page budget (default CRAWL_MAX_PAGES)."
    ),
    mode: str = typer.Option("browser", "--mode", help="Fetch mode: browser | static."),
    faq: bool = typer.Option(False, "--faq", help="Generate FAQs for every page."),
    analyze: bool = typer.Option(False, "--analyze", help="Analyse every page."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
) -> None:
    """Crawl a site breadth-first and extract every page."""
    if mode not in CRAWL_MODES:
        typer.echo(f"[crawl] Unknown mode {mode!r}. Use: {' | '.join(CRAWL_MODES)}", err=True)
        raise typer.Exit(1)

    options = ScrapeOptions(generate_faq=faq, analyze_content=analyze)
    typer.echo(f"[crawl] Crawling {url!r} (mode={mode}) …", err=True)
    try:
        outcome = asyncio.run(
            _with_browser(
                lambda manager: crawl_and_enrich(
                    manager, url, options, max_pages=max_pages, mode=mode
                )
            )
        )
    except (SiteLensError, ValueError) as exc:
        _fail("crawl", exc)

    if as_json:
        typer.echo(json.dumps(outcome.to_dict(), ensure_ascii=False, indent=2))
    else:
        typer.echo(render_crawl(outcome))


@app.command("robots")
def robots(
    url: str = typer.Argument(..., help="Any URL on the site to check."),
) -> None:
    """Report whether the site's robots.txt allows scraping."""
    allowed = asyncio.run(check_robots_txt(url))
    if allowed:
        typer.echo(f"[robots] allowed: {url}")
    else:
        typer.echo(f"[robots] disallowed: {url}")
        raise typer.Exit(1)


@app.command("serve")
def serve(
    host: str = typer.Option(settings.api_host, "--host", help="Bind address."),
    port: int = typer.Option(settings.api_port, "--port", help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    typer.echo(f"[serve] Listening on http://{host}:{port}")
    uvicorn.run("sitelens.api.app:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
