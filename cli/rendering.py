"""Plain-text summaries of scrape and crawl results for the CLI."""

from __future__ import annotations

from typing import List

from sitelens.pipeline import CrawlOutcome, ScrapeOutcome

_PREVIEW_CHARS = 500


def _price(product) -> str:
    if product.price is None:
        return "price unknown"
    return f"{product.price:g} {product.currency or ''}".strip()


def render_outcome(outcome: ScrapeOutcome, tag: str = "scrape") -> str:
    """Render one page's extraction and enrichment as indented text.

    Args:
        outcome: The page to render.
        tag: Bracketed prefix for the header lines.

    Returns:
        Multi-line string; sections for enrichment steps that were not run
        are omitted.
    """
    doc = outcome.document
    lines: List[str] = [
        f"[{tag}] URL      : {doc.url}",
        f"[{tag}] Title    : {doc.title or '(none)'}",
        f"[{tag}] Words    : {len(doc.body_text.split())}",
        f"[{tag}] Links    : {len(doc.links)}",
        f"[{tag}] Images   : {len(doc.images)}",
        f"[{tag}] Products : {len(doc.products)}",
    ]
    for product in doc.products:
        lines.append(f"  - {product.name} ({_price(product)})")

    if outcome.analysis is not None:
        analysis = outcome.analysis
        lines.append("")
        lines.append(f"Summary ({analysis.language}): {analysis.summary}")
        if analysis.keywords:
            lines.append(f"Keywords: {', '.join(analysis.keywords)}")
        if analysis.topics:
            lines.append(f"Topics: {', '.join(analysis.topics)}")
        if analysis.sentiment:
            lines.append(f"Sentiment: {analysis.sentiment}")

    if outcome.faqs is not None:
        lines.append("")
        lines.append(f"FAQs ({len(outcome.faqs)}):")
        for i, faq in enumerate(outcome.faqs, 1):
            lines.append(f"  {i}. Q: {faq.question}")
            lines.append(f"     A: {faq.answer}")

    if outcome.enhanced_products is not None:
        lines.append("")
        lines.append("Enhanced products:")
        for product in outcome.enhanced_products:
            lines.append(f"  - {product.name}: {product.generated_description or '(not enhanced)'}")

    if outcome.key_info is not None:
        info = outcome.key_info
        lines.append("")
        lines.append(f"Company: {info.company_name or '(unknown)'}")
        for label, value in (
            ("Email", info.contact.email),
            ("Phone", info.contact.phone),
            ("Address", info.contact.address),
            ("Hours", info.business_hours),
        ):
            if value:
                lines.append(f"{label}: {value}")
        for network, url in info.social_media.items():
            lines.append(f"{network}: {url}")

    if outcome.training_data is not None:
        lines.append("")
        lines.append(f"Training examples: {len(outcome.training_data)}")

    if outcome.faqs is None and outcome.analysis is None:
        preview = doc.body_text[:_PREVIEW_CHARS]
        if preview:
            lines.append("")
            lines.append(preview + ("…" if len(doc.body_text) > _PREVIEW_CHARS else ""))

    return "\n".join(lines)


def render_crawl(outcome: CrawlOutcome) -> str:
    """Render a crawl as a page list followed by its failures."""
    lines: List[str] = [
        f"[crawl] Pages    : {len(outcome.pages)}",
        f"[crawl] Failures : {len(outcome.failures)}",
        f"[crawl] Stopped  : {outcome.stop_reason.value}",
        "",
    ]
    for i, page in enumerate(outcome.pages, 1):
        doc = page.document
        lines.append(f"  {i}. {doc.url}  {doc.title!r}  ({len(doc.products)} product(s))")
    for url, message in outcome.failures.items():
        lines.append(f"  ✗ {url}: {message}")
    return "\n".join(lines)
