"""AI enrichment of extracted documents.

Each public coroutine makes one or more :func:`~sitelens.enrichment.llm.complete`
calls and turns the reply into typed records.  Provider failures, timeouts and
unparseable replies are logged and degrade to an empty or pass-through result;
none of these functions raises for them.

Prompts are written in English but ask the model to answer in the language of
the page, so Japanese pages get Japanese FAQs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence

from sitelens.config import settings
from sitelens.enrichment.llm import complete
from sitelens.enrichment.models import (
    SENTIMENTS,
    ContactInfo,
    ContentAnalysisRecord,
    EnhancedProductRecord,
    FAQRecord,
    KeyInfoRecord,
    TrainingExample,
)
from sitelens.enrichment.parsing import extract_json_array, extract_json_object
from sitelens.errors import ParseError, ProviderError
from sitelens.scraper.models import ExtractedDocument, ProductRecord

logger = logging.getLogger(__name__)

FAQ_MIN_CHARS = 100
ANALYSIS_MIN_CHARS = 50
PRODUCT_BATCH_SIZE = 5
# Seconds between product batches.
PRODUCT_BATCH_DELAY = 1.0
MAX_QUESTION_VARIATIONS = 5

# Prompt excerpt lengths.
_PAGE_EXCERPT = 8000
_KEY_INFO_EXCERPT = 5000
_PRODUCT_CONTEXT_EXCERPT = 1000

_JSON_ONLY = "Return only valid JSON with no explanation, no Markdown and no code fences."


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _str_or_none(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _faq_from_json(item: Any) -> Optional[FAQRecord]:
    if not isinstance(item, dict):
        return None
    question = _str_or_none(item.get("question"))
    answer = _str_or_none(item.get("answer"))
    if not question or not answer:
        return None
    confidence = item.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = None
    return FAQRecord(
        question=question,
        answer=answer,
        category=_str_or_none(item.get("category")),
        confidence=float(confidence) if confidence is not None else None,
    )


def _page_header(doc: ExtractedDocument) -> str:
    return f"URL: {doc.url}\nTitle: {doc.title}\nDescription: {doc.description}"


def _format_product(index: int, product: ProductRecord) -> str:
    if product.price is not None:
        price = f"{product.price:g} {product.currency or settings.default_currency}"
    else:
        price = "unknown"
    return (
        f"[{index}] {product.name}\n"
        f"    price: {price}\n"
        f"    description: {product.description or 'none'}\n"
        f"    category: {product.category or 'unknown'}"
    )


def default_analysis(doc: ExtractedDocument) -> ContentAnalysisRecord:
    """The analysis reported when the model is skipped or fails."""
    return ContentAnalysisRecord(
        summary=doc.description or "",
        language=settings.default_language,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def generate_faqs(doc: ExtractedDocument, count: int = 10) -> list[FAQRecord]:
    """Generate up to *count* customer-style FAQs grounded in *doc*.

    Pages with fewer than ``FAQ_MIN_CHARS`` characters of body text are
    skipped without calling the model.
    """
    text = doc.body_text
    if count <= 0 or len(text) < FAQ_MIN_CHARS:
        return []

    prompt = (
        f"Write about {count} FAQs that customers are likely to ask about the web page below.\n\n"
        f"{_page_header(doc)}\n\nPage content:\n{text[:_PAGE_EXCERPT]}\n\n"
        "Respond with a JSON array of objects with the keys "
        '"question", "answer" and "category" (for example products, shipping, payment).\n'
        "- Phrase questions the way a real customer would.\n"
        "- Base every answer strictly on the page content.\n"
        "- Write in the same language as the page content.\n"
        f"- {_JSON_ONLY}"
    )
    system_prompt = (
        "You are a customer support specialist. You turn website content into the "
        "FAQs customers actually need. " + _JSON_ONLY
    )

    try:
        reply = await complete(prompt, system_prompt, temperature=0.2, max_tokens=4096)
        items = extract_json_array(reply)
    except (ProviderError, ParseError) as exc:
        logger.warning("[enrich] FAQ generation failed for %s: %s", doc.url, exc)
        return []

    faqs = [faq for faq in (_faq_from_json(item) for item in items) if faq is not None]
    logger.info("[enrich] %d FAQ(s) for %s", min(len(faqs), count), doc.url)
    return faqs[:count]


async def analyze_content(doc: ExtractedDocument) -> ContentAnalysisRecord:
    """Summarise *doc* and classify its keywords, categories, topics and tone."""
    text = doc.body_text
    if len(text) < ANALYSIS_MIN_CHARS:
        return default_analysis(doc)

    prompt = (
        "Analyse the web page below.\n\n"
        f"Title: {doc.title}\nDescription: {doc.description}\n\n"
        f"Page content:\n{text[:_PAGE_EXCERPT]}\n\n"
        "Respond with a JSON object:\n"
        "{\n"
        '  "summary": "concise summary of about 200 characters",\n'
        '  "keywords": ["5-10 search keywords"],\n'
        '  "categories": ["1-3 business categories such as e-commerce, service, information"],\n'
        '  "sentiment": "positive | neutral | negative",\n'
        '  "topics": ["3-5 main topics"],\n'
        '  "language": "ISO 639-1 code of the page language"\n'
        "}\n"
        "Write the summary, keywords and topics in the same language as the page.\n"
        + _JSON_ONLY
    )
    system_prompt = "You are an expert in web content analysis. " + _JSON_ONLY

    try:
        reply = await complete(prompt, system_prompt, temperature=0.1, max_tokens=2048)
        data = extract_json_object(reply)
    except (ProviderError, ParseError) as exc:
        logger.warning("[enrich] content analysis failed for %s: %s", doc.url, exc)
        return default_analysis(doc)

    sentiment = _str_or_none(data.get("sentiment"))
    if sentiment is not None:
        sentiment = sentiment.lower()
        if sentiment not in SENTIMENTS:
            sentiment = None

    return ContentAnalysisRecord(
        summary=_str_or_none(data.get("summary")) or doc.description or "",
        keywords=_str_list(data.get("keywords")),
        categories=_str_list(data.get("categories")),
        topics=_str_list(data.get("topics")),
        sentiment=sentiment,
        language=_str_or_none(data.get("language")) or settings.default_language,
    )


async def _enhance_batch(
    batch: Sequence[ProductRecord], context: Optional[str]
) -> list[EnhancedProductRecord]:
    enhanced = [EnhancedProductRecord.from_product(product) for product in batch]

    context_block = ""
    if context:
        context_block = f"Page context:\n{context[:_PRODUCT_CONTEXT_EXCERPT]}\n\n"
    listing = "\n".join(_format_product(i, product) for i, product in enumerate(batch))
    prompt = (
        "Improve the description of each product below and suggest search keywords.\n\n"
        f"{context_block}Products:\n{listing}\n\n"
        "Respond with a JSON array with one object per product:\n"
        '[{"index": 0, "generatedDescription": "appealing description of 100-200 characters", '
        '"suggestedKeywords": ["5-10 keywords"]}]\n'
        '"index" is the number in brackets before the product name. '
        "Write in the same language as the product names.\n" + _JSON_ONLY
    )
    system_prompt = "You are an e-commerce product marketing specialist. " + _JSON_ONLY

    try:
        reply = await complete(prompt, system_prompt, temperature=0.3, max_tokens=2048)
        items = extract_json_array(reply)
    except (ProviderError, ParseError) as exc:
        logger.warning("[enrich] product batch of %d left unenhanced: %s", len(batch), exc)
        return enhanced

    for item in items:
        if not isinstance(item, dict):
            continue
        index = item.get("index")
        if isinstance(index, bool) or not isinstance(index, int):
            continue
        if not 0 <= index < len(batch):
            continue
        enhanced[index] = EnhancedProductRecord.from_product(
            batch[index],
            generated_description=_str_or_none(item.get("generatedDescription")),
            suggested_keywords=_str_list(item.get("suggestedKeywords")),
        )
    return enhanced


async def enhance_products(
    products: Sequence[ProductRecord], context: Optional[str] = None
) -> list[EnhancedProductRecord]:
    """Add generated descriptions and keywords to *products*.

    Products are sent in batches of ``PRODUCT_BATCH_SIZE`` with
    ``PRODUCT_BATCH_DELAY`` seconds between batches.  The result always has
    one record per input product, in input order; products in a failed batch
    come back without AI fields.
    """
    enhanced: list[EnhancedProductRecord] = []
    for start in range(0, len(products), PRODUCT_BATCH_SIZE):
        if start:
            await asyncio.sleep(PRODUCT_BATCH_DELAY)
        batch = products[start : start + PRODUCT_BATCH_SIZE]
        enhanced.extend(await _enhance_batch(batch, context))
    return enhanced


async def extract_key_info(doc: ExtractedDocument) -> KeyInfoRecord:
    """Extract company name, contact details, hours and social links."""
    text = doc.body_text
    if not text:
        return KeyInfoRecord()

    prompt = (
        "Extract the basic business information from the web page below.\n\n"
        f"URL: {doc.url}\nTitle: {doc.title}\n\n"
        f"Page content:\n{text[:_KEY_INFO_EXCERPT]}\n\n"
        "Respond with a JSON object:\n"
        "{\n"
        '  "companyName": "company or shop name",\n'
        '  "contactInfo": {"email": "...", "phone": "...", "address": "..."},\n'
        '  "businessHours": "opening hours",\n'
        '  "socialMedia": {"twitter": "URL", "facebook": "URL", "instagram": "URL"}\n'
        "}\n"
        "Omit any field that is not stated on the page. Do not guess.\n" + _JSON_ONLY
    )
    system_prompt = (
        "You extract business information from web pages. "
        "Report only facts present on the page. " + _JSON_ONLY
    )

    try:
        reply = await complete(prompt, system_prompt, temperature=0.0, max_tokens=1024)
        data = extract_json_object(reply)
    except (ProviderError, ParseError) as exc:
        logger.warning("[enrich] key info extraction failed for %s: %s", doc.url, exc)
        return KeyInfoRecord()

    contact = data.get("contactInfo")
    if not isinstance(contact, dict):
        contact = {}
    social = data.get("socialMedia")
    if not isinstance(social, dict):
        social = {}

    return KeyInfoRecord(
        company_name=_str_or_none(data.get("companyName")),
        contact=ContactInfo(
            email=_str_or_none(contact.get("email")),
            phone=_str_or_none(contact.get("phone")),
            address=_str_or_none(contact.get("address")),
        ),
        business_hours=_str_or_none(data.get("businessHours")),
        social_media={
            str(network): url.strip()
            for network, url in social.items()
            if isinstance(url, str) and url.strip()
        },
    )


async def _generate_question_variations(question: str, topic: str = "") -> list[str]:
    """Return up to ``MAX_QUESTION_VARIATIONS`` paraphrases of *question*."""
    about = f" The question is about: {topic}." if topic else ""
    prompt = (
        f"Write 3-5 different ways a customer might ask the following question.{about}\n\n"
        f"Question: {question}\n\n"
        "Keep the meaning identical and use the same language as the question.\n"
        'Respond with a JSON array of strings, e.g. ["variation 1", "variation 2"].\n'
        + _JSON_ONLY
    )
    system_prompt = "You paraphrase customer questions. " + _JSON_ONLY

    try:
        reply = await complete(prompt, system_prompt, temperature=0.7, max_tokens=512)
        items = extract_json_array(reply)
    except (ProviderError, ParseError) as exc:
        logger.warning("[enrich] no variations for %r: %s", question, exc)
        return []

    variations: list[str] = []
    for item in _str_list(items):
        if item != question and item not in variations:
            variations.append(item)
    return variations[:MAX_QUESTION_VARIATIONS]


async def generate_training_data(
    doc: ExtractedDocument, faqs: Sequence[FAQRecord]
) -> list[TrainingExample]:
    """Expand *faqs* into question/answer training pairs.

    Each FAQ contributes itself plus its paraphrased variants, all sharing the
    FAQ's answer and category.  Calls are made one FAQ at a time.
    """
    examples: list[TrainingExample] = []
    for faq in faqs:
        examples.append(TrainingExample(input=faq.question, output=faq.answer, category=faq.category))
        for variation in await _generate_question_variations(faq.question, doc.title):
            examples.append(
                TrainingExample(input=variation, output=faq.answer, category=faq.category)
            )
    logger.info("[enrich] %d training example(s) from %d FAQ(s)", len(examples), len(faqs))
    return examples
