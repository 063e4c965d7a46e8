"""Tests for the AI enrichment pipeline.

No LLM is ever called: ``sitelens.enrichment.analyzer.complete`` is patched
with an ``AsyncMock`` whose replies (or exceptions) each test scripts, and the
provider adapter itself is tested against a fake chat model.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sitelens.config import settings
from sitelens.enrichment.analyzer import (
    PRODUCT_BATCH_DELAY,
    analyze_content,
    enhance_products,
    extract_key_info,
    generate_faqs,
    generate_training_data,
)
from sitelens.enrichment.llm import _get_llm, complete
from sitelens.enrichment.models import FAQRecord
from sitelens.enrichment.parsing import extract_json_array, extract_json_object
from sitelens.errors import ParseError, ProviderError
from sitelens.scraper.models import ExtractedDocument, ProductRecord

_LONG_TEXT = (
    "Kyoto Ceramics sells hand-made tea cups and bowls. Orders ship within three "
    "business days across Japan. Returns are accepted within 14 days of delivery."
)


def _doc(text: str = _LONG_TEXT, **kwargs) -> ExtractedDocument:
    return ExtractedDocument(
        url="https://shop.example/",
        title="Kyoto Ceramics",
        description="Hand-made ceramics.",
        main_text=text,
        **kwargs,
    )


@pytest.fixture()
def llm():
    with patch("sitelens.enrichment.analyzer.complete", new_callable=AsyncMock) as mock:
        yield mock


@pytest.fixture()
def no_sleep():
    with patch("sitelens.enrichment.analyzer.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------

class TestParsing:
    def test_array_in_code_fence(self) -> None:
        text = 'Here you go:\n```json\n[{"question": "Q?", "answer": "A."}]\n```'
        assert extract_json_array(text) == [{"question": "Q?", "answer": "A."}]

    def test_array_skips_non_json_brackets(self) -> None:
        text = 'Result [see below]: ["a", "b"] done'
        assert extract_json_array(text) == ["a", "b"]

    def test_object_with_nested_braces(self) -> None:
        text = 'Sure! {"summary": "x", "contactInfo": {"email": "a@b.c"}} Thanks.'
        assert extract_json_object(text)["contactInfo"] == {"email": "a@b.c"}

    def test_missing_json_raises(self) -> None:
        with pytest.raises(ParseError):
            extract_json_array("I could not find any FAQs.")
        with pytest.raises(ParseError):
            extract_json_object("")

    def test_wrong_type_raises(self) -> None:
        with pytest.raises(ParseError):
            extract_json_object('["not", "an", "object"]')


# ---------------------------------------------------------------------------
# Provider adapter
# ---------------------------------------------------------------------------

class TestComplete:
    async def test_returns_reply_text(self) -> None:
        model = MagicMock()
        model.ainvoke = AsyncMock(return_value=MagicMock(content="hello"))
        with patch("sitelens.enrichment.llm._get_llm", return_value=model) as get_llm:
            assert await complete("hi", "be brief", temperature=0.2, max_tokens=64) == "hello"

        get_llm.assert_called_once_with(0.2, 64)
        messages = model.ainvoke.await_args.args[0]
        assert [m.content for m in messages] == ["be brief", "hi"]

    async def test_timeout_becomes_provider_error(self) -> None:
        async def slow(_messages):
            await asyncio.sleep(5)

        model = MagicMock()
        model.ainvoke = slow
        with patch("sitelens.enrichment.llm._get_llm", return_value=model):
            with pytest.raises(ProviderError, match="timed out"):
                await complete("hi", "sys", timeout=0.01)

    async def test_provider_failure_becomes_provider_error(self) -> None:
        model = MagicMock()
        model.ainvoke = AsyncMock(side_effect=ConnectionError("connection refused"))
        with patch("sitelens.enrichment.llm._get_llm", return_value=model):
            with pytest.raises(ProviderError, match="connection refused"):
                await complete("hi", "sys")

    async def test_multipart_content_is_joined(self) -> None:
        reply = MagicMock(content=[{"type": "text", "text": "a"}, "b", {"type": "image"}])
        model = MagicMock()
        model.ainvoke = AsyncMock(return_value=reply)
        with patch("sitelens.enrichment.llm._get_llm", return_value=model):
            assert await complete("hi", "sys") == "ab"

    def test_ollama_model_parameters(self, monkeypatch) -> None:
        monkeypatch.setattr("sitelens.enrichment.llm.settings.llm_provider", "ollama")
        with patch("langchain_ollama.ChatOllama") as chat:
            _get_llm(0.3, 2048)

        chat.assert_called_once_with(
            model=settings.ollama_chat_model,
            base_url=settings.ollama_base_url,
            temperature=0.3,
            num_predict=2048,
        )

    def test_openai_model_parameters(self, monkeypatch) -> None:
        monkeypatch.setattr("sitelens.enrichment.llm.settings.llm_provider", "openai")
        with patch("langchain_openai.ChatOpenAI") as chat:
            _get_llm(0.0, 1024)

        chat.assert_called_once_with(
            model=settings.openai_chat_model, temperature=0.0, max_tokens=1024
        )


# ---------------------------------------------------------------------------
# FAQs
# ---------------------------------------------------------------------------

class TestGenerateFaqs:
    async def test_short_text_skips_provider(self, llm) -> None:
        assert await generate_faqs(_doc("Too short."), count=5) == []
        llm.assert_not_awaited()

    async def test_parses_and_caps(self, llm) -> None:
        llm.return_value = json.dumps(
            [
                {"question": "Do you ship abroad?", "answer": "Only within Japan.",
                 "category": "shipping"},
                {"question": "No answer"},
                {"question": "Can I return items?", "answer": "Within 14 days.",
                 "confidence": 0.9},
                {"question": "Extra?", "answer": "Extra."},
            ]
        )

        faqs = await generate_faqs(_doc(), count=2)

        assert [f.question for f in faqs] == ["Do you ship abroad?", "Can I return items?"]
        assert faqs[0].category == "shipping"
        assert faqs[1].confidence == 0.9
        kwargs = llm.await_args.kwargs
        assert (kwargs["temperature"], kwargs["max_tokens"]) == (0.2, 4096)

    async def test_provider_error_returns_empty(self, llm) -> None:
        llm.side_effect = ProviderError("LLM call timed out after 60s")
        assert await generate_faqs(_doc()) == []

    async def test_unparseable_reply_returns_empty(self, llm) -> None:
        llm.return_value = "Sorry, I cannot help with that."
        assert await generate_faqs(_doc()) == []

    async def test_falls_back_to_raw_text(self, llm) -> None:
        llm.return_value = "[]"
        doc = ExtractedDocument(url="https://shop.example/", raw_text=_LONG_TEXT)

        await generate_faqs(doc)
        llm.assert_awaited_once()


# ---------------------------------------------------------------------------
# Content analysis
# ---------------------------------------------------------------------------

class TestAnalyzeContent:
    async def test_parses_analysis(self, llm) -> None:
        llm.return_value = json.dumps(
            {
                "summary": "A ceramics shop.",
                "keywords": ["ceramics", "tea cup", 3],
                "categories": ["e-commerce"],
                "sentiment": "Positive",
                "topics": ["pottery"],
                "language": "en",
            }
        )

        analysis = await analyze_content(_doc())

        assert analysis.summary == "A ceramics shop."
        assert analysis.keywords == ["ceramics", "tea cup"]
        assert analysis.sentiment == "positive"
        assert analysis.language == "en"
        assert llm.await_args.kwargs["temperature"] == 0.1

    async def test_unknown_sentiment_dropped(self, llm) -> None:
        llm.return_value = '{"summary": "x", "sentiment": "ecstatic"}'

        analysis = await analyze_content(_doc())
        assert analysis.sentiment is None
        assert analysis.language == settings.default_language

    async def test_short_text_returns_default(self, llm) -> None:
        analysis = await analyze_content(_doc("tiny"))

        llm.assert_not_awaited()
        assert analysis.summary == "Hand-made ceramics."
        assert analysis.language == settings.default_language

    async def test_failure_returns_default(self, llm) -> None:
        llm.side_effect = ProviderError("boom")

        analysis = await analyze_content(_doc())
        assert analysis.summary == "Hand-made ceramics."
        assert analysis.keywords == []


# ---------------------------------------------------------------------------
# Product enhancement
# ---------------------------------------------------------------------------

def _batch_reply(size: int) -> str:
    return json.dumps(
        [
            {"index": i, "generatedDescription": f"desc {i}", "suggestedKeywords": ["pottery"]}
            for i in range(size)
        ]
    )


class TestEnhanceProducts:
    async def test_failed_batch_passes_through(self, llm, no_sleep) -> None:
        products = [ProductRecord(name=f"Item {i}", price=float(i)) for i in range(12)]
        llm.side_effect = [_batch_reply(5), ProviderError("rate limited"), _batch_reply(2)]

        enhanced = await enhance_products(products, context="Kyoto Ceramics")

        assert len(enhanced) == 12
        assert [p.name for p in enhanced] == [p.name for p in products]
        assert all(p.generated_description for p in enhanced[:5])
        assert all(p.generated_description is None for p in enhanced[5:10])
        assert all(p.suggested_keywords == [] for p in enhanced[5:10])
        assert [p.generated_description for p in enhanced[10:]] == ["desc 0", "desc 1"]
        assert enhanced[7].price == 7.0

    async def test_waits_between_batches(self, llm, no_sleep) -> None:
        products = [ProductRecord(name=f"Item {i}") for i in range(11)]
        llm.side_effect = [_batch_reply(5), _batch_reply(5), _batch_reply(1)]

        await enhance_products(products)

        assert llm.await_count == 3
        assert no_sleep.await_count == 2
        no_sleep.assert_awaited_with(PRODUCT_BATCH_DELAY)

    async def test_bad_indices_are_ignored(self, llm, no_sleep) -> None:
        products = [ProductRecord(name="A"), ProductRecord(name="B")]
        llm.return_value = json.dumps(
            [
                {"index": 1, "generatedDescription": "for B"},
                {"index": 7, "generatedDescription": "out of range"},
                {"index": True, "generatedDescription": "bool index"},
                "junk",
            ]
        )

        enhanced = await enhance_products(products)

        assert [p.generated_description for p in enhanced] == [None, "for B"]

    async def test_empty_input(self, llm) -> None:
        assert await enhance_products([]) == []
        llm.assert_not_awaited()


# ---------------------------------------------------------------------------
# Key info and training data
# ---------------------------------------------------------------------------

class TestKeyInfo:
    async def test_parses_key_info(self, llm) -> None:
        llm.return_value = json.dumps(
            {
                "companyName": "Kyoto Ceramics",
                "contactInfo": {"email": "shop@example.com", "phone": "075-000-0000"},
                "businessHours": "10:00-18:00",
                "socialMedia": {"instagram": "https://instagram.com/kyoto", "twitter": ""},
            }
        )

        info = await extract_key_info(_doc())

        assert info.company_name == "Kyoto Ceramics"
        assert info.contact.email == "shop@example.com"
        assert info.contact.address is None
        assert info.social_media == {"instagram": "https://instagram.com/kyoto"}
        assert llm.await_args.kwargs["temperature"] == 0.0
        assert info.to_dict()["contact"]["phone"] == "075-000-0000"

    async def test_failure_returns_empty_record(self, llm) -> None:
        llm.return_value = "no json here"

        info = await extract_key_info(_doc())
        assert info.company_name is None
        assert info.social_media == {}


class TestTrainingData:
    async def test_failing_variation_call_only_affects_its_faq(self, llm) -> None:
        faqs = [
            FAQRecord(question="Do you ship abroad?", answer="Only within Japan.", category="shipping"),
            FAQRecord(question="Can I return items?", answer="Within 14 days."),
        ]
        llm.side_effect = [
            '["Is overseas shipping available?", "Do you deliver outside Japan?", '
            '"Do you ship abroad?", "Can I order from overseas?"]',
            ProviderError("boom"),
        ]

        examples = await generate_training_data(_doc(), faqs)

        assert [e.input for e in examples] == [
            "Do you ship abroad?",
            "Is overseas shipping available?",
            "Do you deliver outside Japan?",
            "Can I order from overseas?",
            "Can I return items?",
        ]
        assert {e.output for e in examples[:4]} == {"Only within Japan."}
        assert examples[1].category == "shipping"
        assert llm.await_args_list[0].kwargs["temperature"] == 0.7

    async def test_no_faqs(self, llm) -> None:
        assert await generate_training_data(_doc(), []) == []
        llm.assert_not_awaited()
