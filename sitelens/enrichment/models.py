"""Records produced by the AI enrichment pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Optional

from sitelens.scraper.models import ProductRecord

SENTIMENTS = ("positive", "neutral", "negative")


@dataclass
class FAQRecord:
    question: str
    answer: str
    category: Optional[str] = None
    confidence: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ContentAnalysisRecord:
    summary: str = ""
    keywords: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    sentiment: Optional[str] = None
    language: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EnhancedProductRecord(ProductRecord):
    """A :class:`ProductRecord` plus AI-generated copy.

    Both AI fields stay empty when enhancement failed for the product's batch.
    """

    generated_description: Optional[str] = None
    suggested_keywords: list[str] = field(default_factory=list)

    @classmethod
    def from_product(
        cls,
        product: ProductRecord,
        generated_description: Optional[str] = None,
        suggested_keywords: Optional[list[str]] = None,
    ) -> "EnhancedProductRecord":
        base = {f.name: getattr(product, f.name) for f in fields(ProductRecord)}
        base["features"] = list(product.features)
        return cls(
            **base,
            generated_description=generated_description,
            suggested_keywords=list(suggested_keywords or []),
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["generatedDescription"] = self.generated_description
        data["suggestedKeywords"] = list(self.suggested_keywords)
        return data


@dataclass
class ContactInfo:
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


@dataclass
class KeyInfoRecord:
    company_name: Optional[str] = None
    contact: ContactInfo = field(default_factory=ContactInfo)
    business_hours: Optional[str] = None
    social_media: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "companyName": self.company_name,
            "contact": asdict(self.contact),
            "businessHours": self.business_hours,
            "socialMedia": dict(self.social_media),
        }


@dataclass
class TrainingExample:
    """One question/answer pair for chatbot fine-tuning data."""

    input: str
    output: str
    category: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
