"""Data models for the scraper pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ImageRecord:
    """A single ``<img>`` found on a page, resolved to an absolute URL."""

    src: str
    alt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "src": self.src,
            "alt": self.alt,
            "width": self.width,
            "height": self.height,
        }


@dataclass
class ProductRecord:
    """A product detected on a page (structured data, microdata or heuristics)."""

    name: str
    price: Optional[float] = None
    currency: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    category: Optional[str] = None
    features: list[str] = field(default_factory=list)
    sku: Optional[str] = None
    availability: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "price": self.price,
            "currency": self.currency,
            "description": self.description,
            "imageUrl": self.image_url,
            "productUrl": self.product_url,
            "category": self.category,
            "features": list(self.features),
            "sku": self.sku,
            "availability": self.availability,
        }


@dataclass(frozen=True)
class ExtractedDocument:
    """Structured content extracted from one fetched page.

    Created once per page and never mutated afterwards; the collection fields
    are tuples so the document can be shared between concurrent enrichment
    steps safely.
    """

    url: str
    title: str = ""
    description: str = ""
    raw_text: str = ""
    main_text: str = ""
    products: tuple[ProductRecord, ...] = ()
    images: tuple[ImageRecord, ...] = ()
    links: tuple[str, ...] = ()
    metadata: dict[str, str] = field(default_factory=dict)
    structured_data: tuple[Any, ...] = ()
    fetched_at: datetime = field(default_factory=_utcnow)

    @property
    def body_text(self) -> str:
        """Main text when one was isolated, otherwise the full page text."""
        return self.main_text or self.raw_text

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "rawText": self.raw_text,
            "mainText": self.main_text,
            "products": [p.to_dict() for p in self.products],
            "images": [i.to_dict() for i in self.images],
            "links": list(self.links),
            "metadata": dict(self.metadata),
            "structuredData": list(self.structured_data),
            "fetchedAt": self.fetched_at.isoformat(),
        }
