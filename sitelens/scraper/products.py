"""Product detection and locale-aware price parsing.

Detection runs in three tiers and stops at the first tier that yields
anything:

1. JSON-LD ``Product`` blocks (top level, lists, ``@graph`` and
   ``ItemList.itemListElement``).
2. schema.org microdata (``itemtype=".../Product"``).
3. A heuristic DOM scan over product-like containers and the containers
   surrounding "add to cart" affordances that carry a price-looking string.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterator, Optional
from urllib.parse import urljoin

import extruct
from bs4 import BeautifulSoup, Tag

from sitelens.config import settings
from sitelens.scraper.models import ProductRecord

logger = logging.getLogger(__name__)

MAX_PRODUCTS = 50

# ---------------------------------------------------------------------------
# Price parsing
# ---------------------------------------------------------------------------

# Checked longest-first so "US$" wins over "S$" and "$".
_PREFIXED_SYMBOLS = {
    "US$": "USD",
    "CA$": "CAD",
    "AU$": "AUD",
    "NZ$": "NZD",
    "HK$": "HKD",
    "NT$": "TWD",
    "MX$": "MXN",
    "CN¥": "CNY",
    "JP¥": "JPY",
    "C$": "CAD",
    "A$": "AUD",
    "S$": "SGD",
    "R$": "BRL",
}

_SYMBOLS = [
    ("円", "JPY"),
    ("￥", "JPY"),
    ("¥", "JPY"),
    ("元", "CNY"),
    ("€", "EUR"),
    ("£", "GBP"),
    ("₩", "KRW"),
    ("₹", "INR"),
    ("₽", "RUB"),
    ("₺", "TRY"),
    ("฿", "THB"),
    ("₫", "VND"),
    ("₱", "PHP"),
    ("$", "USD"),
]

_ISO_CODES = {
    "USD", "EUR", "JPY", "GBP", "CNY", "KRW", "INR", "CAD", "AUD", "NZD",
    "HKD", "SGD", "CHF", "SEK", "NOK", "DKK", "TWD", "BRL", "MXN", "RUB",
    "TRY", "THB", "PLN", "VND", "PHP",
}
_CODE_ALIASES = {"RMB": "CNY", "YEN": "JPY"}

# Currencies whose prices are never written with decimals, so "1.200" is
# a thousands-grouped integer.
_ZERO_DECIMAL = {"JPY", "KRW", "VND"}

_CODES = "|".join(sorted(_ISO_CODES | set(_CODE_ALIASES)))
# An uppercase code written directly before or after the amount: "EUR 15,50", "20 CHF".
_CODE_RE = re.compile(
    rf"(?<![A-Za-z])({_CODES})[\s\u00a0]?\d|\d[\s\u00a0]?({_CODES})(?![A-Za-z])"
)
_NUMBER_RE = re.compile(
    r"\d{1,3}(?:[\s\u00a0\u202f]\d{3})+(?:[.,]\d+)?"  # 1 234,56
    r"|\d[\d.,']*\d"                                  # 1,200 / 9.99 / 1.234,56
    r"|\d"
)
_COMMA_THOUSANDS_RE = re.compile(r"\d{1,3}(?:,\d{3})+")
_DOT_THOUSANDS_RE = re.compile(r"\d{1,3}(?:\.\d{3})+")


def detect_currency(text: str) -> Optional[str]:
    """Return the ISO 4217 code implied by *text*, or ``None``.

    Prefixed dollar and yen forms win, then an uppercase ISO code written next
    to the amount, then a bare symbol.  Ordinary words that happen to spell a
    code ("Try", "cad") are ignored.
    """
    if not text:
        return None

    for prefix in sorted(_PREFIXED_SYMBOLS, key=len, reverse=True):
        if prefix in text:
            return _PREFIXED_SYMBOLS[prefix]

    match = _CODE_RE.search(text)
    if match is not None:
        code = match.group(1) or match.group(2)
        return _CODE_ALIASES.get(code, code)

    for symbol, code in _SYMBOLS:
        if symbol in text:
            return code
    return None


def _normalise_number(raw: str, currency: Optional[str]) -> Optional[float]:
    s = re.sub(r"[\s\u00a0\u202f']", "", raw)

    if "," in s and "." in s:
        # Whichever separator comes last is the decimal mark.
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        if _COMMA_THOUSANDS_RE.fullmatch(s):
            s = s.replace(",", "")
        else:
            s = s.replace(",", ".")
    elif "." in s:
        if s.count(".") > 1 or (
            currency in _ZERO_DECIMAL and _DOT_THOUSANDS_RE.fullmatch(s)
        ):
            s = s.replace(".", "")

    try:
        return float(s)
    except ValueError:
        return None


def parse_price(text: Optional[str]) -> tuple[Optional[float], Optional[str]]:
    """Parse a display price into ``(amount, currency)``.

    Examples::

        parse_price("¥1,200")    -> (1200.0, "JPY")
        parse_price("$9.99")     -> (9.99, "USD")
        parse_price("€1.234,56") -> (1234.56, "EUR")
        parse_price("sold out")  -> (None, None)
    """
    if not text:
        return None, None

    currency = detect_currency(text)
    match = _NUMBER_RE.search(text)
    if match is None:
        return None, None

    amount = _normalise_number(match.group(0), currency)
    if amount is None:
        return None, None
    return amount, currency


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _clean(value: Any) -> Optional[str]:
    """Collapse whitespace in a scalar JSON-LD / DOM value."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("name") or value.get("@id")
    elif isinstance(value, list):
        value = value[0] if value else None
        return _clean(value)
    if value is None:
        return None
    text = re.sub(r"\s+", " ", str(value)).strip()
    return text or None


def _resolve(url: Optional[str], base: str) -> Optional[str]:
    if not url:
        return None
    try:
        return urljoin(base, url.strip())
    except ValueError:
        return None


def _coerce_price(value: Any) -> tuple[Optional[float], Optional[str]]:
    if isinstance(value, bool) or value is None:
        return None, None
    if isinstance(value, (int, float)):
        return float(value), None
    return parse_price(str(value))


def _dedupe(products: list[ProductRecord]) -> list[ProductRecord]:
    seen: set[tuple[str, Optional[float]]] = set()
    unique: list[ProductRecord] = []
    for product in products:
        key = (product.name.lower(), product.price)
        if key not in seen:
            seen.add(key)
            unique.append(product)
    return unique[:MAX_PRODUCTS]


# ---------------------------------------------------------------------------
# Tier 1: JSON-LD
# ---------------------------------------------------------------------------

def _has_type(data: dict[str, Any], wanted: str) -> bool:
    declared = data.get("@type")
    types = declared if isinstance(declared, list) else [declared]
    for t in types:
        if isinstance(t, str) and re.split(r"[/:]", t)[-1] == wanted:
            return True
    return False


def _iter_jsonld_products(data: Any) -> Iterator[dict[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _iter_jsonld_products(item)
        return
    if not isinstance(data, dict):
        return

    if _has_type(data, "Product"):
        yield data

    graph = data.get("@graph")
    if isinstance(graph, list):
        yield from _iter_jsonld_products(graph)

    if _has_type(data, "ItemList"):
        for element in data.get("itemListElement") or []:
            if isinstance(element, dict):
                yield from _iter_jsonld_products(element.get("item", element))


def _first_image(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("url") or value.get("contentUrl")
    return value if isinstance(value, str) and value.strip() else None


def _product_from_jsonld(data: dict[str, Any], page_url: str) -> Optional[ProductRecord]:
    name = _clean(data.get("name"))
    if not name:
        return None

    offers = data.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if not isinstance(offers, dict):
        offers = {}

    raw_price = offers.get("price")
    if raw_price is None:
        raw_price = offers.get("lowPrice")
    if raw_price is None and isinstance(offers.get("priceSpecification"), dict):
        raw_price = offers["priceSpecification"].get("price")
    if raw_price is None:
        # Microdata often puts price straight on the product.
        raw_price = data.get("price")
    price, parsed_currency = _coerce_price(raw_price)

    currency = (
        _clean(offers.get("priceCurrency"))
        or _clean(data.get("priceCurrency"))
        or parsed_currency
    )
    if price is not None and currency is None:
        currency = settings.default_currency

    availability = _clean(offers.get("availability"))
    if availability:
        availability = re.split(r"[/:]", availability)[-1]

    features: list[str] = []
    for prop in data.get("additionalProperty") or []:
        if not isinstance(prop, dict):
            continue
        label = _clean(prop.get("name"))
        if label:
            value = _clean(prop.get("value"))
            features.append(f"{label}: {value}" if value else label)

    return ProductRecord(
        name=name,
        price=price,
        currency=currency,
        description=_clean(data.get("description")),
        image_url=_resolve(_first_image(data.get("image")), page_url),
        product_url=_resolve(_clean(data.get("url")) or _clean(offers.get("url")), page_url),
        category=_clean(data.get("category")),
        features=features,
        sku=_clean(data.get("sku")),
        availability=availability,
    )


def products_from_structured_data(
    structured_data: list[Any], page_url: str
) -> list[ProductRecord]:
    """Build products from already-parsed JSON-LD blocks."""
    products: list[ProductRecord] = []
    for block in structured_data:
        for item in _iter_jsonld_products(block):
            product = _product_from_jsonld(item, page_url)
            if product is not None:
                products.append(product)
    return products


# ---------------------------------------------------------------------------
# Tier 2: microdata
# ---------------------------------------------------------------------------

def products_from_microdata(soup: BeautifulSoup, page_url: str) -> list[ProductRecord]:
    """Build products from schema.org microdata ``Product`` items.

    extruct resolves nested ``itemscope`` items (Brand, Offer, Review) into
    nested objects, so each property belongs to the item that declares it.
    ``uniform=True`` yields JSON-LD shaped dicts that go through the same
    mapping as tier 1.
    """
    if soup.find(attrs={"itemscope": True}) is None:
        return []
    data = extruct.extract(
        str(soup),
        base_url=page_url,
        syntaxes=["microdata"],
        uniform=True,
        errors="log",
    )
    return products_from_structured_data(data.get("microdata", []), page_url)


# ---------------------------------------------------------------------------
# Tier 3: heuristic DOM scan
# ---------------------------------------------------------------------------

_PRODUCT_CONTAINER_SELECTORS = ".product, .product-card, .product-item, [data-product-id]"
_NAME_SELECTORS = ".product-title, .product-name, .name, h1, h2, h3, h4"
_PRICE_SELECTORS = ".price, .product-price, .amount, [data-price]"
_DESCRIPTION_SELECTORS = ".description, .product-description"

_ADD_TO_CART_RE = re.compile(
    r"add\s+to\s+(?:cart|bag|basket)|buy\s+now|カートに(?:入れる|追加)|今すぐ購入|購入する",
    re.IGNORECASE,
)
_PRICE_PATTERN = re.compile(
    r"(?:US\$|[A-Z]{1,2}\$|[¥￥$€£₩₹])\s?\d[\d,.\s]*\d"
    r"|\d[\d,.]*\s?(?:円|元|€|(?:USD|JPY|EUR|GBP)\b)"
    r"|(?:USD|JPY|EUR|GBP)\s?\d[\d,.]*"
)

# How far up the tree an "add to cart" button may be from its product block.
_MAX_CART_ANCESTOR_DEPTH = 5


def _cart_containers(soup: BeautifulSoup) -> list[Tag]:
    containers: list[Tag] = []
    for el in soup.find_all(["button", "a", "input"]):
        label = el.get("value", "") if el.name == "input" else el.get_text(" ")
        if not _ADD_TO_CART_RE.search(label or ""):
            continue
        parent = el.parent
        for _ in range(_MAX_CART_ANCESTOR_DEPTH):
            if parent is None or parent.name in ("body", "html", "[document]"):
                break
            if _PRICE_PATTERN.search(parent.get_text(" ")):
                containers.append(parent)
                break
            parent = parent.parent
    return containers


def _heuristic_product(container: Tag, page_url: str) -> Optional[ProductRecord]:
    name_el = container.find(attrs={"itemprop": "name"}) or container.select_one(_NAME_SELECTORS)
    name = _clean(name_el.get_text(" ")) if name_el else None
    if not name:
        return None

    price_el = container.find(attrs={"itemprop": "price"}) or container.select_one(_PRICE_SELECTORS)
    price_text = _clean(price_el.get_text(" ")) if price_el else None
    if not price_text:
        match = _PRICE_PATTERN.search(container.get_text(" "))
        price_text = match.group(0) if match else None
    price, currency = parse_price(price_text)
    if price is not None and currency is None:
        currency = settings.default_currency

    desc_el = container.find(attrs={"itemprop": "description"}) or container.select_one(
        _DESCRIPTION_SELECTORS
    )

    image_url = None
    img = container.find("img")
    if img is not None:
        image_url = _resolve(img.get("src") or img.get("data-src"), page_url)

    product_url = None
    for a in container.find_all("a", href=True):
        href = a["href"].strip()
        if href and not href.startswith(("#", "javascript:")):
            product_url = _resolve(href, page_url)
            break

    return ProductRecord(
        name=name,
        price=price,
        currency=currency,
        description=_clean(desc_el.get_text(" ")) if desc_el else None,
        image_url=image_url,
        product_url=product_url,
    )


def products_from_dom(soup: BeautifulSoup, page_url: str) -> list[ProductRecord]:
    containers = list(soup.select(_PRODUCT_CONTAINER_SELECTORS)) + _cart_containers(soup)

    products: list[ProductRecord] = []
    seen: set[int] = set()
    for container in containers:
        if id(container) in seen:
            continue
        seen.add(id(container))
        product = _heuristic_product(container, page_url)
        if product is not None:
            products.append(product)
        if len(products) >= MAX_PRODUCTS:
            break
    return products


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_products(
    soup: BeautifulSoup, structured_data: list[Any], page_url: str
) -> list[ProductRecord]:
    """Detect products on a page; never raises."""
    try:
        products = products_from_structured_data(structured_data, page_url)
        if not products:
            products = products_from_microdata(soup, page_url)
        if not products:
            products = products_from_dom(soup, page_url)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[products] detection failed for %s: %s", page_url, exc)
        return []
    return _dedupe(products)
