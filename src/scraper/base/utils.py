"""Parsing helpers shared by every retailer adapter and strategy.

All numeric and URL normalization goes through this module so that the
direct API, embedded JSON, network capture and DOM paths emit identical
``Product`` records for identical input.
"""

import asyncio
import hashlib
import logging
import random
import re
from collections.abc import Iterable, Sequence
from typing import Any
from urllib.parse import urljoin

from .models import Product, ProductSource

logger = logging.getLogger(__name__)

PRICE_STRIP_RE = re.compile(r"[^\d,.]")
RATING_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")

# Field names tried in order, first non-empty wins
ID_FIELDS = ("productId", "product_id", "id", "code", "sku", "asin", "itemId")
NAME_FIELDS = ("name", "title", "productName", "displayName", "product_name")
PRICE_FIELDS = (
    "price.value",
    "price.sellingPrice",
    "price.displayAmount",
    "sellingPrice",
    "finalPrice",
    "offerPrice",
    "price",
)
ORIGINAL_PRICE_FIELDS = (
    "original_price.value",
    "price.original",
    "price.mrpPrice",
    "mrpPrice.value",
    "original_price",
    "originalPrice",
    "mrp",
)
IMAGE_FIELDS = (
    "image.url",
    "image",
    "imageUrl",
    "image_url",
    "plpImage",
    "productImage",
    "images.0.image_url",
    "images.0.url",
    "images.0",
    "thumbnail",
)
URL_FIELDS = ("url", "productUrl", "seoUrl", "detailPageUrl", "link", "href")
RATING_FIELDS = (
    "rating.average",
    "rating.value",
    "averageRating",
    "reviews.rating",
    "rating",
)
PRODUCT_LIST_PATHS = (
    "products",
    "products.results",
    "data.products",
    "search.results",
    "results",
    "items",
    "data.items",
    "hits",
)


def clean_price(price: Any) -> str | None:
    """Normalize a raw price into a numeric string.

    Everything except digits, comma and dot is stripped first. Commas are
    treated as grouping separators (Indian and Western grouping both use
    them), and stray dots left over from prefixes like ``Rs.`` are dropped.

    Args:
    ----
        price: Raw price, e.g. ``"₹1,29,999.00"``, ``"Rs. 1,299"`` or ``1299``

    Returns:
    -------
        ``"129999.00"``-style string, or None when no number can be parsed

    """
    if price is None or isinstance(price, bool):
        return None
    if isinstance(price, int | float):
        return f"{price:.2f}" if isinstance(price, float) else str(price)

    stripped = PRICE_STRIP_RE.sub("", str(price))
    stripped = stripped.replace(",", "").strip(".")
    if not stripped:
        return None

    # "1.299.00" style leftovers: keep only the last dot as decimal point
    if stripped.count(".") > 1:
        head, _, tail = stripped.rpartition(".")
        stripped = f"{head.replace('.', '')}.{tail}"

    try:
        float(stripped)
    except ValueError:
        return None
    return stripped


def normalize_price(price: Any) -> float | None:
    """Normalize price to float value, None if it cannot be parsed."""
    cleaned = clean_price(price)
    return float(cleaned) if cleaned is not None else None


def parse_rating(rating: Any) -> float | None:
    """Parse a rating, discarding trailing text ("4.3 out of 5 stars" -> 4.3)."""
    if rating is None or isinstance(rating, bool):
        return None
    if isinstance(rating, int | float):
        return float(rating)
    match = RATING_RE.match(str(rating))
    return float(match.group(1)) if match else None


def absolutize_url(origin: str, url: Any) -> str | None:
    """Prefix relative URLs with the retailer's origin."""
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith(("http://", "https://", "data:")):
        return url
    return urljoin(origin.rstrip("/") + "/", url.lstrip("/"))


def dig(obj: Any, path: str) -> Any:
    """Follow a dotted key path through dicts and lists.

    Numeric segments index into lists. Returns None as soon as a segment is
    missing.
    """
    current = obj
    for segment in path.split("."):
        if isinstance(current, dict):
            current = current.get(segment)
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def first_non_empty(obj: Any, paths: Iterable[str], scalar: bool = True) -> Any:
    """Return the first non-empty value among ``paths``.

    Args:
    ----
        obj: Source record
        paths: Dotted key paths in fallback order
        scalar: Skip dict and list values (e.g. a nested ``price`` object)

    """
    for path in paths:
        value = dig(obj, path)
        if _is_empty(value):
            continue
        if scalar and isinstance(value, dict | list):
            continue
        return value
    return None


def make_product_id(retailer_name: str, *parts: Any) -> str:
    """Derive a stable id for records that do not carry one."""
    seed = "|".join([retailer_name, *(str(part) for part in parts if part)])
    return hashlib.sha256(seed.encode()).hexdigest()[:16]


def build_product(
    *,
    retailer_name: str,
    origin: str,
    name: Any,
    price: Any,
    source: ProductSource,
    product_id: Any = None,
    original_price: Any = None,
    image_url: Any = None,
    detail_url: Any = None,
    rating: Any = None,
) -> Product | None:
    """Build a normalized ``Product``, or None if name or price is unusable.

    Malformed entries are dropped here so no partial record ever leaves a
    parser.
    """
    clean_name = " ".join(str(name).split()) if name is not None else ""
    clean_price_value = clean_price(price)
    if not clean_name or clean_price_value is None:
        return None

    detail = absolutize_url(origin, detail_url)
    return Product(
        id=str(product_id) if not _is_empty(product_id) else make_product_id(
            retailer_name, detail, clean_name, clean_price_value
        ),
        name=clean_name,
        price=clean_price_value,
        original_price=clean_price(original_price),
        image_url=absolutize_url(origin, image_url),
        detail_url=detail,
        retailer_name=retailer_name,
        rating=parse_rating(rating),
        source=source,
    )


def product_from_record(
    record: dict[str, Any],
    *,
    retailer_name: str,
    origin: str,
    source: ProductSource,
) -> Product | None:
    """Map a retailer JSON record using the shared field fallback order."""
    return build_product(
        retailer_name=retailer_name,
        origin=origin,
        source=source,
        product_id=first_non_empty(record, ID_FIELDS),
        name=first_non_empty(record, NAME_FIELDS),
        price=first_non_empty(record, PRICE_FIELDS),
        original_price=first_non_empty(record, ORIGINAL_PRICE_FIELDS),
        image_url=first_non_empty(record, IMAGE_FIELDS),
        detail_url=first_non_empty(record, URL_FIELDS),
        rating=first_non_empty(record, RATING_FIELDS),
    )


def _looks_like_product(record: Any) -> bool:
    return (
        isinstance(record, dict)
        and first_non_empty(record, NAME_FIELDS) is not None
        and first_non_empty(record, PRICE_FIELDS) is not None
    )


def find_product_list(
    payload: Any,
    paths: Sequence[str] = PRODUCT_LIST_PATHS,
    max_depth: int = 6,
) -> list[dict[str, Any]]:
    """Locate the product array inside an arbitrary JSON payload.

    Known paths are tried first. Otherwise the payload is searched breadth
    first for the shallowest list whose first element looks like a product.
    """
    if isinstance(payload, list) and payload and _looks_like_product(payload[0]):
        return payload

    for path in paths:
        candidate = dig(payload, path)
        if isinstance(candidate, list) and candidate and isinstance(candidate[0], dict):
            return candidate

    frontier: list[tuple[Any, int]] = [(payload, 0)]
    while frontier:
        node, depth = frontier.pop(0)
        if depth > max_depth:
            continue
        children: Iterable[Any]
        if isinstance(node, dict):
            children = node.values()
        elif isinstance(node, list):
            if node and _looks_like_product(node[0]):
                return node
            children = node[:50]
        else:
            continue
        frontier.extend((child, depth + 1) for child in children)
    return []


def dedupe_products(products: Iterable[Product]) -> list[Product]:
    """Drop repeated listings, first occurrence wins."""
    seen: set[tuple[str, str, str]] = set()
    unique = []
    for product in products:
        if product.dedup_key in seen:
            continue
        seen.add(product.dedup_key)
        unique.append(product)
    return unique


async def human_delay(min_seconds: float = 0.5, max_seconds: float = 2.0) -> None:
    """Sleep for a random human-like interval between actions."""
    if max_seconds <= 0:
        return
    delay = random.uniform(min_seconds, max_seconds)  # noqa: S311
    await asyncio.sleep(delay)
