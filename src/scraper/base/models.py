"""Data model shared by every layer of the fetch engine.

Products, strategy results and retailer outcomes are immutable once created:
strategies build them, the cascade and the orchestrator only pass them along
and aggregate them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import InvalidQueryError


class StrategyName(Enum):
    """Acquisition strategies in cascade priority order."""

    DIRECT_API = "direct_api"
    GRAPHQL = "graphql"
    HARVESTED_ENDPOINT = "harvested_endpoint"
    BROWSER_NETWORK_SNIFF = "browser_network_sniff"

    @property
    def uses_browser(self) -> bool:
        return self is StrategyName.BROWSER_NETWORK_SNIFF


HTTP_TIERS: tuple[StrategyName, ...] = (
    StrategyName.DIRECT_API,
    StrategyName.GRAPHQL,
    StrategyName.HARVESTED_ENDPOINT,
)
ALL_TIERS: tuple[StrategyName, ...] = HTTP_TIERS + (
    StrategyName.BROWSER_NETWORK_SNIFF,
)


class ProductSource(Enum):
    """Where inside a strategy a product record was recovered from."""

    DIRECT_API = "direct_api"
    GRAPHQL = "graphql"
    HARVESTED_ENDPOINT = "harvested_endpoint"
    EMBEDDED_JSON = "embedded_json"
    NETWORK_CAPTURE = "network_capture"
    DOM_SCRAPE = "dom_scrape"


class FailureKind(Enum):
    """Whether a failed retailer outcome is worth retrying."""

    TRANSIENT = "transient"
    DEFINITIVE = "definitive"


@dataclass(frozen=True)
class SearchQuery:
    """A normalized user search string.

    ``text`` has surrounding whitespace removed and inner runs collapsed,
    ``cache_key`` is the lower-cased form of it.
    """

    raw: str
    text: str
    cache_key: str

    @classmethod
    def from_raw(cls, raw: str | None) -> "SearchQuery":
        text = " ".join((raw or "").split())
        if not text:
            raise InvalidQueryError("Search query must not be empty")
        return cls(raw=raw or "", text=text, cache_key=text.lower())


@dataclass(frozen=True)
class Product:
    """One normalized listing.

    ``price`` and ``original_price`` hold the normalized numeric string
    (digits and at most one decimal point), never the raw retailer text.
    """

    id: str
    name: str
    price: str
    retailer_name: str
    original_price: str | None = None
    image_url: str | None = None
    detail_url: str | None = None
    rating: float | None = None
    source: ProductSource = ProductSource.DIRECT_API

    @property
    def price_value(self) -> float:
        return float(self.price)

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.retailer_name, self.detail_url or self.name.lower(), self.price)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "originalPrice": self.original_price,
            "imageUrl": self.image_url,
            "detailUrl": self.detail_url,
            "retailerName": self.retailer_name,
            "rating": self.rating,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class RequestSpec:
    """A fully built outbound HTTP request for one strategy attempt."""

    url: str
    method: str = "GET"
    params: dict[str, Any] | None = None
    json_body: Any = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StrategyResult:
    """Outcome of one strategy for one retailer.

    ``success`` is derived from ``products`` so an empty list can never be
    reported as a success.
    """

    strategy: StrategyName
    products: tuple[Product, ...] = ()
    error: str | None = None

    @property
    def success(self) -> bool:
        return bool(self.products)


@dataclass(frozen=True)
class RetailerOutcome:
    """Final outcome for one retailer within one search."""

    retailer_key: str
    products: tuple[Product, ...] = ()
    succeeded: bool = False
    error: str | None = None
    strategy: StrategyName | None = None
    attempts: int = 1
    failure_kind: FailureKind = FailureKind.TRANSIENT

    @property
    def definitive(self) -> bool:
        return self.failure_kind is FailureKind.DEFINITIVE

    @classmethod
    def failed(
        cls,
        retailer_key: str,
        error: str,
        failure_kind: FailureKind = FailureKind.TRANSIENT,
    ) -> "RetailerOutcome":
        return cls(
            retailer_key=retailer_key,
            succeeded=False,
            error=error,
            failure_kind=failure_kind,
        )


@dataclass(frozen=True)
class AggregateResult:
    """The structured response of one search call."""

    query: str
    success: bool
    products: tuple[Product, ...] = ()
    scraped_retailers: tuple[str, ...] = ()
    failed_retailers: tuple[str, ...] = ()
    skipped_retailers: tuple[str, ...] = ()
    execution_time_ms: int = 0
    cached: bool = False
    path: str = "fast"
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "query": self.query,
            "products": [product.to_dict() for product in self.products],
            "scrapedRetailers": list(self.scraped_retailers),
            "failedRetailers": list(self.failed_retailers),
            "skippedRetailers": list(self.skipped_retailers),
            "executionTimeMs": self.execution_time_ms,
            "cached": self.cached,
            "path": self.path,
            "errors": dict(self.errors),
        }


@dataclass(frozen=True)
class CacheEntry:
    """A cached aggregate result with its absolute expiry time."""

    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class ProxyIdentity:
    """One egress configuration used for a single outbound attempt."""

    user_agent: str
    viewport: tuple[int, int]
    locale: str
    timezone_id: str
    proxy_url: str | None = None
    proxy_type: str | None = None

    @property
    def accept_language(self) -> str:
        primary = self.locale
        language = primary.split("-")[0]
        return f"{primary},{language};q=0.9,en;q=0.8"
