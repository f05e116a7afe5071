"""Retailer adapters and the registry that resolves them.

An adapter knows how to build each strategy's request for one retailer and
how to turn that retailer's payloads into ``Product`` records. Endpoint URLs,
headers and DOM selectors come from ``RetailerConfig``; the adapter supplies
only request shapes and parsers. Adapters are resolved once, when the engine
is built, and retailers without a dedicated adapter get the generic one.
"""

import json
import logging
import random
import time
from collections.abc import Mapping
from typing import Any, ClassVar

from .config import RetailerConfig
from .extractors import GENERIC_RULES, EmbeddedJsonExtractor, ExtractionRule
from .models import Product, ProductSource, RequestSpec, SearchQuery
from .utils import (
    PRODUCT_LIST_PATHS,
    build_product,
    find_product_list,
    product_from_record,
)

logger = logging.getLogger(__name__)

MAX_DOM_PRODUCTS = 20


class RetailerAdapter:
    """Base adapter: generic request shapes and generic JSON mapping.

    Subclasses override the ``build_*_request`` methods for retailers whose
    endpoints need a specific body or query string, and ``map_record`` when
    a retailer's field names fall outside the shared fallback order.
    """

    embedded_rules: ClassVar[tuple[ExtractionRule, ...]] = GENERIC_RULES
    list_paths: ClassVar[tuple[str, ...]] = PRODUCT_LIST_PATHS
    graphql_document: ClassVar[str | None] = None

    def __init__(self, config: RetailerConfig):
        self.config = config
        self.extractor = EmbeddedJsonExtractor(self.embedded_rules)

    @property
    def key(self) -> str:
        return self.config.key

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def origin(self) -> str:
        return self.config.origin

    def session_cookies(self) -> str:
        """Fresh anonymous session cookies so requests do not share a session."""
        now = int(time.time() * 1000)
        session_id, visitor_id = (random.randint(0, 999999) for _ in range(2))  # noqa: S311
        return f"session-id={now}-{session_id}; visitor-id={now}-{visitor_id}"

    def request_headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = dict(self.config.headers)
        headers.setdefault("Cookie", self.session_cookies())
        headers.update(extra or {})
        return headers

    # Request builders. Returning None means the retailer has no such surface
    # and the strategy is a no-op.

    def build_direct_api_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.direct_api_url:
            return None
        return RequestSpec(
            url=self.config.direct_api_url,
            params={"q": query.text},
            headers=self.request_headers(),
        )

    def build_graphql_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.graphql_url or not self.graphql_document:
            return None
        return RequestSpec(
            url=self.config.graphql_url,
            method="POST",
            json_body={
                "query": self.graphql_document,
                "variables": {"query": query.text},
            },
            headers=self.request_headers({"Content-Type": "application/json"}),
        )

    def build_harvested_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.harvested_url:
            return None
        return RequestSpec(
            url=self.config.harvested_url,
            params={"q": query.text},
            headers=self.request_headers(),
        )

    # Parsers

    def parse_response(
        self, text: str, content_type: str, source: ProductSource
    ) -> list[Product]:
        """Parse an HTTP body, JSON or HTML.

        Raises
        ------
            ValueError: If a JSON body cannot be decoded

        """
        body = text.lstrip()
        if "json" in content_type.lower() or body.startswith(("{", "[")):
            return self.parse_json(json.loads(body), source)
        return self.parse_embedded(text, source)

    def parse_json(self, payload: Any, source: ProductSource) -> list[Product]:
        products = []
        for record in find_product_list(payload, self.list_paths):
            if not isinstance(record, dict):
                continue
            product = self.map_record(record, source)
            if product is not None:
                products.append(product)
        return products

    def map_record(self, record: dict[str, Any], source: ProductSource) -> Product | None:
        return product_from_record(
            record, retailer_name=self.name, origin=self.origin, source=source
        )

    def parse_embedded(
        self, html: str, source: ProductSource = ProductSource.EMBEDDED_JSON
    ) -> list[Product]:
        """Try each embedded-state rule in order until one yields products."""
        for extraction_rule, payload in self.extractor.iter_payloads(html):
            products = self.parse_json(payload, source)
            if products:
                logger.debug(
                    f"{self.key}: {len(products)} products from embedded rule "
                    f"'{extraction_rule.name}'"
                )
                return products
        return []

    def parse_dom_records(self, records: list[dict[str, Any]]) -> list[Product]:
        """Normalize raw DOM records, dropping any without name or price."""
        products = []
        for record in records[:MAX_DOM_PRODUCTS]:
            product = build_product(
                retailer_name=self.name,
                origin=self.origin,
                source=ProductSource.DOM_SCRAPE,
                name=record.get("name"),
                price=record.get("price"),
                original_price=record.get("originalPrice"),
                image_url=record.get("image"),
                detail_url=record.get("link"),
                rating=record.get("rating"),
            )
            if product is not None:
                products.append(product)
        return products

    def is_api_response(self, url: str, content_type: str) -> bool:
        """Whether a captured browser response is worth parsing as JSON."""
        lowered = url.lower()
        return (
            "json" in content_type.lower()
            or "graphql" in lowered
            or "/api/" in lowered
        )


class GenericRetailerAdapter(RetailerAdapter):
    """Adapter for retailers described only by configuration."""

    pass


class RetailerRegistry:
    """Registry mapping retailer keys to adapter classes."""

    _adapters: dict[str, type[RetailerAdapter]] = {}

    @classmethod
    def register(cls, key: str, adapter_class: type[RetailerAdapter]) -> None:
        cls._adapters[key] = adapter_class

    @classmethod
    def get_adapter_class(cls, key: str) -> type[RetailerAdapter]:
        return cls._adapters.get(key, GenericRetailerAdapter)

    @classmethod
    def registered_keys(cls) -> list[str]:
        return list(cls._adapters)

    @classmethod
    def build(
        cls, retailers: Mapping[str, RetailerConfig]
    ) -> dict[str, RetailerAdapter]:
        """Instantiate one adapter per configured retailer."""
        adapters: dict[str, RetailerAdapter] = {}
        for key, config in retailers.items():
            if not config.key:
                config.key = key
            adapter_class = cls.get_adapter_class(key)
            adapters[key] = adapter_class(config)
            logger.debug(f"Resolved {key} -> {adapter_class.__name__}")
        return adapters


def register_retailer(key: str):
    """Decorator to register an adapter class for a retailer key.

    Usage:
        @register_retailer("croma")
        class CromaAdapter(RetailerAdapter):
            ...
    """

    def decorator(adapter_class: type[RetailerAdapter]):
        RetailerRegistry.register(key, adapter_class)
        return adapter_class

    return decorator
