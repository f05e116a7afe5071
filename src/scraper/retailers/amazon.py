"""Amazon India adapter.

The search endpoint answers with HTML that carries the result set as inline
state, so the direct API path goes through the embedded-JSON rules below
before the generic ones. The completion service is the harvested endpoint.
"""

import re
from typing import Any

from ..base.extractors import GENERIC_RULES, rule
from ..base.models import Product, ProductSource, RequestSpec, SearchQuery
from ..base.registry import RetailerAdapter, register_retailer
from ..base.utils import build_product, dig, first_non_empty

AMAZON_RULES = (
    rule("initial_data", r"var\s+initialData\s*=\s*({.+?});", "search.results", re.S),
    rule("search_widget", r'"centerBelowPlus.+?":.+?"results":\s*(\[.+?\])', flags=re.S),
    *GENERIC_RULES,
)


@register_retailer("amazon")
class AmazonAdapter(RetailerAdapter):
    embedded_rules = AMAZON_RULES
    list_paths = ("search.results", "results", "suggestions")

    def build_direct_api_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.direct_api_url:
            return None
        return RequestSpec(
            url=self.config.direct_api_url,
            params={"k": query.text, "ref": "nb_sb_noss", "url": "search-alias=aps"},
            headers=self.request_headers(),
        )

    def build_harvested_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.harvested_url:
            return None
        return RequestSpec(
            url=self.config.harvested_url,
            params={
                "limit": 10,
                "prefix": query.text,
                "suggestion-type": "WIDGET",
                "page-type": "Search",
                "alias": "aps",
                "site-variant": "desktop",
                "version": 3,
                "event": "onkeypress",
                "lop": "en_IN",
            },
            headers=self.request_headers({"Accept": "application/json"}),
        )

    def map_record(self, record: dict[str, Any], source: ProductSource) -> Product | None:
        price = dig(record, "price")
        if isinstance(price, dict):
            price = first_non_empty(price, ("value", "displayAmount", "amount"))
        original = first_non_empty(
            record, ("price.original", "originalPrice", "price.basisPrice.displayAmount")
        )
        return build_product(
            retailer_name=self.name,
            origin=self.origin,
            source=source,
            product_id=first_non_empty(record, ("asin", "id")),
            name=first_non_empty(record, ("title", "name", "value")),
            price=price,
            original_price=original,
            image_url=first_non_empty(record, ("image.url", "image", "imageUrl")),
            detail_url=first_non_empty(record, ("detailPageUrl", "url", "link")),
            rating=first_non_empty(record, ("rating.value", "reviews.rating", "rating")),
        )
