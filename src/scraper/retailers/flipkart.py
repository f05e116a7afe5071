"""Flipkart adapter.

Direct API is the search-suggestions service. The "page fetch" service of
Flipkart's Rome API is the GraphQL-tier surface: it takes a structured page
context instead of a query document and returns widget slots.
"""

import logging
from typing import Any
from urllib.parse import quote_plus

from ..base.models import Product, ProductSource, RequestSpec, SearchQuery
from ..base.registry import RetailerAdapter, register_retailer
from ..base.utils import build_product, dig, first_non_empty

logger = logging.getLogger(__name__)

IMAGE_SIZE = {"{@width}": "312", "{@height}": "312", "{@quality}": "70"}


def _expand_image_url(url: str | None) -> str | None:
    if not url:
        return None
    for placeholder, value in IMAGE_SIZE.items():
        url = url.replace(placeholder, value)
    return url


@register_retailer("flipkart")
class FlipkartAdapter(RetailerAdapter):
    list_paths = ("products", "data.products", "RESPONSE.products")

    def build_direct_api_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.direct_api_url:
            return None
        return RequestSpec(
            url=self.config.direct_api_url,
            method="POST",
            json_body={
                "q": query.text,
                "requestContext": {"productLayout": "grid", "paginationContext": None},
            },
            headers=self.request_headers({"Content-Type": "application/json"}),
        )

    def build_graphql_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.graphql_url:
            return None
        page_uri = (
            f"/search?q={quote_plus(query.text)}"
            "&otracker=search&otracker1=search&marketplace=FLIPKART"
        )
        return RequestSpec(
            url=self.config.graphql_url,
            method="POST",
            json_body={
                "requestContext": {"productPlacement": "SEARCH_PAGE"},
                "pageContext": {
                    "fetchId": "BROWSE_SEARCH",
                    "page": 1,
                    "type": "BROWSE_PAGE",
                    "pageUri": page_uri,
                },
            },
            headers=self.request_headers({"Content-Type": "application/json"}),
        )

    def parse_json(self, payload: Any, source: ProductSource) -> list[Product]:
        slots = dig(payload, "RESPONSE.slots")
        if not isinstance(slots, list):
            return super().parse_json(payload, source)

        products = []
        for slot in slots:
            for entry in dig(slot, "widget.data.products") or []:
                info = dig(entry, "productInfo.value")
                if not isinstance(info, dict):
                    continue
                product = self.map_page_product(info, source)
                if product is not None:
                    products.append(product)
        logger.debug(f"{self.key}: {len(products)} products in {len(slots)} page slots")
        return products

    def map_page_product(self, info: dict[str, Any], source: ProductSource) -> Product | None:
        """Map a ``productInfo.value`` entry from a page-fetch slot."""
        return build_product(
            retailer_name=self.name,
            origin=self.origin,
            source=source,
            product_id=info.get("id"),
            name=first_non_empty(info, ("titles.title", "titles.newTitle")),
            price=first_non_empty(info, ("pricing.finalPrice.value", "pricing.finalPrice.decimalValue")),
            original_price=dig(info, "pricing.mrp.value"),
            image_url=_expand_image_url(dig(info, "media.images.0.url")),
            detail_url=first_non_empty(info, ("baseUrl", "smartUrl")),
            rating=dig(info, "rating.average"),
        )
