"""Meesho adapter."""

import uuid
from typing import Any

from ..base.models import Product, ProductSource, RequestSpec, SearchQuery
from ..base.registry import RetailerAdapter, register_retailer
from ..base.utils import build_product, first_non_empty


@register_retailer("meesho")
class MeeshoAdapter(RetailerAdapter):
    list_paths = ("products", "data.products", "catalogs")

    def build_direct_api_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.direct_api_url:
            return None
        return RequestSpec(
            url=self.config.direct_api_url,
            method="POST",
            json_body={"query": query.text, "page": 1, "limit": 20},
            headers=self.request_headers(
                {"Content-Type": "application/json", "x-meesho-uuid": str(uuid.uuid4())}
            ),
        )

    def map_record(self, record: dict[str, Any], source: ProductSource) -> Product | None:
        slug, product_id = record.get("slug"), record.get("product_id")
        detail_url = f"/{slug}/p/{product_id}" if slug and product_id else record.get("url")
        return build_product(
            retailer_name=self.name,
            origin=self.origin,
            source=source,
            product_id=product_id or record.get("id"),
            name=record.get("name"),
            price=first_non_empty(record, ("price", "min_product_price")),
            original_price=record.get("original_price"),
            image_url=first_non_empty(record, ("images.0.image_url", "image")),
            detail_url=detail_url,
            rating=first_non_empty(record, ("rating.average_rating", "rating")),
        )
