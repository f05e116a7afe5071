"""Reliance Digital adapter."""

from typing import Any

from ..base.models import Product, ProductSource, RequestSpec, SearchQuery
from ..base.registry import RetailerAdapter, register_retailer
from ..base.utils import build_product, first_non_empty


@register_retailer("reliance_digital")
class RelianceDigitalAdapter(RetailerAdapter):
    list_paths = ("products", "data.products", "data.productList")

    def build_direct_api_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.direct_api_url:
            return None
        return RequestSpec(
            url=self.config.direct_api_url,
            method="POST",
            json_body={"searchText": query.text, "page": 0, "size": 24},
            headers=self.request_headers({"Content-Type": "application/json"}),
        )

    def build_harvested_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.harvested_url:
            return None
        return RequestSpec(
            url=self.config.harvested_url,
            params={"searchQuery": query.text, "page": 0, "size": 20},
            headers=self.request_headers(),
        )

    def map_record(self, record: dict[str, Any], source: ProductSource) -> Product | None:
        return build_product(
            retailer_name=self.name,
            origin=self.origin,
            source=source,
            product_id=first_non_empty(record, ("productCode", "code", "id")),
            name=first_non_empty(record, ("productName", "name")),
            price=first_non_empty(record, ("price.sellingPrice", "sellingPrice", "price")),
            original_price=first_non_empty(record, ("price.mrpPrice", "mrp")),
            image_url=first_non_empty(
                record, ("image", "productImage", "media.0.url", "imageUrl")
            ),
            detail_url=first_non_empty(record, ("seoUrl", "url")),
            rating=record.get("averageRating"),
        )
