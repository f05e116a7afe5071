"""Croma adapter.

Both Croma services return ``products.results`` records whose field names
are covered by the shared fallback order, so only the request shapes differ.
"""

from ..base.models import RequestSpec, SearchQuery
from ..base.registry import RetailerAdapter, register_retailer


@register_retailer("croma")
class CromaAdapter(RetailerAdapter):
    list_paths = ("products.results", "products", "results")

    def build_direct_api_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.direct_api_url:
            return None
        return RequestSpec(
            url=self.config.direct_api_url,
            params={"query": query.text, "currentPage": 0, "pageSize": 24},
            headers=self.request_headers(),
        )

    def build_harvested_request(self, query: SearchQuery) -> RequestSpec | None:
        if not self.config.harvested_url:
            return None
        return RequestSpec(
            url=self.config.harvested_url,
            params={
                "fields": "products",
                "query": query.text,
                "currentPage": 0,
                "pageSize": 20,
            },
            headers=self.request_headers(),
        )
