"""Harvested endpoint strategy.

Targets secondary endpoints found in the retailer's own traffic
(autocomplete, recommendation or legacy search services). Some of them answer
with HTML; those bodies are run through the adapter's embedded-JSON rules
before the JSON parser sees them.
"""

import logging

from src.utils.connection_pool import HttpResponse

from ..base.models import Product, ProductSource, RequestSpec, SearchQuery, StrategyName
from ..base.registry import RetailerAdapter
from .base import HttpStrategy

logger = logging.getLogger(__name__)


class HarvestedEndpointStrategy(HttpStrategy):
    name = StrategyName.HARVESTED_ENDPOINT
    source = ProductSource.HARVESTED_ENDPOINT

    def build_request(
        self, adapter: RetailerAdapter, query: SearchQuery
    ) -> RequestSpec | None:
        return adapter.build_harvested_request(query)

    def parse(self, adapter: RetailerAdapter, payload: HttpResponse) -> list[Product]:
        body = payload.text.lstrip()
        if "html" in payload.content_type.lower() or body.startswith("<"):
            logger.debug(f"{adapter.key}: harvested endpoint returned HTML")
            return adapter.parse_embedded(payload.text, ProductSource.EMBEDDED_JSON)
        return super().parse(adapter, payload)
