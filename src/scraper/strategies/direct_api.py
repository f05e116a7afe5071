"""Direct retailer search API strategy."""

from ..base.models import ProductSource, RequestSpec, SearchQuery, StrategyName
from ..base.registry import RetailerAdapter
from .base import HttpStrategy


class DirectApiStrategy(HttpStrategy):
    """Call the retailer's own search API and parse its native JSON."""

    name = StrategyName.DIRECT_API
    source = ProductSource.DIRECT_API

    def build_request(
        self, adapter: RetailerAdapter, query: SearchQuery
    ) -> RequestSpec | None:
        return adapter.build_direct_api_request(query)
