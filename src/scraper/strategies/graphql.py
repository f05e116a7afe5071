"""GraphQL strategy.

Only retailers with a known GraphQL surface build a request here; for every
other retailer the strategy is a no-op that returns an empty result without
touching the network.
"""

from ..base.models import ProductSource, RequestSpec, SearchQuery, StrategyName
from ..base.registry import RetailerAdapter
from .base import HttpStrategy


class GraphQLStrategy(HttpStrategy):
    name = StrategyName.GRAPHQL
    source = ProductSource.GRAPHQL

    def build_request(
        self, adapter: RetailerAdapter, query: SearchQuery
    ) -> RequestSpec | None:
        return adapter.build_graphql_request(query)
