"""Acquisition strategies, in cascade priority order."""

from .base import FetchStrategy, HttpStrategy
from .browser_sniff import BrowserNetworkSniffStrategy, PageSnapshot
from .direct_api import DirectApiStrategy
from .graphql import GraphQLStrategy
from .harvested import HarvestedEndpointStrategy

__all__ = [
    "BrowserNetworkSniffStrategy",
    "DirectApiStrategy",
    "FetchStrategy",
    "GraphQLStrategy",
    "HarvestedEndpointStrategy",
    "HttpStrategy",
    "PageSnapshot",
]
