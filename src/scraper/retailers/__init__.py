"""Retailer-specific adapters.

Importing this package registers every adapter with ``RetailerRegistry``.
Retailers present only in configuration use ``GenericRetailerAdapter``.
"""

from .amazon import AmazonAdapter
from .croma import CromaAdapter
from .flipkart import FlipkartAdapter
from .meesho import MeeshoAdapter
from .reliance_digital import RelianceDigitalAdapter

__all__ = [
    "AmazonAdapter",
    "CromaAdapter",
    "FlipkartAdapter",
    "MeeshoAdapter",
    "RelianceDigitalAdapter",
]
