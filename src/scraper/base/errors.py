"""Exception hierarchy for the fetch engine.

Only ``ConfigurationError`` and ``InvalidQueryError`` ever reach the caller of
``PriceSearchEngine.search``. Everything else is caught at the strategy or
retailer boundary and converted into a failed outcome.
"""


class ScraperError(Exception):
    """Base class for all fetch engine errors."""

    pass


class ConfigurationError(ScraperError):
    """Raised when the engine cannot be configured or has nothing to run.

    This is the only failure class that aborts a whole search.
    """

    pass


class InvalidQueryError(ScraperError, ValueError):
    """Raised for empty or whitespace-only search queries."""

    pass


class StrategyError(ScraperError):
    """A transient failure inside a single strategy attempt."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RetailerNotConfiguredError(ScraperError):
    """The requested retailer has no registry entry. Never retried."""

    def __init__(self, retailer_key: str):
        super().__init__(f"Retailer '{retailer_key}' is not configured")
        self.retailer_key = retailer_key


class BrowserPoolError(ScraperError):
    """The browser pool could not launch an engine or hand out a context."""

    pass


class EnrichmentError(ScraperError):
    """Raised by enrichment clients when the LLM call fails or returns nothing."""

    pass
