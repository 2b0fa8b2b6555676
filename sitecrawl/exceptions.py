"""
Exception hierarchy for the crawler.
"""


class CrawlerError(Exception):
    """Base class for all crawler errors."""
    pass


class ConfigurationError(CrawlerError):
    """Raised when configuration or persisted settings are missing or invalid."""
    pass


class StoreUnavailable(CrawlerError):
    """Raised when the state store cannot be reached after retries."""
    pass


class ExtractionError(CrawlerError):
    """Raised when extraction rules cannot be applied to a fetched page."""
    pass


class TooManyErrors(CrawlerError):
    """Raised when consecutive fetch failures exceed the configured maximum."""
    pass


# Errors that abort a crawl run at the next batch join
FATAL_ERRORS = (StoreUnavailable, ExtractionError, TooManyErrors)
