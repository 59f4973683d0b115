"""
Error taxonomy for the crawl pipeline.

Only CrawlConfigError is fatal for a run. Fetch errors are contained at the
item level by the tier manager.
"""
from typing import Optional


class ScraperError(Exception):
    """Base exception for scraper failures."""


class CrawlConfigError(ScraperError):
    """Invalid run configuration or a transport that cannot be initialized."""


class FetchError(ScraperError):
    """A fetch that failed terminally for the tier that issued it."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{reason} ({url})")


class TransientFetchError(FetchError):
    """Timeout, connection reset, 429 or 5xx. Retried with backoff."""


class RenderError(TransientFetchError):
    """Browser navigation or page handling failure."""
