"""Exceptions raised while fetching and parsing pages."""

from typing import Optional


class ScraperException(Exception):
    """Base exception for scraper errors."""
    pass


class RetryableFetchError(ScraperException):
    """Server error, rate limit or denial; the engine should retry on a new session."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BlockedPageError(RetryableFetchError):
    """Body matched the CAPTCHA/denial heuristic, whatever the status code."""
    pass


class NonRetryableFetchError(ScraperException):
    """Client error (e.g. 404) that a retry will not fix."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedPayloadError(ScraperException):
    """Search-API response missing the expected structure."""
    pass
