"""Crawler for zameen.com property listings.

Pages are crawled as labelled tasks (bootstrap, list, search-API, detail);
a reservation ledger bounds how many detail pages are fetched and how many
records are emitted, and detail records are merged from several sources
(page state, JSON-LD, list-page data, markup).

Main exports:
- TaskRouter: Per-label page handling
- CrawlEngine: Worker pool, queue and retries
- ReservationLedger: Budget and deduplication state
- DetailExtractor, ListingPageExtractor: Extraction from fetched pages
- ListingRecord, Task, Label: Data models

Example usage:
    from zameen_finder.config import RunInput
    from zameen_finder.run import ScrapeRun

    result = ScrapeRun(RunInput(keyword="DHA Phase 2", location="Islamabad", results_wanted=20)).run()
    print(result.saved, result.reserved)
"""

from .base import (
    AreaUnit,
    Candidate,
    ExtractionStrategy,
    FetchedPage,
    Label,
    ListingRecord,
    SearchApiQuery,
    Task,
)
from .engine import CrawlEngine, HttpSession, RateLimiter, SessionPool
from .errors import (
    BlockedPageError,
    MalformedPayloadError,
    NonRetryableFetchError,
    RetryableFetchError,
    ScraperException,
)
from .extractors import DetailExtractor
from .ledger import ReservationLedger
from .listing_page import ListingPageExtractor
from .router import CrawlContext, TaskRouter

__all__ = [
    # Main interface
    "TaskRouter",
    "CrawlEngine",
    "ReservationLedger",
    "DetailExtractor",
    "ListingPageExtractor",
    # Collaborators
    "CrawlContext",
    "HttpSession",
    "SessionPool",
    "RateLimiter",
    # Data models
    "ListingRecord",
    "SearchApiQuery",
    "Task",
    "Candidate",
    "FetchedPage",
    # Enums
    "Label",
    "AreaUnit",
    # Exceptions
    "ScraperException",
    "RetryableFetchError",
    "BlockedPageError",
    "NonRetryableFetchError",
    "MalformedPayloadError",
    # Interface (for custom implementations)
    "ExtractionStrategy",
]
