"""Task router: one handler per page label.

The router decides, for each fetched task, which extractor runs and which
follow-up tasks are created. Every task creation and every emitted record
goes through the reservation ledger first.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from zameen_finder.config import RunInput

from .base import Candidate, FetchedPage, Label, ListingRecord, Task
from .errors import BlockedPageError, MalformedPayloadError, NonRetryableFetchError, RetryableFetchError
from .extractors import DetailExtractor, finalize_record
from .filters import is_blocked
from .ledger import ReservationLedger
from .listing_page import ListingPageExtractor, ListingPageResult
from .locations import (
    CITY_LEVEL,
    LocationNode,
    normalize_text,
    residual_query,
    resolve_location,
    tokenize,
)
from .urls import location_listing_url

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({403, 429})


@dataclass
class CrawlContext:
    """What a handler may touch besides the ledger: the queue and the current session."""
    enqueue: Callable[[Task], bool]
    session: Optional[Any] = None

    def retire_session(self) -> None:
        if self.session is not None:
            self.session.retire()


class TaskRouter:
    """Dispatches fetched tasks by label and creates follow-up tasks.

    Args:
        ledger: Shared reservation ledger
        sink: Output sink with an ``emit(record)`` method
        run_input: Run configuration (page ceiling, detail scraping, query)
        detail_extractor: Extractor for detail pages
        listing_extractor: Extractor for list pages and search-API responses
    """

    def __init__(
        self,
        ledger: ReservationLedger,
        sink,
        run_input: RunInput,
        detail_extractor: Optional[DetailExtractor] = None,
        listing_extractor: Optional[ListingPageExtractor] = None,
    ):
        self.ledger = ledger
        self.sink = sink
        self.max_pages = run_input.max_pages
        self.scrape_details = run_input.scrape_details
        self.category = run_input.category
        self.detail_extractor = detail_extractor or DetailExtractor()
        self.listing_extractor = listing_extractor or ListingPageExtractor()
        self._handlers = {
            Label.BOOTSTRAP: self._handle_bootstrap,
            Label.BOOTSTRAP_CITY: self._handle_bootstrap_city,
            Label.LIST: self._handle_list,
            Label.ALGOLIA_QUERY: self._handle_search_api,
            Label.DETAIL: self._handle_detail,
        }

    @property
    def finished(self) -> bool:
        """True once enough records were emitted; queued tasks can be dropped."""
        return self.ledger.goal_reached

    # =========================================================================
    # Entry points used by the engine
    # =========================================================================

    def handle(self, task: Task, page: FetchedPage, ctx: CrawlContext) -> None:
        """Handle one fetched task.

        Raises:
            RetryableFetchError: Server error, rate limit or block page; the
                session has already been retired
            NonRetryableFetchError: Other non-2xx response
        """
        self.check_response(task, page, ctx)
        self._handlers[task.label](task, page, ctx)

    def handle_failed(self, task: Task, error: Optional[BaseException]) -> None:
        """Fallback for a task that exhausted its retries.

        A detail task carrying a partial record still yields that record;
        anything else is only logged.
        """
        if task.label == Label.DETAIL and task.partial_record is not None:
            logger.warning(f"DETAIL {task.url} failed ({error}), emitting partial record")
            record = finalize_record(task.partial_record, task.url)
            self._emit(record)
            return
        logger.error(f"{task.label.value} {task.url} failed: {error}")

    def check_response(self, task: Task, page: FetchedPage, ctx: CrawlContext) -> None:
        status = page.status_code
        if status in RETRYABLE_STATUS_CODES or status >= 500:
            ctx.retire_session()
            raise RetryableFetchError(f"{task.url} returned {status}", status_code=status)
        if is_blocked(page.body):
            ctx.retire_session()
            raise BlockedPageError(f"{task.url} looks like a block page", status_code=status)
        if not page.ok:
            raise NonRetryableFetchError(f"{task.url} returned {status}", status_code=status)

    # =========================================================================
    # Handlers
    # =========================================================================

    def _handle_bootstrap(self, task: Task, page: FetchedPage, ctx: CrawlContext) -> None:
        keyword = task.user_data.get("keyword", "")
        location = task.user_data.get("location", "")
        category = task.user_data.get("category", self.category)
        combined = " ".join(part for part in (keyword, location) if part)

        nodes = self.listing_extractor.location_nodes(page)
        if not nodes:
            logger.warning(f"BOOTSTRAP {task.url}: no location graph on page")
            return

        city = self._find_city(location, combined, nodes)
        if city is not None:
            city_url = location_listing_url(city, category)
            remaining = residual_query(combined, city)
            if remaining:
                logger.info(f"BOOTSTRAP: city {city.name}, narrowing {remaining!r}")
                ctx.enqueue(Task(
                    url=city_url,
                    label=Label.BOOTSTRAP_CITY,
                    user_data={"query": remaining, "city": city.name, "category": category},
                ))
            else:
                logger.info(f"BOOTSTRAP: resolved city {city.name}")
                self._enqueue_list(city_url, ctx)
            return

        match = resolve_location(combined, nodes, city_hint=location)
        if match is None:
            logger.warning(f"BOOTSTRAP: could not resolve {combined!r}, nothing to crawl for this seed")
            return
        logger.info(f"BOOTSTRAP: resolved {combined!r} to {match.node.name} (score {match.score})")
        self._enqueue_list(location_listing_url(match.node, category), ctx)

    def _find_city(self, location: str, combined: str, nodes: List[LocationNode]) -> Optional[LocationNode]:
        """City named by the location hint, else a city whose name appears in the query."""
        if location:
            match = resolve_location(location, nodes, levels=[CITY_LEVEL])
            if match is not None:
                return match.node

        padded = f" {normalize_text(combined)} "
        named = [
            n for n in nodes
            if n.level == CITY_LEVEL and normalize_text(n.name) and f" {normalize_text(n.name)} " in padded
        ]
        if not named:
            return None
        return max(named, key=lambda n: len(normalize_text(n.name)))

    def _handle_bootstrap_city(self, task: Task, page: FetchedPage, ctx: CrawlContext) -> None:
        query = task.user_data.get("query", "")
        city = task.user_data.get("city", "")
        category = task.user_data.get("category", self.category)
        city_tokens = tokenize(city)

        nodes = [
            n for n in self.listing_extractor.location_nodes(page)
            if n.level > CITY_LEVEL and (not n.hierarchy or city_tokens <= tokenize(n.hierarchy_text))
        ]
        match = resolve_location(query, nodes, city_hint=city)
        if match is None:
            logger.warning(f"BOOTSTRAP_CITY: no sub-area for {query!r} in {city}, crawling the whole city")
            self._enqueue_list(task.url, ctx)
            return
        logger.info(f"BOOTSTRAP_CITY: resolved {query!r} to {match.node.name} (score {match.score})")
        self._enqueue_list(location_listing_url(match.node, category), ctx)

    def _handle_list(self, task: Task, page: FetchedPage, ctx: CrawlContext) -> None:
        result = self.listing_extractor.parse(page, task.page_number)
        queued = self._process_candidates(result.candidates, ctx)
        logger.info(
            f"LIST {task.url} -> {len(result.candidates)} candidates, "
            f"queued {queued} (page {task.page_number})"
        )
        self._enqueue_next_page(task, result, ctx)

    def _handle_search_api(self, task: Task, page: FetchedPage, ctx: CrawlContext) -> None:
        query = task.search_query
        try:
            result = self.listing_extractor.parse_search_response(page.body)
        except MalformedPayloadError as e:
            logger.warning(f"ALGOLIA_QUERY page {task.page_number} skipped: {e}")
            return

        queued = self._process_candidates(result.candidates, ctx)
        logger.info(
            f"ALGOLIA_QUERY page {task.page_number} -> {len(result.candidates)} hits, queued {queued}"
        )

        if query is None or not result.has_more:
            return
        if not self.ledger.accepting_tasks or task.page_number >= self.max_pages:
            return
        next_query = query.with_page(result.page + 1)
        if self.ledger.reserve_page(next_query.signature()):
            ctx.enqueue(Task.search_api(next_query, page_number=task.page_number + 1))

    def _handle_detail(self, task: Task, page: FetchedPage, ctx: CrawlContext) -> None:
        if self.ledger.goal_reached:
            logger.debug(f"DETAIL {task.url} skipped, enough records saved")
            return
        record = self.detail_extractor.extract(page, task.partial_record)
        self._emit(record)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _process_candidates(self, candidates: List[Candidate], ctx: CrawlContext) -> int:
        """Reserve new candidates within budget, then queue or emit them.

        Returns:
            Number of candidates accepted
        """
        accepted = set(self.ledger.reserve_batch(c.identity_key for c in candidates))
        chosen = [c for c in candidates if c.identity_key in accepted]

        for candidate in chosen:
            if self.scrape_details:
                ctx.enqueue(Task(
                    url=candidate.url,
                    label=Label.DETAIL,
                    partial_record=candidate.partial,
                    identity_key=candidate.identity_key,
                ))
            else:
                record = finalize_record(candidate.partial or ListingRecord(), candidate.url)
                self._emit(record)
        return len(chosen)

    def _enqueue_next_page(self, task: Task, result: ListingPageResult, ctx: CrawlContext) -> None:
        if not self.ledger.accepting_tasks or task.page_number >= self.max_pages:
            return
        # The search API is preferred over HTML pagination when both exist
        if result.search_query is not None:
            if self.ledger.reserve_page(result.search_query.signature()):
                ctx.enqueue(Task.search_api(result.search_query, page_number=task.page_number + 1))
            return
        if result.next_url:
            self._enqueue_list(result.next_url, ctx, page_number=task.page_number + 1)
        else:
            logger.info(f"No next page link detected after page {task.page_number}")

    def _enqueue_list(self, url: str, ctx: CrawlContext, page_number: int = 1) -> None:
        if self.ledger.reserve_page(f"LIST|{url}"):
            ctx.enqueue(Task(url=url, label=Label.LIST, page_number=page_number))

    def _emit(self, record: ListingRecord) -> bool:
        key = record.identity_key
        if not self.ledger.record_emitted(key):
            logger.debug(f"Record {key} not emitted (duplicate or enough saved)")
            return False
        try:
            listing = self.sink.emit(record)
        except Exception:
            self.ledger.release_emitted(key)
            raise
        if listing is None:
            # rejected by validation; the slot goes back to the ledger
            self.ledger.release_emitted(key)
            return False
        return True
