"""Candidate discovery on list pages and search-API responses."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup

from zameen_finder.config import settings

from .base import Candidate, FetchedPage, SearchApiQuery
from .errors import MalformedPayloadError
from .extractors import json_ld_nodes, record_from_listing_data
from .filters import compile_filters, parse_json
from .locations import LocationNode, collect_location_nodes
from .page_state import dig, parse_page_state
from .urls import (
    identity_for_url,
    is_detail_url,
    is_site_url,
    normalize_url,
    slugify,
    unwrap_detail_url,
)

logger = logging.getLogger(__name__)

# Where list pages keep the first page of search-API hits
EMBEDDED_HITS_PATHS = (
    ("algolia", "content", "hits"),
    ("algolia", "hits"),
    ("search", "hits"),
)
DEFAULT_HITS_PER_PAGE = 25
NEXT_TEXT_MARKERS = ("next", "»", "›")


@dataclass
class ListingPageResult:
    """Everything a list page offers to the router."""
    candidates: List[Candidate] = field(default_factory=list)
    search_query: Optional[SearchApiQuery] = None
    next_url: Optional[str] = None
    state: Optional[Dict[str, Any]] = None


@dataclass
class SearchResultPage:
    """One decoded search-API response."""
    candidates: List[Candidate]
    page: int
    nb_pages: int

    @property
    def has_more(self) -> bool:
        return bool(self.candidates) and self.page + 1 < self.nb_pages


def hit_detail_url(hit: Dict[str, Any], base_url: Optional[str] = None) -> Optional[str]:
    """Detail-page URL for a search-API hit."""
    base = (base_url or settings.base_url).rstrip("/")
    url = hit.get("url")
    if isinstance(url, str) and url:
        return normalize_url(url, base + "/")
    external_id = hit.get("externalID")
    if external_id is None:
        return None
    slug = slugify(hit.get("slug") or hit.get("title")) or "property"
    locations = [loc for loc in hit.get("location") or [] if isinstance(loc, dict)]
    last = locations[-1] if locations else {}
    location_id = last.get("externalID", 0)
    level = last.get("level", 0)
    return f"{base}/Property/{slug}-{external_id}-{location_id}-{level}.html"


def candidate_from_hit(hit: Any, base_url: Optional[str] = None) -> Optional[Candidate]:
    if not isinstance(hit, dict):
        return None
    url = hit_detail_url(hit, base_url)
    if url is None:
        return None
    partial = record_from_listing_data(hit, url=url)
    return Candidate(url=url, identity_key=partial.external_id or url, partial=partial)


def dedupe_candidates(candidates: Iterable[Candidate]) -> List[Candidate]:
    """Keep the first candidate per identity key, preserving page order."""
    seen = set()
    unique = []
    for candidate in candidates:
        if candidate.identity_key in seen:
            continue
        seen.add(candidate.identity_key)
        unique.append(candidate)
    return unique


class ListingPageExtractor:
    """Extracts detail candidates and pagination from list pages."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.base_url).rstrip("/")

    def parse(self, page: FetchedPage, page_number: int = 1) -> ListingPageResult:
        """Parse a fetched list page.

        Candidates come from embedded search-API hits, JSON-LD item lists and
        detail-shaped anchors, deduplicated together in that order.

        Args:
            page: Fetched list page
            page_number: 1-based page number of this list page

        Returns:
            Candidates plus any search-API query and HTML next-page link
        """
        soup = BeautifulSoup(page.body, "html.parser")
        state = parse_page_state(page.body)

        candidates: List[Candidate] = []
        hits = self.embedded_hits(state)
        candidates.extend(c for c in (candidate_from_hit(h, self.base_url) for h in hits) if c)
        candidates.extend(self.item_list_candidates(soup, page.url))
        candidates.extend(self.anchor_candidates(soup, page.url))

        return ListingPageResult(
            candidates=dedupe_candidates(candidates),
            search_query=self.search_query(state, page_number, default_hits_per_page=len(hits)),
            next_url=find_next_page(soup, page.url),
            state=state,
        )

    def embedded_hits(self, state: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for path in EMBEDDED_HITS_PATHS:
            hits = dig(state, *path)
            if isinstance(hits, list):
                return [h for h in hits if isinstance(h, dict)]
        return []

    def item_list_candidates(self, soup: BeautifulSoup, base: str) -> List[Candidate]:
        candidates = []
        for node in json_ld_nodes(soup):
            types = node.get("@type") or node.get("type")
            types = types if isinstance(types, list) else [types]
            if not any(t in ("ItemList", "CollectionPage") for t in types):
                continue
            for item in node.get("itemListElement") or []:
                if not isinstance(item, dict):
                    continue
                inner = item.get("item")
                href = item.get("url") or (inner.get("url") if isinstance(inner, dict) else inner)
                url = normalize_url(href, base) if isinstance(href, str) else None
                if url and is_detail_url(url):
                    candidates.append(Candidate(url=url, identity_key=identity_for_url(url)))
        return candidates

    def anchor_candidates(self, soup: BeautifulSoup, base: str) -> List[Candidate]:
        candidates = []
        for anchor in soup.find_all("a", href=True):
            url = normalize_url(anchor["href"], base)
            if not url:
                continue
            if not is_site_url(url):
                url = unwrap_detail_url(url)
                if not url:
                    continue
            if is_detail_url(url):
                candidates.append(Candidate(url=url, identity_key=identity_for_url(url)))
        return candidates

    def search_query(
        self,
        state: Optional[Dict[str, Any]],
        page_number: int,
        default_hits_per_page: int = 0,
    ) -> Optional[SearchApiQuery]:
        """Search-API query for the page after ``page_number``, when the state has credentials."""
        algolia = dig(state, "algolia")
        if not isinstance(algolia, dict):
            return None
        app_id = algolia.get("appId") or algolia.get("applicationId")
        api_key = algolia.get("apiKey") or algolia.get("searchOnlyAPIKey")
        index_name = algolia.get("indexName") or algolia.get("index")
        if not (app_id and api_key and index_name):
            return None

        hits_per_page = algolia.get("hitsPerPage") or default_hits_per_page or DEFAULT_HITS_PER_PAGE
        return SearchApiQuery(
            app_id=str(app_id),
            api_key=str(api_key),
            index_name=str(index_name),
            filters=compile_filters(dig(state, "filters")),
            query=str(algolia.get("query") or ""),
            hits_per_page=int(hits_per_page),
            page=page_number,
        )

    def parse_search_response(self, body: str) -> SearchResultPage:
        """Decode a search-API response.

        Raises:
            MalformedPayloadError: If the body is not JSON or lacks a results list
        """
        payload = parse_json(body)
        if not isinstance(payload, dict):
            raise MalformedPayloadError("search response is not a JSON object")
        results = payload.get("results")
        result = results[0] if isinstance(results, list) and results else payload
        if not isinstance(result, dict) or not isinstance(result.get("hits"), list):
            raise MalformedPayloadError("search response has no hits list")

        candidates = [c for c in (candidate_from_hit(h, self.base_url) for h in result["hits"]) if c]
        try:
            page = int(result.get("page", 0))
            nb_pages = int(result.get("nbPages", page + 1))
        except (TypeError, ValueError) as e:
            raise MalformedPayloadError(f"bad pagination fields: {e}") from e
        return SearchResultPage(candidates=dedupe_candidates(candidates), page=page, nb_pages=nb_pages)

    def location_nodes(self, page: FetchedPage) -> List[LocationNode]:
        """Location graph embedded in a page, empty when there is no page state."""
        state = parse_page_state(page.body)
        if state is None:
            return []
        return collect_location_nodes(state)


def find_next_page(soup: BeautifulSoup, base: str) -> Optional[str]:
    """HTML next-page link: rel=next, then a "next"-looking anchor, then pagination icons."""
    rel = soup.select_one('a[rel="next"], link[rel="next"]')
    if rel is not None and rel.get("href"):
        return normalize_url(rel["href"], base)

    for anchor in soup.find_all("a", href=True):
        text = anchor.get_text(" ").strip().lower()
        if text in NEXT_TEXT_MARKERS or text.startswith("next"):
            return normalize_url(anchor["href"], base)

    for anchor in soup.select('a[title*="Next"], a[aria-label*="Next"], .pagination a'):
        label = (anchor.get("title") or anchor.get("aria-label") or "").lower()
        if anchor.get("href") and "next" in label:
            return normalize_url(anchor["href"], base)
    return None

