"""Base classes and data models for the listing crawler."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlencode

SOURCE_TAG = "zameen.com"


class Label(str, Enum):
    """Page type of a crawl task."""
    BOOTSTRAP = "BOOTSTRAP"
    BOOTSTRAP_CITY = "BOOTSTRAP_CITY"
    LIST = "LIST"
    ALGOLIA_QUERY = "ALGOLIA_QUERY"
    DETAIL = "DETAIL"


class AreaUnit(str, Enum):
    """Area units reported in output records."""
    KANAL = "kanal"
    MARLA = "marla"
    SQFT = "sqft"
    SQM = "sqm"


@dataclass
class ListingRecord:
    """One listing, possibly incomplete.

    The same type serves as the partial record captured on list pages and
    as the final record handed to the sink. Every numeric field is either a
    finite number or None.
    """
    title: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    area: Optional[float] = None
    area_unit: Optional[str] = None
    location: Optional[str] = None
    city: Optional[str] = None
    property_type: Optional[str] = None
    purpose: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    source: Optional[str] = None
    external_id: Optional[str] = None

    def merge(self, other: Optional["ListingRecord"]) -> "ListingRecord":
        """Fill this record's empty fields from ``other`` (first non-null wins)."""
        if other is None:
            return replace(self)
        values = {}
        for f in fields(self):
            mine = getattr(self, f.name)
            values[f.name] = mine if mine is not None else getattr(other, f.name)
        # area and its unit travel together
        if self.area is not None:
            values["area_unit"] = self.area_unit
        elif other.area is not None:
            values["area_unit"] = other.area_unit
        return ListingRecord(**values)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    @property
    def identity_key(self) -> Optional[str]:
        """External id when known, else the canonical URL."""
        return self.external_id or self.url

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for output."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class SearchApiQuery:
    """Credentials and parameters for one page of the backing search API."""
    app_id: str
    api_key: str
    index_name: str
    filters: str = ""
    query: str = ""
    hits_per_page: int = 25
    page: int = 0  # zero-based, as the API counts

    @property
    def endpoint(self) -> str:
        return f"https://{self.app_id.lower()}-dsn.algolia.net/1/indexes/*/queries"

    def signature(self) -> str:
        """Key identifying one result page, used to avoid re-enqueueing it."""
        return f"{self.index_name}|{self.filters}|{self.query}|{self.hits_per_page}|{self.page}"

    def with_page(self, page: int) -> "SearchApiQuery":
        return replace(self, page=page)

    def request_body(self) -> str:
        params = {
            "query": self.query,
            "page": self.page,
            "hitsPerPage": self.hits_per_page,
        }
        if self.filters:
            params["filters"] = self.filters
        return json.dumps({"requests": [{"indexName": self.index_name, "params": urlencode(params)}]})

    def request_headers(self) -> Dict[str, str]:
        return {
            "x-algolia-application-id": self.app_id,
            "x-algolia-api-key": self.api_key,
            "content-type": "application/json",
        }


@dataclass
class Task:
    """A unit of crawl work, consumed once by the fetch engine."""
    url: str
    label: Label
    page_number: int = 1
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    partial_record: Optional[ListingRecord] = None
    identity_key: Optional[str] = None
    user_data: Dict[str, Any] = field(default_factory=dict)
    retry_count: int = 0

    @classmethod
    def search_api(cls, query: SearchApiQuery, page_number: int, **user_data) -> "Task":
        """Build the POST task that fetches one search-API page."""
        return cls(
            url=query.endpoint,
            label=Label.ALGOLIA_QUERY,
            page_number=page_number,
            method="POST",
            headers=query.request_headers(),
            body=query.request_body(),
            user_data={"search_query": query, **user_data},
        )

    @property
    def unique_key(self) -> str:
        return f"{self.label.value}:{self.method}:{self.url}:{self.body or ''}"

    @property
    def search_query(self) -> Optional[SearchApiQuery]:
        return self.user_data.get("search_query")


@dataclass
class Candidate:
    """A detail page discovered on a list page or search-API response."""
    url: str
    identity_key: str
    partial: Optional[ListingRecord] = None


@dataclass
class FetchedPage:
    """Response returned by the fetch engine for one task."""
    url: str
    status_code: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class ExtractionStrategy(ABC):
    """One source of listing fields on a detail page.

    Strategies are tried in priority order and their partial results are
    coalesced field by field.
    """

    name: str = "base"

    @abstractmethod
    def extract(self, page: FetchedPage) -> Optional[ListingRecord]:
        """Extract whatever fields this source provides.

        Args:
            page: Fetched detail page

        Returns:
            Partial record, or None if the source is absent or unusable
        """
        pass
