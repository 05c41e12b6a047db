"""Detail-page extraction from three sources, most trustworthy first.

1. The embedded page-state object (``window.state``) holding the listing as
   the site's own frontend sees it.
2. Structured JSON-LD metadata blocks.
3. Raw markup (headings, aria-labelled facts, description block).

Each source is an :class:`ExtractionStrategy`; their partial records are
coalesced field by field so a higher-priority source always wins.
"""

import json
import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup

from zameen_finder.config import settings

from .base import SOURCE_TAG, ExtractionStrategy, FetchedPage, ListingRecord
from .locations import AREA_LEVEL, CITY_LEVEL
from .page_state import dig, parse_page_state
from .units import declared_area, normalize_area, parse_area_text
from .urls import listing_id_from_url, normalize_url

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

PURPOSES = {
    "for-sale": "sale",
    "sale": "sale",
    "for-rent": "rent",
    "rent": "rent",
}

# Where the listing object lives inside a detail page's state
PROPERTY_STATE_PATHS = (
    ("property", "data"),
    ("property",),
    ("listing", "data"),
)

JSONLD_MIN_SCORE = 4
LISTING_TYPES = ("product", "realestatelisting", "residence", "house", "apartment", "offer")


# =============================================================================
# Field helpers
# =============================================================================

def parse_number(value: Any) -> Optional[float]:
    """Numeric portion of a value, thousands separators stripped.

    Returns an int for whole numbers, a float otherwise, and None for anything
    that is not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        value = value.get("value")
        if value is None:
            return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _NUMBER_RE.search(re.sub(r"(?<=\d),(?=\d)", "", str(value)))
        if not match:
            return None
        number = float(match.group())
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


PRICE_MULTIPLIERS = {
    "thousand": 1_000,
    "lakh": 100_000,
    "lac": 100_000,
    "million": 1_000_000,
    "crore": 10_000_000,
    "arab": 1_000_000_000,
}


def parse_price_text(text: Optional[str]) -> Optional[float]:
    """Price shown in markup, e.g. ``"PKR 2.5 Crore"`` -> 25000000."""
    number = parse_number(text)
    if number is None:
        return None
    lowered = text.lower()
    for word, multiplier in PRICE_MULTIPLIERS.items():
        if word in lowered:
            number = number * multiplier
            return int(number) if float(number).is_integer() else number
    return number


def clean_text(html: Optional[str]) -> Optional[str]:
    """Plain text from an HTML fragment with scripts, styles and frames removed."""
    if not html:
        return None
    soup = BeautifulSoup(str(html), "html.parser")
    for tag in soup(["script", "style", "noscript", "iframe"]):
        tag.decompose()
    text = re.sub(r"\s+", " ", soup.get_text(" ")).strip()
    return text or None


def map_purpose(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return PURPOSES.get(value.strip().lower())


def city_from_locations(locations: Any) -> Optional[str]:
    for node in _level_nodes(locations):
        if node["level"] == CITY_LEVEL:
            return node["name"]
    return None


def location_from_locations(locations: Any) -> Optional[str]:
    names = [node["name"] for node in _level_nodes(locations) if node["level"] >= AREA_LEVEL]
    return ", ".join(names) or None


def property_type_from_categories(categories: Any) -> Optional[str]:
    """Category at level 1, else the second entry, else the last one."""
    if not isinstance(categories, list):
        return None
    entries = [c for c in categories if isinstance(c, dict)]
    if not entries:
        return None
    chosen = next((c for c in entries if _as_int(c.get("level")) == 1), None)
    if chosen is None:
        chosen = entries[1] if len(entries) > 1 else entries[-1]
    name = chosen.get("slug") or chosen.get("nameSingular") or chosen.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    name = name.strip().lower()
    return name[: -len("_property")] if name.endswith("_property") else name


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _level_nodes(locations: Any) -> List[Dict[str, Any]]:
    if not isinstance(locations, list):
        return []
    nodes = []
    for item in locations:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        level = _as_int(item.get("level"))
        if level is None:
            continue
        nodes.append({"name": item["name"].strip(), "level": level})
    return nodes


def record_from_listing_data(data: Dict[str, Any], url: Optional[str] = None) -> ListingRecord:
    """Build a record from a search-API hit or the page-state listing object.

    Both share the same shape: ``price``, ``rooms``, ``baths``, ``area`` (in
    square meters), ``location`` and ``category`` arrays, ``purpose`` and
    ``externalID``.
    """
    area, area_unit = normalize_area(parse_number(data.get("area")))
    external_id = data.get("externalID") or data.get("id")
    return ListingRecord(
        title=_text_or_none(data.get("title")),
        price=parse_number(data.get("price")),
        currency=_text_or_none(data.get("currency")),
        bedrooms=parse_number(data.get("rooms")),
        bathrooms=parse_number(data.get("baths")),
        area=area,
        area_unit=area_unit,
        location=location_from_locations(data.get("location")),
        city=city_from_locations(data.get("location")),
        property_type=property_type_from_categories(data.get("category")),
        purpose=map_purpose(data.get("purpose")),
        description=clean_text(data.get("description")),
        url=url,
        external_id=str(external_id) if external_id is not None else None,
    )


def _text_or_none(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = re.sub(r"\s+", " ", value).strip()
    return value or None


def coalesce(records: Iterable[Optional[ListingRecord]]) -> ListingRecord:
    """Merge records in priority order; the first non-null value of each field wins."""
    merged = ListingRecord()
    for record in records:
        if record is not None:
            merged = merged.merge(record)
    return merged


# =============================================================================
# Strategies
# =============================================================================

class PageStateExtractor(ExtractionStrategy):
    """Reads the listing object from the embedded page state."""

    name = "page_state"

    def extract(self, page: FetchedPage) -> Optional[ListingRecord]:
        state = parse_page_state(page.body)
        if state is None:
            return None
        for path in PROPERTY_STATE_PATHS:
            data = dig(state, *path)
            if isinstance(data, dict) and data.get("externalID") is not None:
                return record_from_listing_data(data)
        logger.debug(f"Page state of {page.url} has no listing id")
        return None


class JsonLdExtractor(ExtractionStrategy):
    """Reads the JSON-LD block that most resembles a listing."""

    name = "json_ld"

    def extract(self, page: FetchedPage) -> Optional[ListingRecord]:
        soup = BeautifulSoup(page.body, "html.parser")
        node = best_structured_node(json_ld_nodes(soup))
        if node is None:
            return None
        return self._record_from_node(node, page.url)

    def _record_from_node(self, node: Dict[str, Any], base_url: str) -> ListingRecord:
        offers = node.get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        offers = offers if isinstance(offers, dict) else {}

        area, area_unit = None, None
        floor_size = node.get("floorSize")
        if isinstance(floor_size, dict):
            area, area_unit = declared_area(
                parse_number(floor_size.get("value")),
                floor_size.get("unitCode") or floor_size.get("unitText"),
            )

        address = node.get("address")
        address = address if isinstance(address, dict) else {}
        external_id = node.get("productID") or node.get("sku")
        rooms = node.get("numberOfRooms")
        if rooms is None:
            rooms = node.get("numberOfBedrooms")

        return ListingRecord(
            title=_text_or_none(node.get("name")),
            price=parse_number(offers.get("price") or node.get("price")),
            currency=_text_or_none(offers.get("priceCurrency")),
            bedrooms=parse_number(rooms),
            bathrooms=parse_number(node.get("numberOfBathroomsTotal")),
            area=area,
            area_unit=area_unit,
            location=_text_or_none(address.get("streetAddress")),
            city=_text_or_none(address.get("addressLocality")),
            description=clean_text(node.get("description")),
            url=normalize_url(node.get("url"), base_url) if isinstance(node.get("url"), str) else None,
            external_id=str(external_id) if external_id is not None else None,
        )


class MarkupExtractor(ExtractionStrategy):
    """Last-resort fields read from headings and aria-labelled elements."""

    name = "markup"

    TITLE_SELECTORS = ["h1", "title"]
    PRICE_SELECTORS = ['[aria-label="Price"]', '[itemprop="price"]', '[class*="price"]']
    BEDS_SELECTORS = ['[aria-label="Beds"]', '[class*="bed"]']
    BATHS_SELECTORS = ['[aria-label="Baths"]', '[class*="bath"]']
    AREA_SELECTORS = ['[aria-label="Area"]', '[class*="area"]', '[class*="size"]']
    LOCATION_SELECTORS = ['[aria-label="Location"]', '[class*="location"]']
    DESCRIPTION_SELECTORS = [
        '[aria-label="Property description"]',
        '[class*="description"]',
        ".listing-description",
    ]

    def extract(self, page: FetchedPage) -> Optional[ListingRecord]:
        soup = BeautifulSoup(page.body, "html.parser")
        area, area_unit = parse_area_text(_text_from(soup, self.AREA_SELECTORS))
        description_node = _first(soup, self.DESCRIPTION_SELECTORS)

        record = ListingRecord(
            title=_text_from(soup, self.TITLE_SELECTORS),
            price=parse_price_text(_text_from(soup, self.PRICE_SELECTORS)),
            bedrooms=parse_number(_text_from(soup, self.BEDS_SELECTORS)),
            bathrooms=parse_number(_text_from(soup, self.BATHS_SELECTORS)),
            area=area,
            area_unit=area_unit,
            location=_text_from(soup, self.LOCATION_SELECTORS),
            description=clean_text(description_node.decode_contents()) if description_node else None,
            external_id=listing_id_from_url(page.url),
        )
        return None if record.is_empty() else record


def _first(soup: BeautifulSoup, selectors: Sequence[str]):
    for selector in selectors:
        node = soup.select_one(selector)
        if node is not None:
            return node
    return None


def _text_from(soup: BeautifulSoup, selectors: Sequence[str]) -> Optional[str]:
    for selector in selectors:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = re.sub(r"\s+", " ", node.get_text(" ")).strip()
        if text:
            return text
    return None


# =============================================================================
# JSON-LD helpers
# =============================================================================

def json_ld_nodes(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """All objects from every JSON-LD block, with arrays and @graph flattened."""
    nodes: List[Dict[str, Any]] = []
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        try:
            parsed = json.loads(raw)
        except ValueError:
            continue
        stack = [parsed]
        while stack:
            item = stack.pop(0)
            if isinstance(item, list):
                stack.extend(item)
            elif isinstance(item, dict):
                nodes.append(item)
                if isinstance(item.get("@graph"), list):
                    stack.extend(item["@graph"])
    return nodes


def _node_types(node: Dict[str, Any]) -> List[str]:
    types = node.get("@type") or node.get("type") or []
    if isinstance(types, str):
        types = [types]
    return [str(t).lower() for t in types if t]


def structured_score(node: Dict[str, Any]) -> int:
    """How much a JSON-LD object looks like a listing."""
    score = 0
    offers = node.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if (isinstance(offers, dict) and offers.get("price") is not None) or node.get("price") is not None:
        score += 3
    if node.get("name"):
        score += 1
    if node.get("description"):
        score += 1
    if node.get("url"):
        score += 1
    if any(t in LISTING_TYPES for t in _node_types(node)):
        score += 2
    return score


def best_structured_node(
    nodes: Iterable[Dict[str, Any]],
    min_score: int = JSONLD_MIN_SCORE,
) -> Optional[Dict[str, Any]]:
    best, best_score = None, 0
    for node in nodes:
        if any(t in ("itemlist", "collectionpage", "breadcrumblist") for t in _node_types(node)):
            continue
        score = structured_score(node)
        if score > best_score:
            best, best_score = node, score
    if best is None or best_score < min_score:
        return None
    return best


# =============================================================================
# Detail extractor
# =============================================================================

class DetailExtractor:
    """Builds one record per detail page from the ordered strategies.

    A partial record captured on the list page ranks below the structured
    sources and above raw markup.
    """

    def __init__(self, strategies: Optional[Sequence[ExtractionStrategy]] = None):
        if strategies is None:
            strategies = [PageStateExtractor(), JsonLdExtractor(), MarkupExtractor()]
        self.strategies = list(strategies)

    def extract(self, page: FetchedPage, partial: Optional[ListingRecord] = None) -> ListingRecord:
        """Extract a record from a fetched detail page.

        Args:
            page: Fetched detail page
            partial: Fields captured during list-page discovery, if any

        Returns:
            Merged record; url, source and currency are always set
        """
        ranked: List[Optional[ListingRecord]] = []
        for strategy in self.strategies:
            if partial is not None and isinstance(strategy, MarkupExtractor):
                ranked.append(partial)
                partial = None
            try:
                ranked.append(strategy.extract(page))
            except Exception as e:
                logger.warning(f"{strategy.name} extraction failed for {page.url}: {e}")
        if partial is not None:
            ranked.append(partial)

        record = coalesce(ranked)
        return finalize_record(record, page.url)


def finalize_record(record: ListingRecord, url: Optional[str]) -> ListingRecord:
    """Apply the canonical URL, the source tag and the default currency."""
    record = record.merge(ListingRecord(currency=settings.default_currency))
    # an area without a unit cannot be reported
    if record.area is None or record.area_unit is None:
        record.area, record.area_unit = None, None
    record.url = normalize_url(url) or record.url
    record.source = SOURCE_TAG
    return record
