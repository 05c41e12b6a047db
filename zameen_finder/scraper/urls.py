"""URL helpers: normalisation, detail-URL shape and listing URL building."""

import re
from typing import Optional
from urllib.parse import unquote, urljoin, urlparse

from zameen_finder.config import settings

from .locations import LocationNode

# Detail pages look like /Property/<slug>-<externalID>-<locationID>-<n>.html
DETAIL_PATH_RE = re.compile(r"/Property/[^?#]*-\d+\.html$", re.IGNORECASE)
DETAIL_ID_RE = re.compile(r"/Property/[^/?#]*?-(\d+)-\d+-\d+\.html$", re.IGNORECASE)
EMBEDDED_DETAIL_RE = re.compile(
    r"https?://(?:www\.)?zameen\.com/Property/[^\s&\"'#?<>]+?-\d+\.html",
    re.IGNORECASE,
)
EXCLUDED_SECTIONS_RE = re.compile(r"(blog|guide|news|about|contact)", re.IGNORECASE)
SITE_HOST_RE = re.compile(r"(^|\.)zameen\.com$", re.IGNORECASE)

# URL section per free-text category
CATEGORY_SECTIONS = {
    "": "Homes",
    "home": "Homes",
    "homes": "Homes",
    "house": "Homes",
    "houses": "Homes",
    "flat": "Homes",
    "flats": "Homes",
    "apartment": "Homes",
    "apartments": "Homes",
    "plot": "Plots",
    "plots": "Plots",
    "land": "Plots",
    "commercial": "Commercial",
    "shop": "Commercial",
    "office": "Commercial",
    "rent": "Rentals",
    "rental": "Rentals",
    "rentals": "Rentals",
}


def normalize_url(href: Optional[str], base: Optional[str] = None) -> Optional[str]:
    """Make ``href`` absolute against ``base`` and drop the fragment."""
    if not href:
        return None
    href = href.strip()
    if href.lower().startswith(("javascript:", "mailto:", "tel:", "#")):
        return None
    absolute = urljoin(base or settings.base_url + "/", href)
    parsed = urlparse(absolute)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return absolute.split("#")[0]


def is_site_url(url: str) -> bool:
    return bool(SITE_HOST_RE.search(urlparse(url).netloc))


def is_detail_url(url: Optional[str]) -> bool:
    """True for on-site detail pages outside blog/guide/news sections."""
    if not url or not is_site_url(url):
        return False
    path = urlparse(url).path
    if EXCLUDED_SECTIONS_RE.search(path):
        return False
    return bool(DETAIL_PATH_RE.search(path))


def unwrap_detail_url(url: str) -> Optional[str]:
    """Extract a detail URL embedded in an off-site wrapper (e.g. share links)."""
    match = EMBEDDED_DETAIL_RE.search(unquote(url))
    return match.group(0) if match else None


def listing_id_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = DETAIL_ID_RE.search(urlparse(url).path)
    return match.group(1) if match else None


def identity_for_url(url: str) -> str:
    """Identity key for a URL: the listing id when the URL carries one."""
    return listing_id_from_url(url) or url


def slugify(text: Optional[str]) -> str:
    text = re.sub(r"[^\w\s-]", "", str(text or "").lower())
    return re.sub(r"[\s_-]+", "_", text).strip("_")


def category_section(category: Optional[str]) -> str:
    key = (category or "").strip().lower()
    return CATEGORY_SECTIONS.get(key, "Homes")


def location_listing_url(
    node: LocationNode,
    category: str = "",
    page: int = 1,
    base_url: Optional[str] = None,
) -> str:
    """Canonical listing URL of a location, e.g. /Homes/Lahore_DHA_Defence-9-1.html."""
    base = (base_url or settings.base_url).rstrip("/")
    return f"{base}/{category_section(category)}/{node.path_segment}-{node.external_id}-{page}.html"
