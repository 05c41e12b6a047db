import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_RESULTS_WANTED = 100
DEFAULT_MAX_PAGES = 20
UNBOUNDED_RESULTS = sys.maxsize


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables with the ZAMEEN_ prefix.
    Example: ZAMEEN_MAX_CONCURRENCY=10
    """
    model_config = {"env_prefix": "ZAMEEN_"}

    # Target site
    base_url: str = "https://www.zameen.com"
    default_start_url: str = "https://www.zameen.com/Homes/Islamabad_DHA_Defence-3188-1.html"
    default_currency: str = "PKR"

    # Database configuration
    db_url: Optional[str] = None
    db_path: Optional[Path] = Path("data/zameen.db")

    # Crawling configuration
    rate_limit: float = 1.0  # seconds between requests on one session
    max_concurrency: int = 5
    max_requests_per_minute: int = 120
    max_request_retries: int = 5
    request_timeout: float = 30.0
    retry_wait_min: float = 2.0
    retry_wait_max: float = 10.0
    session_pool_size: int = 5

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[Path] = Path("logs/zameen.log")


class RunInput(BaseModel):
    """Per-run input: where to start and how much to collect."""

    start_urls: List[str] = Field(default_factory=list)
    keyword: str = ""
    location: str = ""
    category: str = ""
    results_wanted: int = DEFAULT_RESULTS_WANTED
    max_pages: int = DEFAULT_MAX_PAGES
    scrape_details: bool = True
    proxy_configuration: Optional[Dict[str, Any]] = None

    @field_validator("start_urls", mode="before")
    @classmethod
    def coerce_start_urls(cls, v) -> List[str]:
        """Accept plain strings or ``{"url": ...}`` objects."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        urls = []
        for item in v:
            if isinstance(item, dict):
                item = item.get("url")
            if item:
                urls.append(str(item).strip())
        return urls

    @field_validator("keyword", "location", "category", mode="before")
    @classmethod
    def strip_text(cls, v) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("results_wanted", mode="before")
    @classmethod
    def parse_results_wanted(cls, v) -> int:
        """Non-numeric or missing values mean "no limit"."""
        number = _to_number(v)
        if number is None:
            return UNBOUNDED_RESULTS
        return max(1, int(number))

    @field_validator("max_pages", mode="before")
    @classmethod
    def parse_max_pages(cls, v) -> int:
        number = _to_number(v)
        if number is None:
            return DEFAULT_MAX_PAGES
        return max(1, int(number))

    @property
    def proxy_urls(self) -> List[str]:
        if not self.proxy_configuration:
            return []
        urls = self.proxy_configuration.get("proxy_urls") or self.proxy_configuration.get("proxyUrls") or []
        return [str(u) for u in urls]

    @property
    def has_query(self) -> bool:
        return bool(self.keyword or self.location or self.category)

    @classmethod
    def from_file(cls, path: Path) -> "RunInput":
        """Load run input from a YAML or JSON file."""
        with open(path) as f:
            if Path(path).suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        data = data or {}
        # Accept the camelCase keys used by hosted-actor style inputs
        aliases = {
            "startUrls": "start_urls",
            "scrapeDetails": "scrape_details",
            "resultsWanted": "results_wanted",
            "maxPages": "max_pages",
            "proxyConfiguration": "proxy_configuration",
        }
        return cls(**{aliases.get(k, k): v for k, v in data.items()})


def _to_number(v) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        number = float(v)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


settings = Settings()
