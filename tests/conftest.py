"""Shared fixtures and factories for the test suite."""

import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from zameen_finder.config import RunInput
from zameen_finder.db.models import Base
from zameen_finder.scraper.base import FetchedPage, ListingRecord, Task
from zameen_finder.scraper.ledger import ReservationLedger
from zameen_finder.scraper.router import TaskRouter
from zameen_finder.sinks import MemorySink

BASE = "https://www.zameen.com"


@pytest.fixture
def db_engine():
    """Create an in-memory SQLite engine."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Create a database session for testing."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.close()


def make_hit(external_id="101", title="House A", price=25000000, area=418.06, **kwargs) -> dict:
    """Factory for search-API hits as embedded in list pages."""
    hit = {
        "externalID": external_id,
        "title": title,
        "slug": title.lower().replace(" ", "-"),
        "price": price,
        "rooms": 4,
        "baths": 5,
        "area": area,
        "purpose": "for-sale",
        "location": [
            {"name": "Pakistan", "level": 0, "externalID": "1"},
            {"name": "Islamabad", "level": 2, "externalID": "3"},
            {"name": "DHA Defence", "level": 3, "externalID": "3188"},
        ],
        "category": [
            {"name": "Homes", "slug": "Homes", "level": 0},
            {"name": "Houses", "slug": "Houses_Property", "level": 1},
        ],
    }
    hit.update(kwargs)
    return hit


def detail_url(external_id="101", slug="house_a") -> str:
    return f"{BASE}/Property/{slug}-{external_id}-3188-3.html"


def state_html(state: dict, body: str = "") -> str:
    """A page that inlines ``state`` the way the site does."""
    return (
        "<html><head><script>window.state = "
        + json.dumps(state)
        + ";window.other = {};</script></head><body>"
        + body
        + "</body></html>"
    )


def make_page(body: str, url: str = f"{BASE}/Homes/Islamabad_DHA_Defence-3188-1.html", status_code: int = 200) -> FetchedPage:
    return FetchedPage(url=url, status_code=status_code, body=body)


def make_run_input(**kwargs) -> RunInput:
    defaults = dict(results_wanted=10, max_pages=5, scrape_details=True)
    defaults.update(kwargs)
    return RunInput(**defaults)


class FakeContext:
    """Stands in for the engine: records enqueued tasks, dedups like the queue."""

    def __init__(self, session=None):
        self.tasks = []
        self._keys = set()
        self.session = session

    def enqueue(self, task: Task) -> bool:
        if task.unique_key in self._keys:
            return False
        self._keys.add(task.unique_key)
        self.tasks.append(task)
        return True

    def retire_session(self) -> None:
        if self.session is not None:
            self.session.retire()

    def labels(self):
        return [t.label for t in self.tasks]


class FakeSession:
    """Serves canned pages by URL; unknown URLs return 404."""

    def __init__(self, pages: dict):
        self.pages = pages
        self.requests = []
        self.retired = False

    def fetch(self, task: Task) -> FetchedPage:
        self.requests.append(task)
        response = self.pages.get(task.url)
        if callable(response):
            response = response(task)
        if response is None:
            return FetchedPage(url=task.url, status_code=404, body="not found")
        if isinstance(response, FetchedPage):
            return response
        return FetchedPage(url=task.url, status_code=200, body=response)

    def retire(self) -> None:
        self.retired = True


class FakeSessionPool:
    def __init__(self, pages: dict):
        self.session = FakeSession(pages)

    def get(self) -> FakeSession:
        return self.session

    def close(self) -> None:
        pass


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def make_router(sink):
    """Factory building a router with its own ledger around the shared sink."""

    def _make(**run_kwargs):
        run_input = make_run_input(**run_kwargs)
        ledger = ReservationLedger(run_input.results_wanted, run_input.scrape_details)
        return TaskRouter(ledger, sink, run_input)

    return _make


@pytest.fixture
def partial_record():
    return ListingRecord(title="X", price=5000000, external_id="555")
