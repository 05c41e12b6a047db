"""Run orchestration: seed tasks, wire the crawler together, report counters."""

import logging
from dataclasses import asdict, dataclass
from typing import List, Optional

from zameen_finder.config import RunInput, settings
from zameen_finder.scraper.base import Label, Task
from zameen_finder.scraper.engine import CrawlEngine, SessionPool
from zameen_finder.scraper.ledger import ReservationLedger
from zameen_finder.scraper.router import TaskRouter
from zameen_finder.scraper.urls import identity_for_url, is_detail_url, normalize_url
from zameen_finder.sinks import ListingSink, MemorySink

logger = logging.getLogger(__name__)


def setup_logging():
    """Configure console and file logging."""
    log_level = getattr(logging, settings.log_level.upper())
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format))

    # File handler (if log file is configured)
    handlers = [console_handler]
    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=handlers, force=True)


def classify_url(url: str) -> Label:
    return Label.DETAIL if is_detail_url(url) else Label.LIST


def build_seed_tasks(run_input: RunInput, ledger: Optional[ReservationLedger] = None) -> List[Task]:
    """Initial tasks for a run.

    Explicit start URLs win over a query; with neither, the default start
    listing is crawled. When a ledger is given, seed detail pages take a
    reservation and seed list pages a page signature, like discovered ones.

    Args:
        run_input: Run configuration
        ledger: Reservation ledger of the run

    Returns:
        Seed tasks in input order
    """
    tasks = []
    for raw_url in run_input.start_urls:
        url = normalize_url(raw_url, settings.base_url + "/")
        if not url:
            logger.warning(f"Ignoring start URL {raw_url!r}")
            continue
        if classify_url(url) == Label.DETAIL:
            key = identity_for_url(url)
            if ledger is not None and not ledger.reserve_detail(key):
                continue
            tasks.append(Task(url=url, label=Label.DETAIL, identity_key=key))
        else:
            if ledger is not None and not ledger.reserve_page(f"LIST|{url}"):
                continue
            tasks.append(Task(url=url, label=Label.LIST))

    if tasks or run_input.start_urls:
        return tasks

    if run_input.has_query:
        return [Task(
            url=settings.base_url.rstrip("/") + "/",
            label=Label.BOOTSTRAP,
            user_data={
                "keyword": run_input.keyword,
                "location": run_input.location,
                "category": run_input.category,
            },
        )]

    url = settings.default_start_url
    if ledger is not None:
        ledger.reserve_page(f"LIST|{url}")
    return [Task(url=url, label=Label.LIST)]


@dataclass
class RunResult:
    """Final counters of one run."""
    results_wanted: int
    max_reservations: int
    reserved: int
    saved: int
    handled: int = 0
    failed: int = 0
    retries: int = 0
    dropped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class ScrapeRun:
    """One crawl from seed tasks to a finalized sink.

    Args:
        run_input: Run configuration
        sink: Output sink (an in-memory sink if None)
        session_pool: HTTP session pool (built from the run's proxies if None)
        **engine_options: Passed to :class:`CrawlEngine` (concurrency, retries, ...)
    """

    def __init__(
        self,
        run_input: RunInput,
        sink: Optional[ListingSink] = None,
        session_pool: Optional[SessionPool] = None,
        **engine_options,
    ):
        self.run_input = run_input
        self.sink = sink if sink is not None else MemorySink()
        self.ledger = ReservationLedger(run_input.results_wanted, run_input.scrape_details)
        self.router = TaskRouter(self.ledger, self.sink, run_input)
        self.engine = CrawlEngine(
            self.router,
            session_pool=session_pool or SessionPool(proxy_urls=run_input.proxy_urls),
            **engine_options,
        )

    def run(self) -> RunResult:
        seeds = build_seed_tasks(self.run_input, self.ledger)
        logger.info(
            f"Starting run: {len(seeds)} seed tasks, results_wanted={self.ledger.results_wanted}, "
            f"max_reservations={self.ledger.max_reservations}"
        )
        stats = self.engine.run(seeds)

        snapshot = self.ledger.snapshot()
        result = RunResult(
            results_wanted=snapshot.results_wanted,
            max_reservations=snapshot.max_reservations,
            reserved=snapshot.reserved,
            saved=snapshot.saved,
            handled=stats.handled,
            failed=stats.failed,
            retries=stats.retries,
            dropped=stats.dropped,
        )
        self.sink.finalize(result)
        logger.info(
            f"Run finished: saved {result.saved}/{result.results_wanted}, "
            f"reserved {result.reserved}/{result.max_reservations}, "
            f"{result.failed} failed tasks"
        )
        return result
