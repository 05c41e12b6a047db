"""Fetch engine: request queue, worker pool, HTTP sessions and retries."""

import itertools
import logging
import random
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Deque, Iterable, List, Optional

import requests
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from zameen_finder.config import settings

from .base import FetchedPage, Task
from .errors import RetryableFetchError, ScraperException
from .router import CrawlContext, TaskRouter

logger = logging.getLogger(__name__)


class HttpSession:
    """One network identity: a requests session with its own User-Agent and proxy.

    Retiring a session closes it; the pool replaces it before the next request
    so a retry never reuses a blocked identity.
    """

    # User-Agent rotation pool to avoid detection
    USER_AGENTS = [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    ]

    def __init__(
        self,
        proxy_url: Optional[str] = None,
        timeout: float = settings.request_timeout,
        rate_limit_seconds: float = settings.rate_limit,
    ):
        self.proxy_url = proxy_url
        self.timeout = timeout
        self.retired = False
        self.user_agent = random.choice(self.USER_AGENTS)
        self._rate_limit = rate_limit_seconds
        self._last_request_time = 0.0
        self._lock = threading.Lock()
        self._session = requests.Session()
        self._session.headers.update({
            "User-Agent": self.user_agent,
            "Accept-Language": "en-US,en;q=0.9",
        })
        if proxy_url:
            self._session.proxies = {"http": proxy_url, "https": proxy_url}

    def _rate_limit_wait(self) -> None:
        """Wait if needed to respect the per-session delay, with jitter."""
        with self._lock:
            elapsed = time.time() - self._last_request_time
            wait_time = 0.0
            if elapsed < self._rate_limit:
                wait_time = self._rate_limit - elapsed
                # Add jitter: ±20% random variation to avoid patterns
                jitter = random.uniform(-0.2, 0.2) * wait_time
                wait_time = max(0.1, wait_time + jitter)
            self._last_request_time = time.time() + wait_time
        if wait_time:
            logger.debug(f"Rate limiting: waiting {wait_time:.2f}s (with jitter)")
            time.sleep(wait_time)

    def fetch(self, task: Task) -> FetchedPage:
        """Perform the task's HTTP request.

        Raises:
            requests.RequestException: On network failure
        """
        self._rate_limit_wait()
        response = self._session.request(
            task.method,
            task.url,
            headers=task.headers or None,
            data=task.body.encode("utf-8") if task.body else None,
            timeout=self.timeout,
        )
        return FetchedPage(
            url=response.url or task.url,
            status_code=response.status_code,
            body=response.text,
            headers=dict(response.headers),
        )

    def retire(self) -> None:
        if self.retired:
            return
        self.retired = True
        self._session.close()
        logger.debug(f"Retired session (proxy={self.proxy_url}, UA={self.user_agent[:40]}...)")


class SessionPool:
    """Fixed-size pool of sessions; retired sessions are replaced on demand."""

    def __init__(
        self,
        size: int = settings.session_pool_size,
        proxy_urls: Optional[List[str]] = None,
        timeout: float = settings.request_timeout,
        rate_limit_seconds: float = settings.rate_limit,
    ):
        self._lock = threading.Lock()
        self._proxies = itertools.cycle(proxy_urls) if proxy_urls else None
        self._timeout = timeout
        self._rate_limit = rate_limit_seconds
        self._sessions = [self._create() for _ in range(max(1, size))]
        self.retired_count = 0

    def _create(self) -> HttpSession:
        proxy = next(self._proxies) if self._proxies else None
        return HttpSession(proxy_url=proxy, timeout=self._timeout, rate_limit_seconds=self._rate_limit)

    def get(self) -> HttpSession:
        with self._lock:
            index = random.randrange(len(self._sessions))
            if self._sessions[index].retired:
                self.retired_count += 1
                self._sessions[index] = self._create()
            return self._sessions[index]

    def close(self) -> None:
        with self._lock:
            for session in self._sessions:
                session.retire()


class RateLimiter:
    """Thread-safe requests-per-minute ceiling shared by all workers."""

    def __init__(self, max_per_minute: int = settings.max_requests_per_minute):
        self._interval = 60.0 / max_per_minute if max_per_minute and max_per_minute > 0 else 0.0
        self._lock = threading.Lock()
        self._next_slot = 0.0

    def acquire(self) -> None:
        if not self._interval:
            return
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            # ±20% jitter so request spacing has no fixed pattern
            self._next_slot = slot + self._interval * random.uniform(0.8, 1.2)
        if slot > now:
            time.sleep(slot - now)


@dataclass
class EngineStats:
    enqueued: int = 0
    handled: int = 0
    failed: int = 0
    retries: int = 0
    dropped: int = 0


class CrawlEngine:
    """Drains the task queue with a bounded worker pool.

    Each task is fetched and handed to the router; retryable failures are
    retried by tenacity on a fresh session, and tasks that still fail go to
    the router's fallback handler. The run ends when the queue is empty and
    nothing is in flight, or when the router reports it is finished.

    Args:
        router: Task router handling fetched pages
        session_pool: Pool of HTTP sessions (created from settings if None)
        max_concurrency: Maximum number of tasks in flight
        max_requests_per_minute: Request-rate ceiling across all workers
        max_retries: Retries per task after the first attempt
    """

    def __init__(
        self,
        router: TaskRouter,
        session_pool: Optional[SessionPool] = None,
        max_concurrency: int = settings.max_concurrency,
        max_requests_per_minute: int = settings.max_requests_per_minute,
        max_retries: int = settings.max_request_retries,
        retry_wait_min: float = settings.retry_wait_min,
        retry_wait_max: float = settings.retry_wait_max,
    ):
        self._router = router
        self._sessions = session_pool or SessionPool()
        self._max_concurrency = max(1, max_concurrency)
        self._rate_limiter = RateLimiter(max_requests_per_minute)
        self._max_retries = max_retries
        self._retry_wait_min = retry_wait_min
        self._retry_wait_max = retry_wait_max

        self._queue: Deque[Task] = deque()
        self._seen_keys = set()
        self._lock = threading.Lock()
        self.stats = EngineStats()

        logger.info(
            f"CrawlEngine initialized (concurrency={self._max_concurrency}, "
            f"rpm={max_requests_per_minute}, retries={max_retries})"
        )

    def enqueue(self, task: Task) -> bool:
        """Add a task unless an identical request was queued before."""
        with self._lock:
            key = task.unique_key
            if key in self._seen_keys:
                return False
            self._seen_keys.add(key)
            self._queue.append(task)
            self.stats.enqueued += 1
            return True

    def _dequeue(self) -> Optional[Task]:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def run(self, seeds: Iterable[Task] = ()) -> EngineStats:
        """Process tasks until the queue drains or the router is finished."""
        for task in seeds:
            self.enqueue(task)

        with ThreadPoolExecutor(max_workers=self._max_concurrency) as pool:
            in_flight = set()
            while True:
                while len(in_flight) < self._max_concurrency and not self._router.finished:
                    task = self._dequeue()
                    if task is None:
                        break
                    in_flight.add(pool.submit(self._process, task))
                if not in_flight:
                    break
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    future.result()

        if self._router.finished and self.pending:
            self.stats.dropped = self.pending
            logger.info(f"Goal reached, {self.stats.dropped} queued tasks left unprocessed")
        self._sessions.close()
        return self.stats

    def _process(self, task: Task) -> None:
        try:
            self._process_with_retry(task)
            with self._lock:
                self.stats.handled += 1
        except Exception as e:
            if not isinstance(e, (ScraperException, requests.RequestException)):
                logger.exception(f"{task.label.value} {task.url} failed")
            with self._lock:
                self.stats.failed += 1
            self._fail(task, e)

    def _fail(self, task: Task, error: BaseException) -> None:
        try:
            self._router.handle_failed(task, error)
        except Exception as e:
            logger.error(f"Fallback for {task.url} failed: {e}")

    def _on_retry(self, task: Task, retry_state: RetryCallState) -> None:
        task.retry_count = retry_state.attempt_number
        with self._lock:
            self.stats.retries += 1
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"{task.label.value} {task.url} attempt {retry_state.attempt_number} failed: {error}"
        )

    def _process_with_retry(self, task: Task) -> None:
        """Fetch and handle a task, retrying transient failures.

        Raises:
            Exception: The last error once all attempts fail
        """
        @retry(
            retry=retry_if_exception_type((RetryableFetchError, requests.RequestException)),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(multiplier=1, min=self._retry_wait_min, max=self._retry_wait_max),
            before_sleep=lambda state: self._on_retry(task, state),
            reraise=True,
        )
        def _attempt():
            session = self._sessions.get()
            self._rate_limiter.acquire()
            try:
                page = session.fetch(task)
            except requests.RequestException:
                session.retire()
                raise
            self._router.handle(task, page, CrawlContext(enqueue=self.enqueue, session=session))

        _attempt()
