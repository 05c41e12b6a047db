"""Reservation ledger: the run's budget and deduplication state.

The ledger is the only mutable state shared between concurrently running
task handlers, so every method that reads-then-writes holds one lock.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

MAX_OVERALLOCATION = 50
OVERALLOCATION_RATIO = 0.2


@dataclass(frozen=True)
class LedgerSnapshot:
    results_wanted: int
    max_reservations: int
    reserved: int
    saved: int


def overallocation_margin(results_wanted: int) -> int:
    """Extra detail reservations allowed to absorb detail pages that fail terminally."""
    return min(MAX_OVERALLOCATION, int(results_wanted * OVERALLOCATION_RATIO))


class ReservationLedger:
    """Counts reservations and emissions and remembers what was already queued.

    Args:
        results_wanted: Number of records the run should emit
        scrape_details: Whether detail pages are fetched; only then is the
            reservation budget over-allocated
    """

    def __init__(self, results_wanted: int, scrape_details: bool = True):
        if results_wanted < 1:
            raise ValueError(f"results_wanted must be positive, got {results_wanted}")
        self.results_wanted = results_wanted
        self.max_reservations = results_wanted
        if scrape_details:
            self.max_reservations += overallocation_margin(results_wanted)

        self._lock = threading.Lock()
        self._reserved = 0
        self._saved = 0
        self._seen_detail = set()
        self._seen_pages = set()
        self._emitted = set()

    @property
    def reserved(self) -> int:
        return self._reserved

    @property
    def saved(self) -> int:
        return self._saved

    @property
    def remaining_reservations(self) -> int:
        with self._lock:
            return max(0, self.max_reservations - self._reserved)

    @property
    def accepting_tasks(self) -> bool:
        """False once either budget is exhausted; handlers then stop creating tasks."""
        with self._lock:
            return self._saved < self.results_wanted and self._reserved < self.max_reservations

    @property
    def goal_reached(self) -> bool:
        with self._lock:
            return self._saved >= self.results_wanted

    def is_reserved(self, identity_key: str) -> bool:
        with self._lock:
            return identity_key in self._seen_detail

    def reserve_detail(self, identity_key: str) -> bool:
        """Reserve one identity key.

        Returns:
            True if the caller should create the task, False if the key was
            already reserved or the budget is spent
        """
        with self._lock:
            return self._reserve_locked(identity_key)

    def reserve_batch(self, identity_keys: Iterable[str]) -> List[str]:
        """Reserve keys in order, skipping known ones, until the budget runs out.

        The whole batch is decided under one lock so concurrent pages cannot
        interleave and overshoot the budget.
        """
        accepted = []
        with self._lock:
            for key in identity_keys:
                if self._reserved >= self.max_reservations:
                    break
                if self._reserve_locked(key):
                    accepted.append(key)
        return accepted

    def _reserve_locked(self, identity_key: str) -> bool:
        if identity_key in self._seen_detail or self._reserved >= self.max_reservations:
            return False
        self._seen_detail.add(identity_key)
        self._reserved += 1
        return True

    def reserve_page(self, signature: str) -> bool:
        """Mark a pagination request as queued; False if it already was."""
        with self._lock:
            if signature in self._seen_pages:
                return False
            self._seen_pages.add(signature)
            return True

    def record_emitted(self, identity_key: Optional[str] = None) -> bool:
        """Count one record pushed to the sink.

        Refused (False) once ``results_wanted`` records were emitted, or when a
        record with the same identity key was already emitted.
        """
        with self._lock:
            if self._saved >= self.results_wanted:
                return False
            if identity_key is not None:
                if identity_key in self._emitted:
                    return False
                self._emitted.add(identity_key)
            self._saved += 1
            return True

    def release_emitted(self, identity_key: Optional[str] = None) -> None:
        """Undo :meth:`record_emitted` after the sink rejected the record."""
        with self._lock:
            if identity_key is not None:
                self._emitted.discard(identity_key)
            self._saved = max(0, self._saved - 1)

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                results_wanted=self.results_wanted,
                max_reservations=self.max_reservations,
                reserved=self._reserved,
                saved=self._saved,
            )
