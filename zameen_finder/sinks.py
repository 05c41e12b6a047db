"""Output sinks: where emitted listing records go.

Sinks are append-only. Uniqueness by identity key is already enforced by the
reservation ledger, so a sink never reads back what it wrote. Each record is
validated first; invalid records are logged and skipped.
"""

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy.orm import Session

from zameen_finder.db.models import Base, Listing, ScrapeMeta
from zameen_finder.db.session import _get_default_engine
from zameen_finder.scraper.base import ListingRecord
from zameen_finder.validation import ListingModel, record_to_validated

if TYPE_CHECKING:
    from zameen_finder.run import RunResult

logger = logging.getLogger(__name__)


class ListingSink(ABC):
    """Destination for emitted records."""

    def __init__(self):
        self._lock = threading.Lock()
        self.skipped = 0

    def emit(self, record: ListingRecord) -> Optional[ListingModel]:
        """Validate and write one record.

        Returns:
            The validated listing, or None if it was skipped
        """
        listing = record_to_validated(record)
        if listing is None:
            with self._lock:
                self.skipped += 1
            return None
        with self._lock:
            self._write(listing)
        return listing

    @abstractmethod
    def _write(self, listing: ListingModel) -> None:
        """Persist one validated listing. Called with the sink lock held."""
        pass

    def finalize(self, result: "RunResult") -> None:
        """Called once after the run with its final counters."""
        pass


class MemorySink(ListingSink):
    """Keeps validated listings in a list; used by tests and library callers."""

    def __init__(self):
        super().__init__()
        self.listings: List[ListingModel] = []
        self.result: Optional["RunResult"] = None

    def _write(self, listing: ListingModel) -> None:
        self.listings.append(listing)

    def finalize(self, result: "RunResult") -> None:
        self.result = result


class JsonLinesSink(ListingSink):
    """Appends one JSON object per listing to a file."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.written = 0

    def _write(self, listing: ListingModel) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(listing.model_dump_json(exclude={"scraped_at"}) + "\n")
        self.written += 1

    def finalize(self, result: "RunResult") -> None:
        logger.info(f"Wrote {self.written} listings to {self.path}")


class DatabaseSink(ListingSink):
    """Stores listings in the ``listings`` table and the run in ``scrape_meta``.

    A listing already stored under the same identity key (from an earlier
    run) is updated in place.

    Args:
        engine: SQLAlchemy engine (the default engine if None)
        run_id: Identifier of this run (generated if None)
    """

    def __init__(self, engine=None, run_id: Optional[str] = None):
        super().__init__()
        self.engine = engine or _get_default_engine()
        Base.metadata.create_all(bind=self.engine)
        self.run_id = run_id or uuid.uuid4().hex
        self.started_at = datetime.now(UTC)
        self.new_count = 0
        self.updated_count = 0

    def _write(self, listing: ListingModel) -> None:
        data = listing.model_dump()
        data["area_unit"] = listing.area_unit.value if listing.area_unit else None
        with Session(self.engine) as session:
            existing = session.query(Listing).filter_by(identity_key=listing.identity_key).first()
            if existing is None:
                session.add(Listing(identity_key=listing.identity_key, **data))
                self.new_count += 1
            else:
                for key, value in data.items():
                    if key != "scraped_at":
                        setattr(existing, key, value)
                self.updated_count += 1
            session.commit()

    def finalize(self, result: "RunResult") -> None:
        with self._lock, Session(self.engine) as session:
            session.add(ScrapeMeta(
                run_id=self.run_id,
                started_at=self.started_at,
                finished_at=datetime.now(UTC),
                results_wanted=result.results_wanted,
                max_reservations=result.max_reservations,
                reserved=result.reserved,
                saved=result.saved,
                failed=result.failed,
                errors={"skipped_invalid": self.skipped} if self.skipped else None,
            ))
            session.commit()
        logger.info(
            f"Run {self.run_id} stored: {self.new_count} new, {self.updated_count} updated listings"
        )
