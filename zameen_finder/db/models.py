"""SQLAlchemy models for zameen.com listing data."""
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import JSON, BigInteger, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Listing(Base):
    """Listing record emitted by a crawl."""
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # external id when known, else the canonical URL
    identity_key: Mapped[str] = mapped_column(String(1024), unique=True, nullable=False, index=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    url: Mapped[Optional[str]] = mapped_column(Text)

    title: Mapped[Optional[str]] = mapped_column(String(500))
    price: Mapped[Optional[float]] = mapped_column(Float, index=True)
    currency: Mapped[Optional[str]] = mapped_column(String(10))
    bedrooms: Mapped[Optional[float]] = mapped_column(Float)
    bathrooms: Mapped[Optional[float]] = mapped_column(Float)
    area: Mapped[Optional[float]] = mapped_column(Float)
    area_unit: Mapped[Optional[str]] = mapped_column(String(10))

    # Location
    location: Mapped[Optional[str]] = mapped_column(String(500))
    city: Mapped[Optional[str]] = mapped_column(String(255), index=True)

    property_type: Mapped[Optional[str]] = mapped_column(String(100))
    purpose: Mapped[Optional[str]] = mapped_column(String(10), index=True)  # 'sale' or 'rent'
    description: Mapped[Optional[str]] = mapped_column(Text)
    source: Mapped[Optional[str]] = mapped_column(String(50))

    # Timestamps
    scraped_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    def __repr__(self) -> str:
        return f"<Listing(identity_key='{self.identity_key}', title='{self.title}', price={self.price})>"


class ScrapeMeta(Base):
    """Metadata about crawl runs."""
    __tablename__ = "scrape_meta"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(UTC))
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Budget counters
    results_wanted: Mapped[Optional[int]] = mapped_column(BigInteger)
    max_reservations: Mapped[Optional[int]] = mapped_column(BigInteger)
    reserved: Mapped[int] = mapped_column(Integer, default=0)
    saved: Mapped[int] = mapped_column(Integer, default=0)
    failed: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[Optional[dict]] = mapped_column(JSON)  # error counts by kind

    def __repr__(self) -> str:
        return f"<ScrapeMeta(run_id='{self.run_id}', reserved={self.reserved}, saved={self.saved})>"
