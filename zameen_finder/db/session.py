"""Database engine and session factory."""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from zameen_finder.config import settings
from zameen_finder.db.models import Base


def get_engine(db_url=None, db_path=None):
    """Create a SQLAlchemy engine for the configured database.

    Args:
        db_url: Optional database URL (PostgreSQL, SQLite, etc.)
        db_path: Optional SQLite database path

    Returns:
        SQLAlchemy engine

    Note:
        If db_url is provided, it takes precedence over db_path.
        If neither is provided, uses settings.db_url or settings.db_path.
    """
    url = db_url or settings.db_url
    path = db_path or settings.db_path

    if url and (url.startswith("postgresql://") or url.startswith("postgres://")):
        return create_engine(url, echo=False, pool_pre_ping=True)

    # In-memory SQLite is shared by every crawl worker thread
    if url in ("sqlite://", "sqlite:///:memory:") or (not url and not path):
        return create_engine(
            "sqlite://",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    if url:
        return create_engine(url, echo=False)

    path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{path}", echo=False, connect_args={"check_same_thread": False})


_engine = None
_SessionLocal = None


def _get_default_engine():
    """Return the lazily-initialised default engine (singleton)."""
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


def _get_session_factory():
    """Return the lazily-initialised session factory (singleton)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=_get_default_engine())
    return _SessionLocal


def init_db() -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=_get_default_engine())


def get_db() -> Generator[Session, None, None]:
    """Yield a database session, closing it when done."""
    db = _get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def reset_engine() -> None:
    """Dispose the cached engine so the next access builds a fresh one."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def clear_db() -> None:
    """Delete all rows from every table, keeping the schema."""
    engine = _get_default_engine()
    Base.metadata.create_all(bind=engine)
    with Session(engine) as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
