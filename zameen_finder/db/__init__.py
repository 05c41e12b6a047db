"""Database layer: models and session management."""
from zameen_finder.db.models import Base, Listing, ScrapeMeta
from zameen_finder.db.session import (
    clear_db,
    get_db,
    get_engine,
    init_db,
    reset_engine,
)

__all__ = [
    # Models
    "Base",
    "Listing",
    "ScrapeMeta",
    # Session management
    "get_engine",
    "get_db",
    "init_db",
    "reset_engine",
    "clear_db",
]
