"""Root conftest: override DB to SQLite for tests."""

import os

os.environ.setdefault("ZAMEEN_DB_URL", "sqlite:///:memory:")
