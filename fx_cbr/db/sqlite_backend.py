"""SQLite backend strategy implementation."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from fx_cbr.db import DEFAULT_SQLITE_DB_PATH
from fx_cbr.db.relational_backend import RelationalBackend


def sqlite_url(db_path: str | Path) -> str:
    return f"sqlite:///{Path(db_path).expanduser().resolve()}"


def create_sqlite_engine(db_path: str | Path = DEFAULT_SQLITE_DB_PATH) -> Engine:
    """Create an engine usable from the scheduler's worker thread."""

    return create_engine(
        sqlite_url(db_path),
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
    )


class SQLiteBackend(RelationalBackend):
    """Store currencies in a local SQLite file (the default database)."""

    def __init__(
        self,
        db_path: str | Path = DEFAULT_SQLITE_DB_PATH,
        *,
        engine: Engine | None = None,
    ) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        owns_engine = engine is None
        super().__init__(engine=engine or create_sqlite_engine(self.db_path))
        self._owns_engine = owns_engine


__all__ = ["SQLiteBackend", "create_sqlite_engine", "sqlite_url"]
