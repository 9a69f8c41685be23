"""PostgreSQL currency store."""

from __future__ import annotations

from fx_cbr.db.relational_backend import RelationalBackend


class PostgresBackend(RelationalBackend):
    """Currency store for ``postgresql`` DSNs (needs a driver such as psycopg2)."""


__all__ = ["PostgresBackend"]
