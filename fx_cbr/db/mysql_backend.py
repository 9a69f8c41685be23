"""MySQL currency store."""

from __future__ import annotations

from fx_cbr.db.relational_backend import RelationalBackend


class MySQLBackend(RelationalBackend):
    """Currency store for ``mysql`` DSNs (needs a driver such as PyMySQL)."""


__all__ = ["MySQLBackend"]
