"""Database seeding utilities for :mod:`fx_cbr`."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

__all__ = ["seed_cbr_rates"]

if TYPE_CHECKING:  # pragma: no cover - import only for static analyzers
    from fx_cbr.seeds.populate_cbr_rates import seed_cbr_rates as seed_cbr_rates


def __getattr__(name: str) -> Any:
    """Lazily expose seed helpers to avoid import-time side effects."""

    if name == "seed_cbr_rates":
        from fx_cbr.seeds.populate_cbr_rates import seed_cbr_rates as _seed

        return _seed
    raise AttributeError(f"module 'fx_cbr.seeds' has no attribute {name}")
