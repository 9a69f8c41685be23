"""CLI entry point for a one-off CBR rate import."""

from __future__ import annotations

from fx_cbr.seeds.populate_cbr_rates import main

if __name__ == "__main__":  # pragma: no cover - thin wrapper
    raise SystemExit(main())
