"""CLI entry point for the long-running currency updater."""

from __future__ import annotations

from fx_cbr.scheduler import main

if __name__ == "__main__":  # pragma: no cover - thin wrapper
    raise SystemExit(main())
