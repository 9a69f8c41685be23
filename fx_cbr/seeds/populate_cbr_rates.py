"""CLI + helpers for a one-off CBR rate import (optionally for a past date)."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from datetime import date
from typing import Sequence

from fx_cbr.config import IngestionSettings
from fx_cbr.errors import ConfigurationError, IngestionError
from fx_cbr.ingestion.models import RateRecord
from fx_cbr.ingestion.strategy import RateSource
from fx_cbr.reconciler import PersistenceResult
from fx_cbr.utils.cbr import enforce_cbr_date_window, parse_date
from fx_cbr.utils.logger import default_log_level, get_logger, set_log_level

LOGGER = get_logger(__name__)

__all__ = ["SeedResult", "seed_cbr_rates", "parse_args", "main"]


@dataclass(slots=True)
class SeedResult:
    as_of: date | None
    records: list[RateRecord] = field(default_factory=list)
    rows: PersistenceResult = field(default_factory=PersistenceResult)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--date",
        dest="as_of",
        help="Rates date (YYYY-MM-DD or DD/MM/YYYY); defaults to the current rates",
    )
    parser.add_argument("--db", dest="db_url", help="Database URL (defaults to bundled SQLite)")
    parser.add_argument("--feed-url", dest="feed_url", help="CBR daily XML endpoint")
    parser.add_argument("--timeout", type=float, help="HTTP timeout in seconds")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and parse the feed without writing to the database",
    )
    parser.add_argument("--log-level", default=default_log_level(), help="Logging level")
    return parser.parse_args(argv)


def seed_cbr_rates(
    *,
    as_of: date | str | None = None,
    db_url: str | None = None,
    settings: IngestionSettings | None = None,
    source: RateSource | None = None,
    dry_run: bool = False,
) -> SeedResult:
    """Fetch CBR rates once and reconcile them into the configured database."""

    from fx_cbr import FxCbr

    day = parse_date(as_of) if as_of is not None else None
    with FxCbr(db_config=db_url, settings=settings, source=source) as fx:
        if dry_run:
            records = list(fx.source.fetch(day))
            LOGGER.info("Dry-run enabled; parsed %s rates without writing", len(records))
            return SeedResult(as_of=day, records=records)
        outcome = fx.pipeline().run(day)
    LOGGER.info(
        "Seeded CBR rates for %s (inserted=%s, updated=%s)",
        day.isoformat() if day else "today",
        outcome.persisted.inserted,
        outcome.persisted.updated,
    )
    return SeedResult(as_of=day, records=outcome.records, rows=outcome.persisted)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    set_log_level(args.log_level)
    try:
        settings = (
            IngestionSettings.from_env()
            .with_overrides(feed_url=args.feed_url, timeout_seconds=args.timeout)
            .validate()
        )
        as_of = parse_date(args.as_of) if args.as_of else None
        if as_of is not None:
            enforce_cbr_date_window(as_of)
    except (ConfigurationError, ValueError) as exc:
        LOGGER.error("Invalid arguments: %s", exc)
        return 2
    try:
        result = seed_cbr_rates(
            as_of=as_of,
            db_url=args.db_url or settings.db_url,
            settings=settings,
            dry_run=args.dry_run,
        )
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2
    except IngestionError as exc:
        LOGGER.error("CBR import failed (%s): %s", exc.kind, exc)
        return 1
    LOGGER.info("Processed %s rates, %s currencies changed", len(result.records), result.rows.total)
    return 0


if __name__ == "__main__":  # pragma: no cover - thin wrapper
    raise SystemExit(main())
