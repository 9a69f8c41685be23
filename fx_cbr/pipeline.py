"""One fetch-then-reconcile ingestion cycle."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from fx_cbr.db.base_backend import RateStore
from fx_cbr.errors import CycleCancelled, ReconciliationFailed
from fx_cbr.ingestion.models import RateRecord
from fx_cbr.ingestion.strategy import RateSource
from fx_cbr.reconciler import PersistenceResult, Reconciler
from fx_cbr.utils.logger import get_logger

LOGGER = get_logger(__name__)

StoreFactory = Callable[[], RateStore]


@dataclass(slots=True)
class IngestionOutcome:
    """What a single cycle fetched and how much of it was written."""

    records: list[RateRecord] = field(default_factory=list)
    persisted: PersistenceResult = field(default_factory=PersistenceResult)

    @property
    def count(self) -> int:
        return self.persisted.total

    @property
    def is_noop(self) -> bool:
        return not self.records


class IngestionPipeline:
    """Fetch rates from ``source`` and reconcile them into a fresh store handle.

    ``store_factory`` is called once per cycle; the returned store is used as a
    context manager so it is released on every exit path.
    Failing to obtain the store counts as a failed reconciliation.
    """

    def __init__(
        self,
        source: RateSource,
        store_factory: StoreFactory,
        reconciler: Reconciler | None = None,
    ) -> None:
        self.source = source
        self.store_factory = store_factory
        self.reconciler = reconciler or Reconciler()

    def run(
        self,
        as_of: date | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> IngestionOutcome:
        if cancel_event is not None and cancel_event.is_set():
            raise CycleCancelled("Ingestion cycle cancelled before it started")

        records = list(self.source.fetch(as_of, cancel_event=cancel_event))
        if not records:
            LOGGER.warning("CBR feed returned no valid rates; nothing to reconcile")
            return IngestionOutcome()

        LOGGER.info("Fetched %s currency rates", len(records))
        try:
            store = self.store_factory()
        except Exception as exc:
            LOGGER.error("Unable to open the currency store: %s", exc)
            raise ReconciliationFailed(f"Unable to open the currency store: {exc}") from exc
        with store:
            persisted = self.reconciler.reconcile(records, store)
        return IngestionOutcome(records=records, persisted=persisted)

    def run_ingestion_cycle(
        self,
        as_of: date | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> int:
        """Run one cycle and return how many currencies were created or updated."""

        return self.run(as_of, cancel_event=cancel_event).count


__all__ = ["IngestionOutcome", "IngestionPipeline", "StoreFactory"]
