"""Create-or-update reconciliation of parsed rates against a store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from fx_cbr.db.base_backend import RateStore
from fx_cbr.errors import ReconciliationFailed
from fx_cbr.ingestion.models import CurrencyEntity, RateRecord, normalise_code
from fx_cbr.utils.logger import get_logger

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class PersistenceResult:
    """Represents how many entities were inserted or updated in a batch."""

    inserted: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        """Return the total number of affected entities."""

        return self.inserted + self.updated


class Reconciler:
    """Turn a batch of :class:`RateRecord` into store mutations.

    Existing currencies are updated in place. Unknown codes are collected and
    inserted with one ``insert_many`` call after the whole batch has been
    looked at, then a single ``commit`` flushes everything. When a code
    appears more than once the last record in batch order wins.
    """

    def reconcile(self, records: Iterable[RateRecord], store: RateStore) -> PersistenceResult:
        result = PersistenceResult()
        staged: dict[str, CurrencyEntity] = {}
        updated: dict[str, CurrencyEntity] = {}
        try:
            for record in records:
                code = normalise_code(record.code)
                if code in staged:
                    staged[code].update_rate(record.rate_per_unit)
                    continue
                entity = updated.get(code) or store.find_by_code(code)
                if entity is None:
                    staged[code] = CurrencyEntity.create(
                        code,
                        record.rate_per_unit,
                        # The daily feed is keyed by code; no display name is taken from it.
                        display_name=code,
                        unit_size=1,
                    )
                    LOGGER.debug("Staged new currency %s: %s", code, record.rate_per_unit)
                    continue
                entity.update_rate(record.rate_per_unit)
                store.update(entity)
                updated[code] = entity
                LOGGER.debug("Updated currency %s: %s", code, record.rate_per_unit)

            if staged:
                store.insert_many(list(staged.values()))
            written = store.commit()
        except Exception as exc:
            LOGGER.error("Failed to reconcile currency rates: %s", exc)
            raise ReconciliationFailed(f"Failed to reconcile currency rates: {exc}") from exc

        result.inserted = len(staged)
        result.updated = len(updated)
        LOGGER.info(
            "Reconciled currency rates: inserted %s, updated %s (total %s, store wrote %s)",
            result.inserted,
            result.updated,
            result.total,
            written,
        )
        return result

    def apply(self, records: Iterable[RateRecord], store: RateStore) -> int:
        """Reconcile ``records`` and return the number of entities touched."""

        return self.reconcile(records, store).total


__all__ = ["PersistenceResult", "Reconciler"]
