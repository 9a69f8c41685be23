"""Store interfaces consumed by the reconciler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from fx_cbr.ingestion.models import CurrencyEntity


class RateStore(ABC):
    """Common interface implemented by every currency store.

    ``update`` and ``insert_many`` only stage changes; nothing is durable until
    ``commit`` flushes the staged work in one transaction and reports how many
    entities it wrote.
    """

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create required tables/collections and verify connectivity."""

    @abstractmethod
    def find_by_code(self, code: str) -> CurrencyEntity | None:
        """Return the entity stored under ``code`` (case-insensitive)."""

    @abstractmethod
    def insert_many(self, entities: Sequence[CurrencyEntity]) -> None:
        """Stage new entities for insertion."""

    @abstractmethod
    def update(self, entity: CurrencyEntity) -> None:
        """Stage changes to an entity previously returned by this store."""

    @abstractmethod
    def commit(self) -> int:
        """Flush staged inserts and updates atomically; return rows written."""

    @abstractmethod
    def fetch_all(self) -> list[CurrencyEntity]:
        """Return every stored currency ordered by code."""

    def find_by_codes(self, codes: Iterable[str]) -> list[CurrencyEntity]:
        wanted = {code.strip().upper() for code in codes if code and code.strip()}
        if not wanted:
            return []
        return [entity for entity in self.fetch_all() if entity.code in wanted]

    def rollback(self) -> None:  # pragma: no cover - optional hook
        """Discard staged changes; stores without staging may ignore this."""

    def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Stores may override to release connections/resources."""

    def __enter__(self) -> "RateStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                self.rollback()
        finally:
            self.close()


__all__ = ["RateStore"]
