"""Shared in-memory doubles for the ingestion tests."""

from __future__ import annotations

import dataclasses
from datetime import date
from decimal import Decimal
from typing import Callable, Iterator, Sequence

import pytest

from fx_cbr.db.base_backend import RateStore
from fx_cbr.ingestion.models import CurrencyEntity, RateRecord, normalise_code

SAMPLE_XML = """<?xml version="1.0" encoding="windows-1251"?>
<ValCurs Date="19.10.2026" name="Foreign Currency Market">
    <Valute ID="R01235">
        <NumCode>840</NumCode>
        <CharCode>USD</CharCode>
        <Nominal>1</Nominal>
        <Name>US Dollar</Name>
        <Value>75,5000</Value>
    </Valute>
    <Valute ID="R01820">
        <NumCode>392</NumCode>
        <CharCode>JPY</CharCode>
        <Nominal>100</Nominal>
        <Name>Japanese Yen</Name>
        <Value>50,2000</Value>
    </Valute>
</ValCurs>
""".encode("cp1251")


class InMemoryStore(RateStore):
    """Dictionary backed store that hands out copies like a real database."""

    def __init__(self, rows: Sequence[CurrencyEntity] = ()) -> None:
        self.rows: dict[str, CurrencyEntity] = {row.code: row for row in rows}
        self.pending_inserts: list[CurrencyEntity] = []
        self.pending_updates: list[CurrencyEntity] = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.fail_on_commit: Exception | None = None

    def ensure_schema(self) -> None:
        return None

    def find_by_code(self, code: str) -> CurrencyEntity | None:
        row = self.rows.get(normalise_code(code))
        return None if row is None else dataclasses.replace(row)

    def insert_many(self, entities: Sequence[CurrencyEntity]) -> None:
        self.pending_inserts.extend(entities)

    def update(self, entity: CurrencyEntity) -> None:
        self.pending_updates.append(entity)

    def commit(self) -> int:
        self.commits += 1
        if self.fail_on_commit is not None:
            raise self.fail_on_commit
        written = 0
        for entity in self.pending_updates:
            self.rows[entity.code] = dataclasses.replace(entity)
            written += 1
        for entity in self.pending_inserts:
            if entity.code in self.rows:
                raise ValueError(f"duplicate code {entity.code}")
            self.rows[entity.code] = dataclasses.replace(entity)
            written += 1
        self.pending_inserts.clear()
        self.pending_updates.clear()
        return written

    def fetch_all(self) -> list[CurrencyEntity]:
        return [dataclasses.replace(self.rows[code]) for code in sorted(self.rows)]

    def rollback(self) -> None:
        self.rollbacks += 1
        self.pending_inserts.clear()
        self.pending_updates.clear()

    def close(self) -> None:
        self.closed = True


class StaticSource:
    """Rate source returning a fixed batch and remembering each call."""

    def __init__(self, records: Sequence[RateRecord] = ()) -> None:
        self.records = list(records)
        self.calls: list[date | None] = []

    def fetch(self, as_of=None, *, cancel_event=None) -> Iterator[RateRecord]:
        self.calls.append(as_of)
        return iter(list(self.records))


@pytest.fixture
def sample_xml() -> bytes:
    return SAMPLE_XML


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def store_cls() -> type[InMemoryStore]:
    return InMemoryStore


@pytest.fixture
def static_source() -> Callable[..., StaticSource]:
    def _build(*pairs: tuple[str, str]) -> StaticSource:
        return StaticSource([RateRecord(code, Decimal(rate)) for code, rate in pairs])

    return _build
