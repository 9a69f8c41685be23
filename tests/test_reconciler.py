from __future__ import annotations

from decimal import Decimal

import pytest

from fx_cbr.errors import ReconciliationFailed
from fx_cbr.ingestion.cbr_xml import parse_cbr_document
from fx_cbr.ingestion.models import CurrencyEntity, RateRecord
from fx_cbr.reconciler import PersistenceResult, Reconciler


def _records(*pairs: tuple[str, str]) -> list[RateRecord]:
    return [RateRecord(code, Decimal(rate)) for code, rate in pairs]


def test_creates_unknown_currencies(memory_store) -> None:
    result = Reconciler().reconcile(_records(("USD", "75.5"), ("JPY", "0.502")), memory_store)

    assert result == PersistenceResult(inserted=2, updated=0)
    usd = memory_store.rows["USD"]
    assert usd.rate_per_unit == Decimal("75.5")
    assert usd.display_name == "USD"
    assert usd.unit_size == 1
    assert memory_store.commits == 1


def test_updates_existing_currency_in_place(memory_store) -> None:
    reconciler = Reconciler()
    reconciler.reconcile(_records(("USD", "75.5"), ("JPY", "0.502")), memory_store)
    before = memory_store.rows["USD"]

    result = reconciler.reconcile(_records(("USD", "76")), memory_store)

    assert result == PersistenceResult(inserted=0, updated=1)
    after = memory_store.rows["USD"]
    assert after.rate_per_unit == Decimal("76")
    assert after.id == before.id
    assert after.created_at == before.created_at
    assert after.updated_at > before.updated_at
    assert memory_store.rows["JPY"].rate_per_unit == Decimal("0.502")


def test_reapplying_a_batch_is_idempotent(memory_store) -> None:
    reconciler = Reconciler()
    batch = _records(("USD", "75.5"), ("EUR", "82.1"))

    reconciler.reconcile(batch, memory_store)
    first = {code: row.rate_per_unit for code, row in memory_store.rows.items()}
    ids = {code: row.id for code, row in memory_store.rows.items()}
    second = reconciler.reconcile(batch, memory_store)

    assert second == PersistenceResult(inserted=0, updated=2)
    assert {code: row.rate_per_unit for code, row in memory_store.rows.items()} == first
    assert {code: row.id for code, row in memory_store.rows.items()} == ids


def test_empty_batch_still_commits_once(memory_store) -> None:
    result = Reconciler().reconcile([], memory_store)

    assert result.total == 0
    assert memory_store.commits == 1
    assert memory_store.rows == {}


def test_duplicate_new_codes_keep_last_rate(memory_store) -> None:
    result = Reconciler().reconcile(_records(("USD", "1"), ("USD", "2")), memory_store)

    assert result.inserted == 1
    assert memory_store.rows["USD"].rate_per_unit == Decimal("2")


def test_duplicate_existing_codes_keep_last_rate(store_cls) -> None:
    store = store_cls([CurrencyEntity.create("USD", Decimal("70"), "USD")])

    result = Reconciler().reconcile(_records(("USD", "71"), ("usd", "72")), store)

    assert result == PersistenceResult(inserted=0, updated=1)
    assert store.rows["USD"].rate_per_unit == Decimal("72")


def test_store_failures_are_wrapped(memory_store) -> None:
    memory_store.fail_on_commit = RuntimeError("disk full")

    with pytest.raises(ReconciliationFailed) as excinfo:
        Reconciler().reconcile(_records(("USD", "75.5")), memory_store)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert excinfo.value.kind == "reconciliation_failed"
    assert memory_store.rows == {}


def test_lookup_failures_are_wrapped(memory_store, monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(code: str):
        raise ConnectionError("database went away")

    monkeypatch.setattr(memory_store, "find_by_code", _boom)

    with pytest.raises(ReconciliationFailed):
        Reconciler().reconcile(_records(("USD", "75.5")), memory_store)
    assert memory_store.commits == 0


def test_apply_returns_total(memory_store) -> None:
    assert Reconciler().apply(_records(("USD", "75.5"), ("EUR", "82.1")), memory_store) == 2
    assert Reconciler().apply(_records(("USD", "76")), memory_store) == 1


def test_default_find_by_codes_filters_fetch_all(store_cls) -> None:
    store = store_cls(
        [
            CurrencyEntity.create("USD", Decimal("75.5"), "USD"),
            CurrencyEntity.create("EUR", Decimal("82.1"), "EUR"),
        ]
    )

    assert [e.code for e in store.find_by_codes([" usd ", ""])] == ["USD"]
    assert store.find_by_codes([]) == []


def test_feed_scenario_creates_then_updates(sample_xml: bytes, memory_store) -> None:
    reconciler = Reconciler()

    first = reconciler.reconcile(parse_cbr_document(sample_xml).records, memory_store)
    usd_only = parse_cbr_document(
        b"<ValCurs><Valute><CharCode>USD</CharCode><Nominal>1</Nominal>"
        b"<Value>76,0000</Value></Valute></ValCurs>"
    )
    second = reconciler.reconcile(usd_only.records, memory_store)

    assert first == PersistenceResult(inserted=2, updated=0)
    assert second == PersistenceResult(inserted=0, updated=1)
    assert memory_store.rows["USD"].rate_per_unit == Decimal("76.0000")
    assert memory_store.rows["JPY"].rate_per_unit == Decimal("0.5020")
