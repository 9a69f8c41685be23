from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from fx_cbr.ingestion.models import CurrencyEntity, RateRecord


def test_rate_record_normalises_code_and_rate() -> None:
    record = RateRecord(" usd ", 75.5)  # type: ignore[arg-type]

    assert record.code == "USD"
    assert record.rate_per_unit == Decimal("75.5")


@pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-1")])
def test_rate_record_rejects_non_positive_rates(rate: Decimal) -> None:
    with pytest.raises(ValueError):
        RateRecord("USD", rate)


def test_rate_record_rejects_blank_code() -> None:
    with pytest.raises(ValueError):
        RateRecord("  ", Decimal("1"))


def test_create_sets_identity_and_equal_timestamps() -> None:
    entity = CurrencyEntity.create("eur", Decimal("82.1"), display_name=" Euro ")

    assert entity.code == "EUR"
    assert entity.display_name == "Euro"
    assert entity.unit_size == 1
    assert entity.created_at == entity.updated_at
    assert entity.created_at.tzinfo is not None
    assert entity.id != CurrencyEntity.create("EUR", Decimal("1"), "EUR").id


@pytest.mark.parametrize(
    ("code", "rate", "name", "unit_size"),
    [
        ("", Decimal("1"), "Name", 1),
        ("USD", Decimal("0"), "Name", 1),
        ("USD", Decimal("1"), " ", 1),
        ("USD", Decimal("1"), "Name", 0),
    ],
)
def test_create_validates_inputs(code: str, rate: Decimal, name: str, unit_size: int) -> None:
    with pytest.raises(ValueError):
        CurrencyEntity.create(code, rate, display_name=name, unit_size=unit_size)


def test_update_rate_keeps_identity_and_moves_timestamp_forward() -> None:
    entity = CurrencyEntity.create("USD", Decimal("75.5"), "USD")
    original_id = entity.id
    created_at = entity.created_at
    # Simulate a stored timestamp slightly in the future of the local clock.
    entity.updated_at = entity.updated_at + timedelta(seconds=5)
    previous = entity.updated_at

    entity.update_rate(Decimal("76"))

    assert entity.rate_per_unit == Decimal("76")
    assert entity.id == original_id
    assert entity.created_at == created_at
    assert entity.updated_at > previous


def test_update_rate_rejects_non_positive() -> None:
    entity = CurrencyEntity.create("USD", Decimal("75.5"), "USD")

    with pytest.raises(ValueError):
        entity.update_rate(Decimal("0"))
    assert entity.rate_per_unit == Decimal("75.5")


def test_update_info_replaces_descriptive_fields() -> None:
    entity = CurrencyEntity.create("JPY", Decimal("0.5"), "JPY")

    entity.update_info(Decimal("0.51"), "Japanese Yen", 100)

    assert (entity.rate_per_unit, entity.display_name, entity.unit_size) == (
        Decimal("0.51"),
        "Japanese Yen",
        100,
    )
    with pytest.raises(ValueError):
        entity.update_info(Decimal("0.51"), "Japanese Yen", 0)
