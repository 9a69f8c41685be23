from __future__ import annotations

import inspect
from datetime import date
from decimal import Decimal

import pytest

from fx_cbr.errors import MalformedDocument
from fx_cbr.ingestion.cbr_xml import (
    document_date,
    iter_rate_records,
    load_document,
    parse_cbr_document,
    rate_per_unit,
)


def _document(*entries: str) -> bytes:
    body = "".join(entries)
    return f'<ValCurs Date="02.03.2024" name="Foreign Currency Market">{body}</ValCurs>'.encode()


def _valute(code: str | None = "USD", nominal: str | None = "1", value: str | None = "75,5") -> str:
    parts = ["<Valute>"]
    if code is not None:
        parts.append(f"<CharCode>{code}</CharCode>")
    if nominal is not None:
        parts.append(f"<Nominal>{nominal}</Nominal>")
    parts.append("<Name>Test currency</Name>")
    if value is not None:
        parts.append(f"<Value>{value}</Value>")
    parts.append("</Valute>")
    return "".join(parts)


def test_parse_sample_document_divides_by_nominal(sample_xml: bytes) -> None:
    result = parse_cbr_document(sample_xml)

    assert result.rate_date == date(2026, 10, 19)
    assert [(r.code, r.rate_per_unit) for r in result.records] == [
        ("USD", Decimal("75.500000")),
        ("JPY", Decimal("0.502000")),
    ]
    assert result.skipped == []


def test_comma_and_period_separators_give_the_same_rate() -> None:
    comma = parse_cbr_document(_document(_valute(value="75,5")))
    period = parse_cbr_document(_document(_valute(value="75.5")))

    assert comma.records[0].rate_per_unit == period.records[0].rate_per_unit == Decimal("75.5")


def test_grouping_spaces_are_ignored() -> None:
    result = parse_cbr_document(_document(_valute(value="1 234,5")))

    assert result.records[0].rate_per_unit == Decimal("1234.5")


def test_missing_value_drops_only_that_entry() -> None:
    result = parse_cbr_document(
        _document(_valute(code="USD", value=None), _valute(code="EUR", value="82,1"))
    )

    assert [r.code for r in result.records] == ["EUR"]
    assert len(result.skipped) == 1
    assert result.skipped[0].code == "USD"
    assert result.skipped[0].reason == "incomplete entry"


@pytest.mark.parametrize(
    ("entry", "reason"),
    [
        (_valute(nominal="0"), "invalid nominal"),
        (_valute(nominal="ten"), "invalid nominal"),
        (_valute(nominal="1_000"), "invalid nominal"),
        (_valute(nominal="+5"), "invalid nominal"),
        (_valute(nominal="\u0661\u0660"), "invalid nominal"),
        (_valute(value="abc"), "invalid value"),
        (_valute(value="-1,5"), "invalid value"),
        (_valute(value="0"), "invalid value"),
        (_valute(code="US"), "invalid currency code"),
        (_valute(code="US1"), "invalid currency code"),
        (_valute(code=None), "incomplete entry"),
    ],
)
def test_invalid_entries_are_skipped(entry: str, reason: str) -> None:
    result = parse_cbr_document(_document(entry, _valute(code="GBP", value="95,0")))

    assert [r.code for r in result.records] == ["GBP"]
    assert [s.reason for s in result.skipped] == [reason]


def test_lowercase_codes_are_normalised() -> None:
    result = parse_cbr_document(_document(_valute(code="eur", value="82,1")))

    assert result.records[0].code == "EUR"


def test_skipped_entries_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("WARNING", logger="fx_cbr")

    parse_cbr_document(_document(_valute(value="n/a")))

    assert any("Skipping CBR entry" in message for message in caplog.messages)


@pytest.mark.parametrize(
    "payload",
    [b"", b"   \n", b"<ValCurs><Valute>", b"not xml at all", "<ValCurs"],
)
def test_unparseable_documents_raise(payload: bytes | str) -> None:
    with pytest.raises(MalformedDocument):
        load_document(payload)


def test_unexpected_root_element_raises() -> None:
    with pytest.raises(MalformedDocument, match="root element"):
        load_document(b"<Rates><Valute/></Rates>")


def test_text_payload_is_accepted() -> None:
    result = parse_cbr_document(_document(_valute()).decode())

    assert result.records[0].code == "USD"


def test_empty_document_yields_no_records() -> None:
    result = parse_cbr_document(b'<ValCurs Date="01.01.2024"></ValCurs>')

    assert result.records == []
    assert result.rate_date == date(2024, 1, 1)


def test_iter_rate_records_is_lazy() -> None:
    root = load_document(_document(_valute(), _valute(code="EUR")))
    records = iter_rate_records(root)

    assert inspect.isgenerator(records)
    assert next(records).code == "USD"
    assert next(records).code == "EUR"


def test_document_date_is_optional() -> None:
    assert document_date(load_document(b"<ValCurs/>")) is None
    assert document_date(load_document(b'<ValCurs Date="garbage"/>')) is None


def test_rate_per_unit_rounds_to_six_places() -> None:
    assert rate_per_unit(Decimal("1"), 3) == Decimal("0.333333")
    assert rate_per_unit(Decimal("2"), 3) == Decimal("0.666667")


def test_rate_rounding_to_zero_skips_only_that_entry() -> None:
    root = load_document(
        _document(
            _valute(code="XAA", nominal="10000", value="0,0001"),
            _valute(code="USD", value="75,5"),
        )
    )
    skipped: list = []

    records = list(iter_rate_records(root, skipped=skipped))

    assert [record.code for record in records] == ["USD"]
    assert [(entry.code, entry.reason) for entry in skipped] == [
        ("XAA", "rate below stored precision")
    ]
