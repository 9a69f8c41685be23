"""Parse the CBR daily rates XML document into ``RateRecord`` rows.

The feed looks like::

    <ValCurs Date="19.10.2026" name="Foreign Currency Market">
        <Valute ID="R01235">
            <NumCode>840</NumCode>
            <CharCode>USD</CharCode>
            <Nominal>1</Nominal>
            <Name>US Dollar</Name>
            <Value>75,5000</Value>
        </Valute>
        ...
    </ValCurs>

``Value`` is quoted for ``Nominal`` units and uses a comma as the decimal
separator. Entries that cannot be turned into a valid record are dropped one
by one; only a document that cannot be parsed at all is fatal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterator

from lxml import etree

from fx_cbr.errors import MalformedDocument
from fx_cbr.ingestion.models import RATE_QUANTUM, RateRecord, SkippedEntry
from fx_cbr.utils.cbr import parse_date
from fx_cbr.utils.logger import get_logger

LOGGER = get_logger(__name__)

ROOT_TAG = "ValCurs"
ENTRY_TAG = "Valute"
_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")


@dataclass(slots=True)
class CbrParseResult:
    """Represents the parsed content of a single CBR document."""

    rate_date: date | None
    records: list[RateRecord] = field(default_factory=list)
    skipped: list[SkippedEntry] = field(default_factory=list)


def _build_parser(payload: bytes | str) -> etree.XMLParser:
    options = {"resolve_entities": False, "no_network": True, "huge_tree": False}
    if isinstance(payload, str):
        # Text has already been decoded, so the declared encoding no longer applies.
        return etree.XMLParser(encoding="utf-8", **options)
    return etree.XMLParser(**options)


def load_document(payload: bytes | str) -> etree._Element:
    """Parse ``payload`` and return the ``ValCurs`` root element."""

    raw = payload.encode("utf-8") if isinstance(payload, str) else payload
    if not raw or not raw.strip():
        raise MalformedDocument("CBR returned an empty document")
    try:
        root = etree.fromstring(raw, parser=_build_parser(payload))
    except etree.XMLSyntaxError as exc:
        raise MalformedDocument(f"CBR document is not well-formed XML: {exc}") from exc
    if root is None or root.tag != ROOT_TAG:
        tag = None if root is None else root.tag
        raise MalformedDocument(f"Unexpected root element {tag!r}; expected {ROOT_TAG!r}")
    return root


def document_date(root: etree._Element) -> date | None:
    raw = root.get("Date")
    if not raw:
        return None
    try:
        return parse_date(raw)
    except ValueError:
        LOGGER.debug("Ignoring unparseable document date %r", raw)
        return None


def _text(element: etree._Element, tag: str) -> str | None:
    value = element.findtext(tag)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_nominal(value: str) -> int | None:
    if not (value.isascii() and value.isdigit()):
        return None
    nominal = int(value)
    return nominal if nominal >= 1 else None


def _parse_price(value: str) -> Decimal | None:
    cleaned = value.replace("\u00a0", "").replace(" ", "").replace(",", ".")
    try:
        price = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def rate_per_unit(price: Decimal, nominal: int) -> Decimal:
    """Return ``price / nominal`` rounded to the stored precision."""

    return (price / Decimal(nominal)).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


def _skip(skipped: list[SkippedEntry] | None, entry: SkippedEntry) -> None:
    LOGGER.warning(
        "Skipping CBR entry (%s): CharCode=%s, Nominal=%s, Value=%s",
        entry.reason,
        entry.code,
        entry.nominal,
        entry.value,
    )
    if skipped is not None:
        skipped.append(entry)


def iter_rate_records(
    root: etree._Element,
    *,
    skipped: list[SkippedEntry] | None = None,
) -> Iterator[RateRecord]:
    """Lazily yield one ``RateRecord`` per valid ``Valute`` element.

    Invalid entries are reported through the logger and appended to
    ``skipped`` when a list is supplied.
    """

    for element in root.iter(ENTRY_TAG):
        code = _text(element, "CharCode")
        nominal_text = _text(element, "Nominal")
        value_text = _text(element, "Value")
        name = _text(element, "Name")

        def _entry(reason: str) -> SkippedEntry:
            return SkippedEntry(
                reason=reason, code=code, nominal=nominal_text, value=value_text, name=name
            )

        if code is None or nominal_text is None or value_text is None:
            _skip(skipped, _entry("incomplete entry"))
            continue
        code = code.upper()
        if not _CODE_PATTERN.match(code):
            _skip(skipped, _entry("invalid currency code"))
            continue
        nominal = _parse_nominal(nominal_text)
        if nominal is None:
            _skip(skipped, _entry("invalid nominal"))
            continue
        price = _parse_price(value_text)
        if price is None:
            _skip(skipped, _entry("invalid value"))
            continue

        per_unit = rate_per_unit(price, nominal)
        if per_unit <= 0:
            _skip(skipped, _entry("rate below stored precision"))
            continue

        record = RateRecord(code=code, rate_per_unit=per_unit)
        LOGGER.debug(
            "Parsed %s = %s per unit (nominal %s)", record.code, record.rate_per_unit, nominal
        )
        yield record


def parse_cbr_document(payload: bytes | str) -> CbrParseResult:
    """Parse a complete CBR document eagerly."""

    root = load_document(payload)
    result = CbrParseResult(rate_date=document_date(root))
    result.records.extend(iter_rate_records(root, skipped=result.skipped))
    return result


__all__ = [
    "CbrParseResult",
    "ENTRY_TAG",
    "ROOT_TAG",
    "document_date",
    "iter_rate_records",
    "load_document",
    "parse_cbr_document",
    "rate_per_unit",
]
