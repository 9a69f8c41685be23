"""CBR-specific helpers and invariants used across the package."""

from __future__ import annotations

from datetime import date, datetime

CBR_DAILY_URL = "https://www.cbr.ru/scripts/XML_daily.asp"
CBR_DATE_FORMAT = "%d/%m/%Y"
CBR_DATE_PARAM = "date_req"
CBR_MIN_AVAILABLE_DATE = date(1992, 7, 1)
CBR_MIN_DATE_MESSAGE = "CBR do not provide daily rates before 01/07/1992."


def enforce_cbr_date_window(day: date, *, today: date | None = None) -> None:
    """Ensure ``day`` is inside the window the CBR archive can answer for."""

    if day < CBR_MIN_AVAILABLE_DATE:
        raise ValueError(CBR_MIN_DATE_MESSAGE)
    upper = today or date.today()
    if day > upper:
        raise ValueError(f"Cannot request rates for a future date: {day.isoformat()}")


def format_feed_date(day: date) -> str:
    """Render ``day`` the way the ``date_req`` query parameter expects."""

    return day.strftime(CBR_DATE_FORMAT)


def parse_date(value: str | date) -> date:
    """Parse ``YYYY-MM-DD`` or ``DD/MM/YYYY`` (and ``DD.MM.YYYY``) into a date."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    for fmt in ("%Y-%m-%d", CBR_DATE_FORMAT, "%d.%m.%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date: {value!r}")


__all__ = [
    "CBR_DAILY_URL",
    "CBR_DATE_FORMAT",
    "CBR_DATE_PARAM",
    "CBR_MIN_AVAILABLE_DATE",
    "CBR_MIN_DATE_MESSAGE",
    "enforce_cbr_date_window",
    "format_feed_date",
    "parse_date",
]
