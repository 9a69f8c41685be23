"""Data models shared across ingestion and storage modules."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

RATE_QUANTUM = Decimal("0.000001")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalise_code(code: str) -> str:
    """Return ``code`` trimmed and upper-cased."""

    return code.strip().upper()


@dataclass(slots=True)
class RateRecord:
    """A single normalised rate extracted from the feed.

    ``rate_per_unit`` is the quoted price divided by the nominal, i.e. the
    price of exactly one unit of the foreign currency.
    """

    code: str
    rate_per_unit: Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.code, str) or not self.code.strip():
            raise ValueError("Currency code must not be empty")
        self.code = normalise_code(self.code)
        if not isinstance(self.rate_per_unit, Decimal):
            self.rate_per_unit = Decimal(str(self.rate_per_unit))
        if self.rate_per_unit <= 0:
            raise ValueError(f"Rate for {self.code} must be positive, got {self.rate_per_unit}")


@dataclass(slots=True)
class SkippedEntry:
    """Diagnostic describing a feed entry that was dropped during parsing."""

    reason: str
    code: str | None = None
    nominal: str | None = None
    value: str | None = None
    name: str | None = None


@dataclass(slots=True)
class CurrencyEntity:
    """Persistent representation of a currency and its latest rate."""

    code: str
    rate_per_unit: Decimal
    display_name: str
    unit_size: int = 1
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def create(
        cls,
        code: str,
        rate_per_unit: Decimal,
        display_name: str,
        unit_size: int = 1,
    ) -> "CurrencyEntity":
        """Validate the inputs and build a brand-new entity."""

        if not code or not code.strip():
            raise ValueError("Currency code must not be empty")
        if not display_name or not display_name.strip():
            raise ValueError("Currency display name must not be empty")
        _ensure_positive_rate(rate_per_unit)
        _ensure_positive_unit_size(unit_size)
        now = utc_now()
        return cls(
            code=normalise_code(code),
            rate_per_unit=rate_per_unit,
            display_name=display_name.strip(),
            unit_size=unit_size,
            created_at=now,
            updated_at=now,
        )

    def update_rate(self, new_rate: Decimal) -> None:
        _ensure_positive_rate(new_rate)
        self.rate_per_unit = new_rate
        self.touch()

    def update_info(self, new_rate: Decimal, display_name: str, unit_size: int) -> None:
        """Replace rate, display name and unit size in one step."""

        _ensure_positive_rate(new_rate)
        if not display_name or not display_name.strip():
            raise ValueError("Currency display name must not be empty")
        _ensure_positive_unit_size(unit_size)
        self.rate_per_unit = new_rate
        self.display_name = display_name.strip()
        self.unit_size = unit_size
        self.touch()

    def touch(self) -> None:
        # Timestamps must move forward even when two updates land in the same tick.
        now = utc_now()
        if now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        self.updated_at = now


def _ensure_positive_rate(rate: Decimal) -> None:
    if rate <= 0:
        raise ValueError(f"Currency rate must be positive, got {rate}")


def _ensure_positive_unit_size(unit_size: int) -> None:
    if unit_size < 1:
        raise ValueError(f"Currency unit size must be at least 1, got {unit_size}")


__all__ = [
    "CurrencyEntity",
    "RATE_QUANTUM",
    "RateRecord",
    "SkippedEntry",
    "normalise_code",
    "utc_now",
]
