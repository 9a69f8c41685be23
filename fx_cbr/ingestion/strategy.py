"""Abstractions for pluggable rate sources."""

from __future__ import annotations

import threading
from datetime import date
from typing import Iterator, Protocol

from fx_cbr.ingestion.models import RateRecord


class RateSource(Protocol):
    """Contract for fetching normalised rates.

    Implementations raise :class:`~fx_cbr.errors.SourceUnavailable` or
    :class:`~fx_cbr.errors.MalformedDocument` eagerly from ``fetch`` and then
    hand back a finite, lazily evaluated sequence of records. ``cancel_event``
    is the same event the scheduler uses to stop.
    """

    def fetch(
        self,
        as_of: date | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> Iterator[RateRecord]:
        ...  # pragma: no cover - protocol definition


__all__ = ["RateSource"]
