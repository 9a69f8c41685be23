"""Exception hierarchy used by the ingestion pipeline.

Recoverable failures derive from :class:`IngestionError`; the scheduler logs
them and keeps its schedule. Anything else escaping a cycle is treated as
unexpected and triggers the shorter failure backoff.
"""

from __future__ import annotations


class FxCbrError(Exception):
    """Base class for every error raised by :mod:`fx_cbr`."""


class ConfigurationError(FxCbrError, ValueError):
    """Invalid or missing settings discovered at startup."""


class IngestionError(FxCbrError):
    """A cycle failed in a way the next cycle may recover from."""

    kind = "ingestion"


class SourceUnavailable(IngestionError):
    """The rate feed could not be reached or answered with an error status."""

    kind = "source_unavailable"

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class MalformedDocument(IngestionError):
    """The feed answered but the document cannot be parsed as a whole."""

    kind = "malformed_document"


class ReconciliationFailed(IngestionError):
    """A store operation failed while applying a batch of rates."""

    kind = "reconciliation_failed"


class CycleCancelled(FxCbrError):
    """Raised when a cancellation request interrupts a running cycle."""


__all__ = [
    "ConfigurationError",
    "CycleCancelled",
    "FxCbrError",
    "IngestionError",
    "MalformedDocument",
    "ReconciliationFailed",
    "SourceUnavailable",
]
