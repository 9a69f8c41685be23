"""requests-based downloader for the CBR daily rates feed."""

from __future__ import annotations

import threading
import time
from datetime import date
from typing import Callable, Iterator, Optional

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt
from tenacity import wait_exponential

from fx_cbr.errors import CycleCancelled, SourceUnavailable
from fx_cbr.ingestion.cbr_xml import (
    CbrParseResult,
    document_date,
    iter_rate_records,
    load_document,
    parse_cbr_document,
)
from fx_cbr.ingestion.models import RateRecord
from fx_cbr.utils.cbr import (
    CBR_DAILY_URL,
    CBR_DATE_PARAM,
    enforce_cbr_date_window,
    format_feed_date,
)
from fx_cbr.utils.logger import get_logger

LOGGER = get_logger(__name__)

DEFAULT_USER_AGENT = "fx-cbr-updater/1.0"
CHUNK_SIZE = 8192

_monotonic = time.monotonic


class _RetryableStatus(Exception):
    """Server-side HTTP status worth another attempt."""

    def __init__(self, status: int, url: str) -> None:
        super().__init__(f"CBR responded with HTTP {status} for {url}")
        self.status = status
        self.url = url


_RETRYABLE_EXCEPTIONS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
    _RetryableStatus,
)


class CbrRequestsClient:
    """Download the raw CBR XML document with bounded retries."""

    def __init__(
        self,
        *,
        base_url: str = CBR_DAILY_URL,
        timeout: float = 30,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        session: Optional[requests.Session] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.base_url = base_url
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", user_agent)
        self.session.headers.setdefault("Accept", "application/xml,text/xml;q=0.9,*/*;q=0.8")

    def build_url(self, as_of: date | None = None) -> str:
        """Return the feed URL, optionally pinned to ``as_of``."""

        if as_of is None:
            return self.base_url
        separator = "&" if "?" in self.base_url else "?"
        return f"{self.base_url}{separator}{CBR_DATE_PARAM}={format_feed_date(as_of)}"

    def fetch_document(
        self,
        as_of: date | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> bytes:
        """Return the raw document bytes or raise :class:`SourceUnavailable`."""

        url = self.build_url(as_of)
        LOGGER.info("Downloading CBR rates from %s", url)
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=30),
            retry=retry_if_exception_type(_RETRYABLE_EXCEPTIONS),
            sleep=self._sleeper(cancel_event),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            payload = retrying(self._download, url, cancel_event)
        except _RetryableStatus as exc:
            raise SourceUnavailable(str(exc), url=url, status=exc.status) from exc
        except requests.RequestException as exc:
            raise SourceUnavailable(f"Unable to reach CBR at {url}: {exc}", url=url) from exc
        LOGGER.debug("Received %s bytes from CBR", len(payload))
        return payload

    def _download(self, url: str, cancel_event: threading.Event | None) -> bytes:
        _raise_if_cancelled(cancel_event)
        # requests applies ``timeout`` per socket read; the body also gets an overall deadline.
        deadline = _monotonic() + self.timeout
        response = self.session.get(url, timeout=self.timeout, stream=True)
        try:
            status = response.status_code
            if status >= 500 or status == 429:
                raise _RetryableStatus(status, url)
            if not 200 <= status < 300:
                raise SourceUnavailable(
                    f"CBR responded with HTTP {status} for {url}", url=url, status=status
                )
            buffer = bytearray()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                _raise_if_cancelled(cancel_event)
                if _monotonic() > deadline:
                    raise requests.exceptions.Timeout(
                        f"CBR download from {url} exceeded {self.timeout}s"
                    )
                if chunk:
                    buffer.extend(chunk)
            return bytes(buffer)
        finally:
            response.close()

    @staticmethod
    def _sleeper(cancel_event: threading.Event | None) -> Callable[[float], None]:
        if cancel_event is None:
            return time.sleep

        def _sleep(seconds: float) -> None:
            if cancel_event.wait(seconds):
                raise CycleCancelled("Cancelled while waiting to retry the CBR download")

        return _sleep

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        LOGGER.warning(
            "Attempt %s/%s to download CBR rates failed: %s",
            retry_state.attempt_number,
            self.max_attempts,
            error,
        )

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "CbrRequestsClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class CbrRateSource:
    """Rate source that combines :class:`CbrRequestsClient` with the XML parser."""

    def __init__(self, client: CbrRequestsClient | None = None) -> None:
        self.client = client or CbrRequestsClient()

    def fetch(
        self,
        as_of: date | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> Iterator[RateRecord]:
        """Download and parse the feed, returning a lazy record iterator.

        Transport and document-level failures surface here, before the
        iterator is handed back; malformed entries are skipped while iterating.
        """

        if as_of is not None:
            enforce_cbr_date_window(as_of)
        payload = self.client.fetch_document(as_of, cancel_event=cancel_event)
        root = load_document(payload)
        LOGGER.info("Parsing CBR document dated %s", document_date(root) or "unknown")
        return iter_rate_records(root)

    def fetch_result(
        self,
        as_of: date | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> CbrParseResult:
        """Eager variant of :meth:`fetch` that also reports skipped entries."""

        if as_of is not None:
            enforce_cbr_date_window(as_of)
        payload = self.client.fetch_document(as_of, cancel_event=cancel_event)
        result = parse_cbr_document(payload)
        LOGGER.info(
            "Parsed %s CBR rates (%s skipped) for %s",
            len(result.records),
            len(result.skipped),
            result.rate_date or "unknown date",
        )
        return result

    def close(self) -> None:
        self.client.close()


def _raise_if_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise CycleCancelled("CBR download cancelled")


__all__ = ["CbrRateSource", "CbrRequestsClient", "DEFAULT_USER_AGENT"]
