"""Timed driver that keeps the currency table up to date."""

from __future__ import annotations

import argparse
import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Sequence

from fx_cbr.config import IngestionSettings
from fx_cbr.errors import ConfigurationError, CycleCancelled, IngestionError
from fx_cbr.ingestion.models import utc_now
from fx_cbr.pipeline import IngestionPipeline
from fx_cbr.utils.logger import default_log_level, get_logger, set_log_level

LOGGER = get_logger(__name__)

SAMPLE_SIZE = 5

WaitFunction = Callable[[threading.Event, float], bool]


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    WAITING = "waiting"
    STOPPED = "stopped"


class CycleStatus(str, Enum):
    SUCCEEDED = "succeeded"
    NO_DATA = "no_data"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class CycleReport:
    """Outcome of one scheduled cycle."""

    status: CycleStatus
    count: int = 0
    error: BaseException | None = None
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def recoverable(self) -> bool:
        return self.error is None or isinstance(self.error, IngestionError)


def _wait_on_event(event: threading.Event, seconds: float) -> bool:
    return event.wait(seconds)


class Scheduler:
    """Run ingestion cycles immediately and then on a fixed interval.

    Recoverable failures (:class:`IngestionError`) are logged and the regular
    interval is kept. Any other exception escaping a cycle is logged with its
    traceback and the next attempt happens after ``failure_backoff``.
    Setting ``cancel_event`` stops the loop at the next wait or cycle start.
    """

    def __init__(
        self,
        pipeline: IngestionPipeline,
        *,
        interval: timedelta = timedelta(minutes=240),
        failure_backoff: timedelta = timedelta(minutes=5),
        cancel_event: threading.Event | None = None,
        wait: WaitFunction = _wait_on_event,
    ) -> None:
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        if failure_backoff <= timedelta(0):
            raise ValueError("failure_backoff must be positive")
        self.pipeline = pipeline
        self.interval = interval
        self.failure_backoff = failure_backoff
        self.cancel_event = cancel_event or threading.Event()
        self._wait = wait
        self._state = SchedulerState.IDLE
        self._thread: threading.Thread | None = None
        self.next_wakeup: datetime | None = None
        self.last_report: CycleReport | None = None
        LOGGER.info("Currency update scheduler configured with interval %s", interval)

    @classmethod
    def from_settings(
        cls,
        pipeline: IngestionPipeline,
        settings: IngestionSettings,
        **kwargs,
    ) -> "Scheduler":
        return cls(
            pipeline,
            interval=settings.interval,
            failure_backoff=settings.failure_backoff,
            **kwargs,
        )

    @property
    def state(self) -> SchedulerState:
        return self._state

    def run_once(self) -> CycleReport:
        """Run a single cycle and classify its outcome.

        Only recoverable errors and cancellation are folded into the report;
        anything else propagates to the caller.
        """

        report = CycleReport(status=CycleStatus.SUCCEEDED)
        LOGGER.info("Starting currency rate update at %s", report.started_at.isoformat())
        try:
            outcome = self.pipeline.run(cancel_event=self.cancel_event)
        except CycleCancelled:
            LOGGER.info("Currency rate update was cancelled")
            report.status = CycleStatus.CANCELLED
        except IngestionError as exc:
            LOGGER.error(
                "Currency rate update failed (%s): %s. Will retry at the next interval",
                exc.kind,
                exc,
            )
            report.status = CycleStatus.FAILED
            report.error = exc
        else:
            if outcome.is_noop:
                LOGGER.warning("Currency rate update fetched no rates; nothing changed")
                report.status = CycleStatus.NO_DATA
            else:
                report.count = outcome.count
                LOGGER.info(
                    "Currency rate update finished: %s currencies created or updated",
                    report.count,
                )
                for record in outcome.records[:SAMPLE_SIZE]:
                    LOGGER.debug("Rate %s = %s", record.code, record.rate_per_unit)
        report.finished_at = utc_now()
        self.last_report = report
        return report

    def run(self, *, max_cycles: int | None = None) -> None:
        """Block in the calling thread until cancelled (or ``max_cycles`` ran)."""

        LOGGER.info("Currency update scheduler started")
        cycles = 0
        try:
            while not self.cancel_event.is_set():
                self._state = SchedulerState.RUNNING
                delay = self.interval
                try:
                    report = self.run_once()
                except Exception as exc:
                    LOGGER.exception("Unexpected error in the currency update loop")
                    report = CycleReport(
                        status=CycleStatus.FAILED, error=exc, finished_at=utc_now()
                    )
                    self.last_report = report
                    delay = self.failure_backoff
                cycles += 1
                if report.status is CycleStatus.CANCELLED:
                    break
                if max_cycles is not None and cycles >= max_cycles:
                    break
                if self._sleep(delay):
                    LOGGER.info("Currency update scheduler received a stop request")
                    break
        finally:
            self._state = SchedulerState.STOPPED
            self.next_wakeup = None
            LOGGER.info("Currency update scheduler stopped after %s cycle(s)", cycles)

    def _sleep(self, delay: timedelta) -> bool:
        self._state = SchedulerState.WAITING
        self.next_wakeup = utc_now() + delay
        LOGGER.info("Next currency rate update in %s (at %s)", delay, self.next_wakeup.isoformat())
        return self._wait(self.cancel_event, delay.total_seconds())

    def start(self) -> threading.Thread:
        """Run the loop on a daemon thread and return it.

        A scheduler stopped earlier can be started again; the pending stop
        request is cleared first.
        """

        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Scheduler is already running")
        self.cancel_event.clear()
        self._thread = threading.Thread(target=self.run, name="fx-cbr-scheduler", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        """Request cancellation and wait for the background thread, if any."""

        LOGGER.info("Stopping currency update scheduler")
        self.cancel_event.set()
        if self._thread is not None:
            self._thread.join(timeout)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Keep CBR currency rates up to date.")
    parser.add_argument("--interval", type=int, help="Minutes between updates (default 240)")
    parser.add_argument("--db", dest="db_url", help="Database URL (defaults to bundled SQLite)")
    parser.add_argument("--feed-url", dest="feed_url", help="CBR daily XML endpoint")
    parser.add_argument("--timeout", type=float, help="HTTP timeout in seconds")
    parser.add_argument("--max-cycles", type=int, help="Stop after this many cycles")
    parser.add_argument("--log-level", default=default_log_level(), help="Logging level")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    from fx_cbr import FxCbr

    args = parse_args(argv)
    set_log_level(args.log_level)
    try:
        settings = (
            IngestionSettings.from_env()
            .with_overrides(
                interval_minutes=args.interval,
                db_url=args.db_url,
                feed_url=args.feed_url,
                timeout_seconds=args.timeout,
            )
            .validate()
        )
        fx = FxCbr(db_config=settings.db_url, settings=settings)
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    LOGGER.info("=== fx-cbr currency updater ===")
    LOGGER.info("Update interval: %s minutes", settings.interval_minutes)
    LOGGER.info("Database backend: %s", fx.backend)
    scheduler = fx.scheduler()

    def _request_stop(signum, _frame) -> None:
        LOGGER.info("Received signal %s", signum)
        scheduler.cancel_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)
    try:
        scheduler.run(max_cycles=args.max_cycles)
    finally:
        fx.close()
    return 0


__all__ = [
    "CycleReport",
    "CycleStatus",
    "Scheduler",
    "SchedulerState",
    "main",
    "parse_args",
]
