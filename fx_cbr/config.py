"""Runtime settings for the rate updater."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

from fx_cbr.errors import ConfigurationError
from fx_cbr.utils.cbr import CBR_DAILY_URL

DEFAULT_INTERVAL_MINUTES = 240
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_BACKOFF_MINUTES = 5.0
DEFAULT_RETRY_ATTEMPTS = 3

ENV_PREFIX = "FX_CBR_"


@dataclass(slots=True)
class IngestionSettings:
    """Settings shared by the scheduler, the feed client and the CLI."""

    interval_minutes: int = DEFAULT_INTERVAL_MINUTES
    feed_url: str = CBR_DAILY_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    backoff_minutes: float = DEFAULT_BACKOFF_MINUTES
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    db_url: str | None = None

    @property
    def interval(self) -> timedelta:
        return timedelta(minutes=self.interval_minutes)

    @property
    def failure_backoff(self) -> timedelta:
        return timedelta(minutes=self.backoff_minutes)

    def validate(self) -> "IngestionSettings":
        """Return ``self`` or raise :class:`ConfigurationError`."""

        if self.interval_minutes <= 0:
            raise ConfigurationError("interval_minutes must be positive")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")
        if self.backoff_minutes <= 0:
            raise ConfigurationError("backoff_minutes must be positive")
        if self.retry_attempts < 1:
            raise ConfigurationError("retry_attempts must be at least 1")
        if not self.feed_url or not self.feed_url.strip():
            raise ConfigurationError("feed_url is required")
        parsed = urlparse(self.feed_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConfigurationError(f"feed_url must be an http(s) URL, got {self.feed_url!r}")
        return self

    def with_overrides(self, **changes: Any) -> "IngestionSettings":
        """Return a copy with every non-``None`` keyword applied."""

        applied = {key: value for key, value in changes.items() if value is not None}
        return dataclasses.replace(self, **applied)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "IngestionSettings":
        """Build settings from ``FX_CBR_*`` environment variables."""

        env = os.environ if environ is None else environ
        defaults = cls()
        settings = cls(
            interval_minutes=_read(env, "INTERVAL_MINUTES", int, defaults.interval_minutes),
            feed_url=_read(env, "FEED_URL", str, defaults.feed_url),
            timeout_seconds=_read(env, "TIMEOUT_SECONDS", float, defaults.timeout_seconds),
            backoff_minutes=_read(env, "BACKOFF_MINUTES", float, defaults.backoff_minutes),
            retry_attempts=_read(env, "RETRY_ATTEMPTS", int, defaults.retry_attempts),
            db_url=_read(env, "DB_URL", str, defaults.db_url),
        )
        return settings.validate()


def _read(env: Mapping[str, str], name: str, cast: Callable[[str], Any], default: Any) -> Any:
    key = f"{ENV_PREFIX}{name}"
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {key}: {raw!r}") from exc


__all__ = [
    "DEFAULT_BACKOFF_MINUTES",
    "DEFAULT_INTERVAL_MINUTES",
    "DEFAULT_RETRY_ATTEMPTS",
    "DEFAULT_TIMEOUT_SECONDS",
    "ENV_PREFIX",
    "IngestionSettings",
]
