"""Public interface for the fx_cbr package."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any, Dict, Iterable
from urllib.parse import quote, urlparse, urlunparse

from pymongo import MongoClient
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from fx_cbr.config import IngestionSettings
from fx_cbr.db import DEFAULT_SQLITE_DB_PATH
from fx_cbr.db.base_backend import RateStore
from fx_cbr.db.mongo_backend import MongoBackend
from fx_cbr.db.mysql_backend import MySQLBackend
from fx_cbr.db.postgres_backend import PostgresBackend
from fx_cbr.db.relational_backend import RelationalBackend
from fx_cbr.db.sqlite_backend import SQLiteBackend, create_sqlite_engine
from fx_cbr.errors import (
    ConfigurationError,
    CycleCancelled,
    FxCbrError,
    IngestionError,
    MalformedDocument,
    ReconciliationFailed,
    SourceUnavailable,
)
from fx_cbr.ingestion.cbr_requests import CbrRateSource, CbrRequestsClient
from fx_cbr.ingestion.models import CurrencyEntity, RateRecord
from fx_cbr.ingestion.strategy import RateSource
from fx_cbr.pipeline import IngestionPipeline
from fx_cbr.reconciler import PersistenceResult, Reconciler
from fx_cbr.scheduler import Scheduler

__all__ = [
    "__version__",
    "ConfigurationError",
    "CurrencyEntity",
    "CycleCancelled",
    "DatabaseBackend",
    "DatabaseConnectionInfo",
    "FxCbr",
    "FxCbrError",
    "IngestionError",
    "IngestionPipeline",
    "IngestionSettings",
    "MalformedDocument",
    "PersistenceResult",
    "RateRecord",
    "Reconciler",
    "ReconciliationFailed",
    "Scheduler",
    "SourceUnavailable",
]

try:
    __version__ = importlib_metadata.version("fx-cbr")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - fallback for local runs
    __version__ = "0.1.0"


POSTGRES_DEFAULT_DRIVER = "psycopg2"
MYSQL_DEFAULT_DRIVER = "pymysql"


class DatabaseBackend(str, Enum):
    """Supported database engines for FxCbr."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRES = "postgres"
    MONGODB = "mongodb"

    @classmethod
    def resolve_backend_and_scheme(cls, scheme: str) -> tuple["DatabaseBackend", str]:
        """Return backend enum + canonical scheme used in connection URLs."""

        if not scheme:
            raise ConfigurationError("DB_URL must include a scheme (e.g. mysql:// or postgres://)")
        scheme_lower = scheme.lower()
        base_scheme, _, driver = scheme_lower.partition("+")
        if base_scheme in {"postgresql", "postgres"}:
            # Bare DSNs use the driver shipped with the ``postgres`` extra.
            return cls.POSTGRES, f"postgresql+{driver or POSTGRES_DEFAULT_DRIVER}"
        if base_scheme == "sqlite":
            return cls.SQLITE, "sqlite"
        if base_scheme == "mysql":
            return cls.MYSQL, f"mysql+{driver or MYSQL_DEFAULT_DRIVER}"
        if base_scheme == "mongodb":
            # srv-style schemes let pymongo resolve hosts via DNS.
            return cls.MONGODB, scheme_lower if driver else "mongodb"
        raise ConfigurationError(
            "Unsupported database backend. Supported values are SQLite, MySQL, "
            "Postgres, and MongoDB."
        )

    @classmethod
    def from_scheme(cls, scheme: str) -> "DatabaseBackend":
        """Normalise URL schemes into a DatabaseBackend value."""

        backend, _ = cls.resolve_backend_and_scheme(scheme)
        return backend


@dataclass(slots=True)
class DatabaseConnectionInfo:
    """Represents how FxCbr should talk to the persistence layer."""

    backend: DatabaseBackend
    url: str
    name: str | None
    username: str | None = None
    password: str | None = None
    host: str | None = None
    port: int | None = None

    @classmethod
    def from_url(cls, url: str) -> "DatabaseConnectionInfo":
        """Create a connection object by parsing a database URL/DSN."""

        parsed = urlparse(url)
        if not parsed.scheme:
            raise ConfigurationError("DB_URL must include a scheme (e.g. mysql:// or postgres://)")
        backend, canonical_scheme = DatabaseBackend.resolve_backend_and_scheme(parsed.scheme)
        if parsed.scheme != canonical_scheme:
            parsed = parsed._replace(scheme=canonical_scheme)
            url = urlunparse(parsed)
        name = parsed.path[1:] if parsed.path and parsed.path != "/" else None
        if backend is DatabaseBackend.SQLITE and not name:
            raise ConfigurationError("SQLite URLs must include a database file path")
        return cls(
            backend=backend,
            url=url,
            name=name,
            username=parsed.username,
            password=parsed.password,
            host=parsed.hostname,
            port=parsed.port,
        )

    @classmethod
    def default_sqlite(cls, db_path: str | Path = DEFAULT_SQLITE_DB_PATH) -> "DatabaseConnectionInfo":
        path = Path(db_path).expanduser().resolve()
        return cls(
            backend=DatabaseBackend.SQLITE,
            url=f"sqlite:///{quote(path.as_posix(), safe='/:')}",
            name=str(path),
        )

    @property
    def is_sqlite(self) -> bool:
        return self.backend is DatabaseBackend.SQLITE

    @property
    def is_external(self) -> bool:
        """Return True for MySQL/Postgres/MongoDB backends."""

        return not self.is_sqlite


class FxCbr:
    """Package facade that wires the feed, the store and the scheduler together."""

    __slots__ = (
        "connection_info",
        "settings",
        "backend",
        "source",
        "reconciler",
        "_engine",
        "_mongo_client",
        "_schema_ready",
    )

    _RELATIONAL_BACKENDS: dict[DatabaseBackend, type[RelationalBackend]] = {
        DatabaseBackend.POSTGRES: PostgresBackend,
        DatabaseBackend.MYSQL: MySQLBackend,
    }

    __version__ = __version__

    def __init__(
        self,
        db_config: DatabaseConnectionInfo | str | None = None,
        *,
        settings: IngestionSettings | None = None,
        source: RateSource | None = None,
    ) -> None:
        """Configure persistence and the rate source.

        ``db_config`` may be a ``DatabaseConnectionInfo`` or a DSN string. When
        omitted, ``settings.db_url`` is used, and failing that the default
        SQLite file next to the package.
        """

        self.settings = (settings or IngestionSettings()).validate()
        if db_config is None:
            db_config = self.settings.db_url
        self.connection_info = self._build_connection_info(db_config)
        self.backend = self.connection_info.backend.value
        self.source: RateSource = source or CbrRateSource(
            CbrRequestsClient(
                base_url=self.settings.feed_url,
                timeout=self.settings.timeout_seconds,
                max_attempts=self.settings.retry_attempts,
                user_agent=f"fx-cbr-updater/{__version__}",
            )
        )
        self.reconciler = Reconciler()
        self._engine: Engine | None = None
        self._mongo_client: MongoClient | None = None
        self._schema_ready = False
        if self.connection_info.is_sqlite:
            self.ensure_schema()

    @staticmethod
    def _build_connection_info(
        db_config: DatabaseConnectionInfo | str | None,
    ) -> DatabaseConnectionInfo:
        if isinstance(db_config, DatabaseConnectionInfo):
            return db_config
        if isinstance(db_config, str):
            return DatabaseConnectionInfo.from_url(db_config)
        return DatabaseConnectionInfo.default_sqlite()

    def open_store(self) -> RateStore:
        """Return a fresh store handle sharing this facade's connection pool."""

        store = self._new_store()
        if not self._schema_ready:
            try:
                store.ensure_schema()
            except Exception:
                store.close()
                raise
            self._schema_ready = True
        return store

    def _new_store(self) -> RateStore:
        info = self.connection_info
        if info.backend is DatabaseBackend.MONGODB:
            if self._mongo_client is None:
                self._mongo_client = MongoClient(info.url, tz_aware=True)
            return MongoBackend(info.url, database=info.name, client=self._mongo_client)
        if info.is_sqlite:
            if self._engine is None:
                self._engine = create_sqlite_engine(Path(info.name or DEFAULT_SQLITE_DB_PATH))
            return SQLiteBackend(Path(info.name or DEFAULT_SQLITE_DB_PATH), engine=self._engine)
        if self._engine is None:
            self._engine = create_engine(info.url, future=True, pool_pre_ping=True)
        backend_cls = self._RELATIONAL_BACKENDS[info.backend]
        return backend_cls(engine=self._engine)

    def ensure_schema(self) -> None:
        with self._new_store() as store:
            store.ensure_schema()
        self._schema_ready = True

    def pipeline(self) -> IngestionPipeline:
        return IngestionPipeline(self.source, self.open_store, self.reconciler)

    def update_rates(self, as_of: date | None = None) -> int:
        """Run one ingestion cycle now and return the number of changed currencies."""

        return self.pipeline().run_ingestion_cycle(as_of)

    def rates(self, codes: Iterable[str] | None = None) -> Dict[str, Decimal]:
        """Return stored rates per unit keyed by currency code."""

        with self.open_store() as store:
            entities = store.fetch_all() if codes is None else store.find_by_codes(codes)
        return {entity.code: entity.rate_per_unit for entity in entities}

    def currencies(self, codes: Iterable[str] | None = None) -> list[CurrencyEntity]:
        with self.open_store() as store:
            return store.fetch_all() if codes is None else store.find_by_codes(codes)

    def scheduler(self, **kwargs: Any) -> Scheduler:
        """Build a :class:`Scheduler` using the configured interval and backoff."""

        return Scheduler.from_settings(self.pipeline(), self.settings, **kwargs)

    def connection(self) -> tuple[bool, str | None]:
        """Attempt to establish a database connection and report the outcome."""

        if self.connection_info.backend is DatabaseBackend.MONGODB:
            return self._probe_mongodb()
        return self._probe_relational_db()

    def _probe_relational_db(self) -> tuple[bool, str | None]:
        engine = None
        try:
            engine = create_engine(self.connection_info.url, future=True)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as exc:  # pragma: no cover - SQLAlchemy provides error detail
            return False, str(exc)
        finally:
            if engine is not None:
                engine.dispose()
        return True, None

    def _probe_mongodb(self) -> tuple[bool, str | None]:
        client: MongoClient | None = None
        try:
            client = MongoClient(self.connection_info.url, serverSelectionTimeoutMS=5000)
            client.admin.command("ping")
        except Exception as exc:  # pragma: no cover - pymongo surfaces detail
            return False, str(exc)
        finally:
            if client is not None:
                client.close()
        return True, None

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        if self._mongo_client is not None:
            self._mongo_client.close()
            self._mongo_client = None
        close_source = getattr(self.source, "close", None)
        if callable(close_source):
            close_source()

    def __enter__(self) -> "FxCbr":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
