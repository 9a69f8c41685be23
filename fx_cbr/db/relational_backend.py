"""SQLAlchemy powered currency store shared by the SQL backends."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Sequence, cast

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Uuid,
    create_engine,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from fx_cbr.db.base_backend import RateStore
from fx_cbr.ingestion.models import CurrencyEntity, normalise_code
from fx_cbr.utils.logger import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    pass


class _CurrencyRow(Base):
    __tablename__ = "currency"
    __table_args__ = (
        CheckConstraint("rate_per_unit > 0", name="ck_currency_rate_positive"),
        CheckConstraint("unit_size >= 1", name="ck_currency_unit_size"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True)
    code = Column(String(10), nullable=False, unique=True, index=True)
    rate_per_unit = Column(Numeric(18, 6, asdecimal=True), nullable=False)
    display_name = Column(String(100), nullable=False)
    unit_size = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_entity(row: _CurrencyRow) -> CurrencyEntity:
    return CurrencyEntity(
        id=cast(uuid.UUID, row.id),
        code=cast(str, row.code),
        rate_per_unit=Decimal(row.rate_per_unit),
        display_name=cast(str, row.display_name),
        unit_size=cast(int, row.unit_size),
        created_at=_as_utc(cast(datetime, row.created_at)),
        updated_at=_as_utc(cast(datetime, row.updated_at)),
    )


def _to_row(entity: CurrencyEntity) -> _CurrencyRow:
    return _CurrencyRow(
        id=entity.id,
        code=entity.code,
        rate_per_unit=entity.rate_per_unit,
        display_name=entity.display_name,
        unit_size=entity.unit_size,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
    )


class RelationalBackend(RateStore):
    """Currency store backed by a SQLAlchemy session.

    One instance corresponds to one unit of work: lookups run through a single
    session, ``insert_many``/``update`` stage changes and ``commit`` writes
    them in one transaction. Pass ``engine`` to share a connection pool
    between short-lived instances; the instance then leaves disposal to the
    caller.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        engine: Engine | None = None,
        **engine_options,
    ) -> None:
        if engine is None and url is None:
            raise ValueError("Either url or engine is required")
        self.url = url if url is not None else str(engine.url)  # type: ignore[union-attr]
        self._owns_engine = engine is None
        self._engine: Engine = engine or create_engine(url, future=True, **engine_options)
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=self._engine, expire_on_commit=False, future=True
        )
        self._session: Session | None = None
        self._staged_inserts: list[CurrencyEntity] = []
        self._staged_updates: dict[uuid.UUID, CurrencyEntity] = {}

    @property
    def engine(self) -> Engine:
        return self._engine

    def _get_session(self) -> Session:
        if self._session is None:
            self._session = self._session_factory()
        return self._session

    def ensure_schema(self) -> None:
        LOGGER.info("Ensuring currency schema exists")
        Base.metadata.create_all(self._engine)

    def find_by_code(self, code: str) -> CurrencyEntity | None:
        if not code or not code.strip():
            return None
        stmt = select(_CurrencyRow).where(_CurrencyRow.code == normalise_code(code))
        row = self._get_session().execute(stmt).scalar_one_or_none()
        return None if row is None else _to_entity(row)

    def find_by_codes(self, codes: Iterable[str]) -> list[CurrencyEntity]:
        wanted = sorted({normalise_code(code) for code in codes if code and code.strip()})
        if not wanted:
            return []
        stmt = select(_CurrencyRow).where(_CurrencyRow.code.in_(wanted)).order_by(_CurrencyRow.code)
        return [_to_entity(row) for row in self._get_session().execute(stmt).scalars()]

    def fetch_all(self) -> list[CurrencyEntity]:
        stmt = select(_CurrencyRow).order_by(_CurrencyRow.code)
        return [_to_entity(row) for row in self._get_session().execute(stmt).scalars()]

    def insert_many(self, entities: Sequence[CurrencyEntity]) -> None:
        self._staged_inserts.extend(entities)

    def update(self, entity: CurrencyEntity) -> None:
        self._staged_updates[entity.id] = entity

    def commit(self) -> int:
        session = self._get_session()
        written = 0
        try:
            for entity in self._staged_updates.values():
                row = session.get(_CurrencyRow, entity.id)
                if row is None:
                    raise LookupError(f"Currency {entity.code} ({entity.id}) no longer exists")
                row.rate_per_unit = entity.rate_per_unit
                row.display_name = entity.display_name
                row.unit_size = entity.unit_size
                row.updated_at = entity.updated_at
                written += 1
            if self._staged_inserts:
                session.add_all([_to_row(entity) for entity in self._staged_inserts])
                written += len(self._staged_inserts)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            self._staged_inserts.clear()
            self._staged_updates.clear()
        LOGGER.debug("Committed %s currency rows", written)
        return written

    def rollback(self) -> None:
        self._staged_inserts.clear()
        self._staged_updates.clear()
        if self._session is not None:
            self._session.rollback()

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
        if self._owns_engine:
            self._engine.dispose()


__all__ = ["Base", "RelationalBackend"]
