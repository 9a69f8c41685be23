"""MongoDB backend strategy."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Sequence

from bson.decimal128 import Decimal128
from pymongo import ASCENDING, InsertOne, MongoClient, UpdateOne
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from fx_cbr.db.base_backend import RateStore
from fx_cbr.ingestion.models import CurrencyEntity, normalise_code
from fx_cbr.utils.logger import get_logger

LOGGER = get_logger(__name__)

COLLECTION_NAME = "currency"


def _decimal_from_doc(value: Any) -> Decimal:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return Decimal(str(value))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_document(entity: CurrencyEntity) -> dict[str, Any]:
    return {
        "_id": str(entity.id),
        "code": entity.code,
        "rate_per_unit": Decimal128(str(entity.rate_per_unit)),
        "display_name": entity.display_name,
        "unit_size": entity.unit_size,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }


def _to_entity(doc: dict[str, Any]) -> CurrencyEntity:
    return CurrencyEntity(
        id=uuid.UUID(str(doc["_id"])),
        code=doc["code"],
        rate_per_unit=_decimal_from_doc(doc["rate_per_unit"]),
        display_name=doc.get("display_name") or doc["code"],
        unit_size=int(doc.get("unit_size", 1)),
        created_at=_as_utc(doc["created_at"]),
        updated_at=_as_utc(doc["updated_at"]),
    )


class MongoBackend(RateStore):
    """Currency store persisting one document per code.

    Staged writes are flushed with a single ordered ``bulk_write``. Without a
    replica-set transaction MongoDB applies the operations one by one, so a
    failure part-way through leaves the earlier operations in place.
    """

    def __init__(
        self,
        url: str,
        *,
        database: str | None = None,
        client: MongoClient | None = None,
    ) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client or MongoClient(url, tz_aware=True)
        db = self._client.get_default_database() if database is None else self._client[database]
        if db is None:
            raise ValueError("MongoDB connection URI must include a database name")
        self._collection: Collection = db[COLLECTION_NAME]
        self._staged: list[InsertOne | UpdateOne] = []

    def ensure_schema(self) -> None:
        try:
            LOGGER.info("Ensuring MongoDB currency collection exists")
            self._client.admin.command("ping")
            self._collection.create_index([("code", ASCENDING)], unique=True)
        except PyMongoError as exc:  # pragma: no cover - error path
            raise RuntimeError(f"Failed to ensure MongoDB schema: {exc}") from exc

    def find_by_code(self, code: str) -> CurrencyEntity | None:
        if not code or not code.strip():
            return None
        doc = self._collection.find_one({"code": normalise_code(code)})
        return None if doc is None else _to_entity(doc)

    def find_by_codes(self, codes: Iterable[str]) -> list[CurrencyEntity]:
        wanted = sorted({normalise_code(code) for code in codes if code and code.strip()})
        if not wanted:
            return []
        docs = self._collection.find({"code": {"$in": wanted}}).sort("code", ASCENDING)
        return [_to_entity(doc) for doc in docs]

    def fetch_all(self) -> list[CurrencyEntity]:
        return [_to_entity(doc) for doc in self._collection.find({}).sort("code", ASCENDING)]

    def insert_many(self, entities: Sequence[CurrencyEntity]) -> None:
        self._staged.extend(InsertOne(_to_document(entity)) for entity in entities)

    def update(self, entity: CurrencyEntity) -> None:
        self._staged.append(
            UpdateOne(
                {"_id": str(entity.id)},
                {
                    "$set": {
                        "rate_per_unit": Decimal128(str(entity.rate_per_unit)),
                        "display_name": entity.display_name,
                        "unit_size": entity.unit_size,
                        "updated_at": entity.updated_at,
                    }
                },
            )
        )

    def commit(self) -> int:
        operations, self._staged = self._staged, []
        if not operations:
            return 0
        result = self._collection.bulk_write(operations, ordered=True)
        written = result.inserted_count + result.matched_count
        LOGGER.debug("Committed %s currency documents", written)
        return written

    def rollback(self) -> None:
        self._staged.clear()

    def close(self) -> None:
        self._staged.clear()
        if self._owns_client:
            self._client.close()


__all__ = ["COLLECTION_NAME", "MongoBackend"]
