"""
MongoDB access layer.

Handlers never touch a global client: they receive a ``Store`` through the
``get_store`` dependency, which tests override with an in-memory client.
"""

import logging
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument
from pymongo.database import Database

from config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_AVATAR = "/placeholder-user.jpg"

Filter = Dict[str, Any]
Order = Sequence[Tuple[str, int]]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def collection_name(model_cls) -> str:
    return getattr(model_cls, "table", model_cls.__name__.lower())


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    d.pop("password_hash", None)
    # Convert datetime/date objects to ISO
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            # mongo hands back naive UTC datetimes
            v = as_utc(v)
        if hasattr(v, "isoformat"):
            d[k] = v.isoformat()
    return d


def serialize_list(docs: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_doc(d) for d in docs]


def public_user(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return None
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "avatar": doc.get("avatar_url") or DEFAULT_AVATAR,
    }


class Store:
    """Single-table operations against one MongoDB database."""

    def __init__(self, db: Database):
        self.db = db

    @property
    def name(self) -> str:
        return self.db.name

    def insert(self, table: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
        doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
        ts = now_utc()
        doc.setdefault("_id", new_id())
        doc.setdefault("created_at", ts)
        doc["updated_at"] = ts
        self.db[table].insert_one(doc)
        return doc

    def restore(self, table: str, doc: Dict[str, Any]) -> None:
        self.db[table].insert_one(dict(doc))

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        return self.db[table].find_one({"_id": row_id})

    def find_one(self, table: str, filters: Filter) -> Optional[Dict[str, Any]]:
        return self.db[table].find_one(filters)

    def select(
        self,
        table: str,
        filters: Optional[Filter] = None,
        order: Optional[Order] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self.db[table].find(filters or {})
        if order:
            cursor = cursor.sort(list(order))
        if offset:
            cursor = cursor.skip(offset)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def count(self, table: str, filters: Optional[Filter] = None) -> int:
        return self.db[table].count_documents(filters or {})

    def update(self, table: str, filters: Filter, values: Dict[str, Any], touch: bool = True) -> Optional[Dict[str, Any]]:
        values = dict(values)
        if touch:
            values["updated_at"] = now_utc()
        return self.db[table].find_one_and_update(
            filters, {"$set": values}, return_document=ReturnDocument.AFTER
        )

    def upsert(self, table: str, filters: Filter, values: Dict[str, Any]) -> Dict[str, Any]:
        ts = now_utc()
        return self.db[table].find_one_and_update(
            filters,
            {
                "$set": {**values, "updated_at": ts},
                "$setOnInsert": {"_id": new_id(), "created_at": ts},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    def delete(self, table: str, filters: Filter) -> int:
        return self.db[table].delete_many(filters).deleted_count

    def increment(self, table: str, row_id: str, field: str, delta: int = 1) -> bool:
        """Atomically add ``delta`` to a counter; a decrement never goes below zero."""
        filters: Filter = {"_id": row_id}
        if delta < 0:
            filters[field] = {"$gte": -delta}
        res = self.db[table].update_one(filters, {"$inc": {field: delta}})
        return res.modified_count > 0

    def attach_users(
        self, rows: List[Dict[str, Any]], key: str = "author_id", as_name: str = "author"
    ) -> List[Dict[str, Any]]:
        """Denormalize the user referenced by ``key`` into each row."""
        ids = list({r.get(key) for r in rows if r.get(key)})
        users = {}
        if ids:
            users = {u["_id"]: u for u in self.select("users", {"_id": {"$in": ids}})}
        for r in rows:
            r[as_name] = public_user(users.get(r.get(key)))
        return rows

    def list_tables(self) -> List[str]:
        return self.db.list_collection_names()


@lru_cache()
def _client(url: Optional[str]) -> MongoClient:
    logger.info("Opening MongoDB client")
    return MongoClient(url) if url else MongoClient()


def get_store() -> Store:
    settings = get_settings()
    return Store(_client(settings.database_url)[settings.database_name])
