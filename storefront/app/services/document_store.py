# storefront/app/services/document_store.py
"""
Keyed-record document store.

The real-time layer only needs point lookups, simple equality / range
filters, and atomic counter increments. Every call opens its own short
session so callers never hold a transaction across an await on the
transport.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.app.db import safe_commit
from storefront.app.repositories.record_repository import Bounds, RecordRepository

logger = logging.getLogger(__name__)

Number = Union[int, float]


class DocumentStore:
    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker
        # serializes read-modify-write on counters within this process
        self._counter_lock = asyncio.Lock()

    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        async with self._sessionmaker() as db:
            row = await RecordRepository(db).get(collection, key)
            return row.as_document() if row else None

    async def put(self, collection: str, key: str, data: Dict[str, Any]) -> Dict[str, Any]:
        async with self._sessionmaker() as db:
            row = await RecordRepository(db).upsert(collection, key, data)
            await safe_commit(db)
            return row.as_document()

    async def insert(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        key = str(data.get("id") or uuid.uuid4().hex)
        return await self.put(collection, key, {**data, "id": key})

    async def delete(self, collection: str, key: str) -> bool:
        async with self._sessionmaker() as db:
            repo = RecordRepository(db)
            row = await repo.get(collection, key)
            if row is None:
                return False
            await repo.delete(row)
            await safe_commit(db)
            return True

    async def find(self, collection: str,
                   equals: Optional[Dict[str, Any]] = None,
                   ranges: Optional[Dict[str, Bounds]] = None,
                   newest_first: bool = False,
                   limit: Optional[int] = None) -> List[Dict[str, Any]]:
        async with self._sessionmaker() as db:
            rows = await RecordRepository(db).find(
                collection, equals=equals, ranges=ranges, newest_first=newest_first, limit=limit
            )
            return [r.as_document() for r in rows]

    async def count(self, collection: str,
                    equals: Optional[Dict[str, Any]] = None,
                    ranges: Optional[Dict[str, Bounds]] = None) -> int:
        async with self._sessionmaker() as db:
            return await RecordRepository(db).count(collection, equals=equals, ranges=ranges)

    async def increment(self, collection: str, key: str, field: str, amount: Number = 1) -> Number:
        """
        Atomically add `amount` to a numeric field, creating the record
        (and the field, starting at 0) when missing. Returns the new value.
        """
        async with self._counter_lock:
            async with self._sessionmaker() as db:
                repo = RecordRepository(db)
                row = await repo.get(collection, key, for_update=True)
                data = dict(row.data) if row else {}
                value = (data.get(field) or 0) + amount
                data[field] = value
                await repo.upsert(collection, key, data)
                await safe_commit(db)
                return value

    async def update(self, collection: str, key: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Merge `fields` into the record (created when missing), serialized with `increment`."""
        async with self._counter_lock:
            async with self._sessionmaker() as db:
                repo = RecordRepository(db)
                row = await repo.get(collection, key, for_update=True)
                data = dict(row.data) if row else {}
                data.update(fields)
                row = await repo.upsert(collection, key, data)
                await safe_commit(db)
                return row.as_document()
