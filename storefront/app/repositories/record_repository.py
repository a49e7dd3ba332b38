from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select

from storefront.app.models.record import Record
from .base import BaseRepository

Bounds = Tuple[Optional[Any], Optional[Any]]


def _json_field(field: str, sample: Any):
    col = Record.data[field]
    if isinstance(sample, bool):
        return col.as_boolean()
    if isinstance(sample, (int, float)):
        return col.as_float()
    return col.as_string()


def _conditions(collection: str,
                equals: Optional[Dict[str, Any]] = None,
                ranges: Optional[Dict[str, Bounds]] = None) -> list:
    conds = [Record.collection == collection]
    for field, value in (equals or {}).items():
        conds.append(_json_field(field, value) == value)
    for field, (lo, hi) in (ranges or {}).items():
        sample = lo if lo is not None else hi
        expr = _json_field(field, sample)
        if lo is not None:
            conds.append(expr >= lo)
        if hi is not None:
            conds.append(expr <= hi)
    return conds


class RecordRepository(BaseRepository[Record]):
    def __init__(self, db):
        super().__init__(db, Record)

    async def get(self, collection: str, key: str, for_update: bool = False) -> Optional[Record]:
        stmt = select(Record).where(Record.collection == collection, Record.key == key)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, collection: str, key: str, data: Dict[str, Any]) -> Record:
        row = await self.get(collection, key)
        if row is None:
            return await self.add(Record(collection=collection, key=key, data=dict(data)))
        # reassign so the JSON column is flagged dirty
        row.data = dict(data)
        await self.db.flush()
        return row

    async def find(self, collection: str,
                   equals: Optional[Dict[str, Any]] = None,
                   ranges: Optional[Dict[str, Bounds]] = None,
                   newest_first: bool = False,
                   limit: Optional[int] = None) -> List[Record]:
        stmt = select(Record).where(*_conditions(collection, equals, ranges))
        stmt = stmt.order_by(Record.id.desc() if newest_first else Record.id.asc())
        if limit:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count(self, collection: str,
                    equals: Optional[Dict[str, Any]] = None,
                    ranges: Optional[Dict[str, Bounds]] = None) -> int:
        result = await self.db.execute(
            select(func.count(Record.id)).where(*_conditions(collection, equals, ranges))
        )
        return int(result.scalar() or 0)
