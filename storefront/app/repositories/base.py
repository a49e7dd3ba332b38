from sqlalchemy.ext.asyncio import AsyncSession
from typing import Type, TypeVar, Generic

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    def __init__(self, db: AsyncSession, model: Type[ModelType]):
        self.db = db
        self.model = model

    async def add(self, obj: ModelType) -> ModelType:
        self.db.add(obj)
        await self.db.flush()
        return obj

    async def delete(self, obj: ModelType) -> bool:
        await self.db.delete(obj)
        await self.db.flush()
        return True
