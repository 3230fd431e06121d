"""Generic CRUD base.

CRUD methods never commit. The domain service that owns the atomic unit
decides when to commit or roll back.
"""

from typing import Any, Generic, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicemeter.models._base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """CRUD object with default methods to get, add and update rows."""

    def __init__(self, model: Type[ModelType]):
        """Initialize with the SQLAlchemy model class."""
        self.model = model

    async def get(self, db: AsyncSession, id: UUID) -> Optional[ModelType]:
        """Get a row by primary key."""
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def add(self, db: AsyncSession, db_obj: ModelType) -> ModelType:
        """Stage a new row and flush so generated values are populated."""
        db.add(db_obj)
        await db.flush()
        return db_obj

    async def update(
        self, db: AsyncSession, *, db_obj: ModelType, values: dict[str, Any]
    ) -> ModelType:
        """Apply field updates to a loaded row and flush."""
        for field, value in values.items():
            setattr(db_obj, field, value)
        db.add(db_obj)
        await db.flush()
        return db_obj
