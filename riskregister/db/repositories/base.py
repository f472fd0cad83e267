"""
Generic async repository.

Every query is filtered by organization_id: a row from another organization
is indistinguishable from a missing row.
"""

import uuid
from typing import Any, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from riskregister.db.engine import Base
from riskregister.errors import NotFoundError

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Organization-scoped read helpers plus a flush-only create."""

    def __init__(self, model: Type[ModelT], resource: Optional[str] = None):
        self.model = model
        self.resource = resource or model.__name__

    async def create(self, db: AsyncSession, organization_id: uuid.UUID, **fields: Any) -> ModelT:
        """Create a new record. The caller owns the transaction."""
        obj = self.model(organization_id=organization_id, **fields)
        db.add(obj)
        await db.flush()
        return obj

    async def get_by_id(
        self, db: AsyncSession, id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[ModelT]:
        result = await db.execute(
            select(self.model).where(
                self.model.id == id,
                self.model.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_404(
        self, db: AsyncSession, id: uuid.UUID, organization_id: uuid.UUID
    ) -> ModelT:
        obj = await self.get_by_id(db, id, organization_id)
        if obj is None:
            raise NotFoundError(self.resource, id)
        return obj

    async def list(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "created_at",
        descending: bool = True,
        **filters: Any,
    ) -> Sequence[ModelT]:
        """List records with pagination and simple equality filters."""
        col = getattr(self.model, order_by)
        stmt = select(self.model).where(self.model.organization_id == organization_id)
        for name, value in filters.items():
            if value is not None:
                stmt = stmt.where(getattr(self.model, name) == value)
        stmt = stmt.order_by(col.desc() if descending else col.asc()).offset(offset).limit(limit)
        result = await db.execute(stmt)
        return result.scalars().all()

    async def count(self, db: AsyncSession, organization_id: uuid.UUID, **filters: Any) -> int:
        stmt = select(func.count()).select_from(self.model).where(
            self.model.organization_id == organization_id
        )
        for name, value in filters.items():
            if value is not None:
                stmt = stmt.where(getattr(self.model, name) == value)
        result = await db.execute(stmt)
        return result.scalar_one()
