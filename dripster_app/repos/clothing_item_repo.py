import uuid
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from models import event_listener  # noqa: F401
from models.models import ClothingItem


class ClothingItemRepo:
    def __init__(self, db):
        self.db = db

    def _with_owner(self):
        return (
            select(ClothingItem)
            .options(selectinload(ClothingItem.owner))
            .execution_options(populate_existing=True)
        )

    async def create(self, data: dict) -> ClothingItem:
        item = ClothingItem(**data)
        self.db.add(item)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise

        return await self.get_by_id(item.id)

    async def get_by_id(self, item_id: uuid.UUID) -> ClothingItem | None:
        result = await self.db.execute(
            self._with_owner().where(ClothingItem.id == item_id)
        )
        return result.scalar_one_or_none()

    async def list_available(
        self, search: Optional[str] = None, category: Optional[str] = None
    ) -> List[ClothingItem]:
        stmt = self._with_owner().where(ClothingItem.available.is_(True))

        if search and search.strip():
            term = search.strip()
            stmt = stmt.where(
                or_(
                    ClothingItem.title.icontains(term, autoescape=True),
                    ClothingItem.description.icontains(term, autoescape=True),
                )
            )
        if category and category != "all":
            stmt = stmt.where(ClothingItem.category == category)

        result = await self.db.execute(stmt.order_by(ClothingItem.created_at.desc()))
        return list(result.scalars().all())

    async def list_by_owner(self, owner_id: uuid.UUID) -> List[ClothingItem]:
        result = await self.db.execute(
            self._with_owner()
            .where(ClothingItem.owner_id == owner_id)
            .order_by(ClothingItem.created_at.desc())
        )
        return list(result.scalars().all())

    async def update(self, item: ClothingItem, data: dict) -> ClothingItem:
        for field, value in data.items():
            setattr(item, field, value)

        try:
            self.db.add(item)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        return await self.get_by_id(item.id)

    async def delete(self, item: ClothingItem) -> None:
        try:
            await self.db.delete(item)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
