import uuid
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from core.breaker import breaker
from core.error_status import to_http_exception
from core.mapper import ORMMapper
from core.storage_errors import StorageError
from models.enums import Action
from models.models import ClothingItem
from policy.access_policy import authorize
from repos.clothing_item_repo import ClothingItemRepo
from schemas.schema import ClothingItemCreate, ClothingItemOut, ClothingItemUpdate


class ClothingItemService:
    def __init__(self, db):
        self.repo: ClothingItemRepo = ClothingItemRepo(db)
        self.mapper: ORMMapper = ORMMapper()

    async def _call(self, handler):
        try:
            return await breaker.call(handler)
        except (SQLAlchemyError, StorageError) as e:
            raise to_http_exception(e)

    async def check_item_exists(
        self, item_id: uuid.UUID, current_user, action: Action = Action.READ
    ) -> ClothingItem:
        item = await self.repo.get_by_id(item_id)
        if not item:
            raise HTTPException(status_code=404, detail="Item not found")
        if not authorize(current_user.id, item, action):
            raise HTTPException(status_code=403, detail="Not Allowed")
        return item

    async def create_item(
        self, payload: ClothingItemCreate, current_user
    ) -> ClothingItemOut:
        async def handler():
            data = payload.model_dump()
            data["owner_id"] = current_user.id
            item = await self.repo.create(data)
            return self.mapper.one(item, ClothingItemOut)

        return await self._call(handler)

    async def list_available(
        self, search: Optional[str] = None, category: Optional[str] = None
    ) -> List[ClothingItemOut]:
        async def handler():
            items = await self.repo.list_available(search, category)
            return self.mapper.many(items=items, schema=ClothingItemOut)

        return await self._call(handler)

    async def list_my_items(self, current_user) -> List[ClothingItemOut]:
        async def handler():
            items = await self.repo.list_by_owner(current_user.id)
            return self.mapper.many(items=items, schema=ClothingItemOut)

        return await self._call(handler)

    async def get_item(self, item_id: uuid.UUID, current_user) -> ClothingItemOut:
        async def handler():
            item = await self.check_item_exists(item_id, current_user)
            return self.mapper.one(item, ClothingItemOut)

        return await self._call(handler)

    async def update_item(
        self, item_id: uuid.UUID, payload: ClothingItemUpdate, current_user
    ) -> ClothingItemOut:
        async def handler():
            item = await self.check_item_exists(item_id, current_user, Action.UPDATE)
            data = payload.model_dump(exclude_unset=True)
            if not data:
                return self.mapper.one(item, ClothingItemOut)

            updated = await self.repo.update(item, data)
            return self.mapper.one(updated, ClothingItemOut)

        return await self._call(handler)

    async def delete_item(self, item_id: uuid.UUID, current_user) -> None:
        """Removes the item; its rentals, conversations and messages go with it."""

        async def handler():
            item = await self.check_item_exists(item_id, current_user, Action.DELETE)
            await self.repo.delete(item)

        return await self._call(handler)
