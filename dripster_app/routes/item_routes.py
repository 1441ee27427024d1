import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from models.models import User
from schemas.schema import ClothingItemCreate, ClothingItemOut, ClothingItemUpdate
from services.clothing_item_service import ClothingItemService

router = APIRouter(tags=["Clothing Items"])


@cbv(router=router)
class ClothingItemRoutes:
    @router.post("/items", response_model=ClothingItemOut, status_code=201)
    @safe_handler
    async def create(
        self,
        payload: ClothingItemCreate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ClothingItemService(db).create_item(payload, current_user)

    @router.get("/items", response_model=List[ClothingItemOut])
    @safe_handler
    async def list_available(
        self,
        search: Optional[str] = Query(None, max_length=100),
        category: Optional[str] = Query(None),
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ClothingItemService(db).list_available(search, category)

    @router.get("/items/mine", response_model=List[ClothingItemOut])
    @safe_handler
    async def list_mine(
        self,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ClothingItemService(db).list_my_items(current_user)

    @router.get("/items/{item_id}", response_model=ClothingItemOut)
    @safe_handler
    async def get(
        self,
        item_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ClothingItemService(db).get_item(item_id, current_user)

    @router.patch("/items/{item_id}", response_model=ClothingItemOut)
    @safe_handler
    async def update(
        self,
        item_id: uuid.UUID,
        payload: ClothingItemUpdate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ClothingItemService(db).update_item(
            item_id, payload, current_user
        )

    @router.delete("/items/{item_id}", status_code=204)
    @safe_handler
    async def delete(
        self,
        item_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await ClothingItemService(db).delete_item(item_id, current_user)
        return Response(status_code=204)
