import uuid
from typing import List

from fastapi import APIRouter, Depends
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.get_messaging_client import get_messaging_client
from core.safe_handler import safe_handler
from models.models import User
from schemas.schema import RentalCreate, RentalOut, RentalStatusUpdate
from services.messaging_client import MessagingClient
from services.rental_service import RentalService

router = APIRouter(tags=["Rentals"])


@cbv(router=router)
class RentalRoutes:
    @router.post("/rentals", response_model=RentalOut, status_code=201)
    @safe_handler
    async def request_rental(
        self,
        payload: RentalCreate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        client: MessagingClient = Depends(get_messaging_client),
    ):
        return await RentalService(db, client).request_rental(payload, current_user)

    @router.get("/rentals/mine", response_model=List[RentalOut])
    @safe_handler
    async def list_mine(
        self,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await RentalService(db).list_my_rentals(current_user)

    @router.get("/rentals/incoming", response_model=List[RentalOut])
    @safe_handler
    async def list_incoming(
        self,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await RentalService(db).list_rentals_for_my_items(current_user)

    @router.get("/rentals/{rental_id}", response_model=RentalOut)
    @safe_handler
    async def get(
        self,
        rental_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await RentalService(db).get_rental(rental_id, current_user)

    @router.patch("/rentals/{rental_id}/status", response_model=RentalOut)
    @safe_handler
    async def update_status(
        self,
        rental_id: uuid.UUID,
        payload: RentalStatusUpdate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        client: MessagingClient = Depends(get_messaging_client),
    ):
        return await RentalService(db, client).update_status(
            rental_id, payload.status, current_user
        )
