import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from models.enums import RentalStatus
from models.models import Rental
from policy.access_policy import rental_visible_to


class RentalRepo:
    def __init__(self, db):
        self.db = db

    def _with_item(self):
        return (
            select(Rental)
            .options(selectinload(Rental.item))
            .execution_options(populate_existing=True)
        )

    async def create(self, rental: Rental) -> Rental:
        self.db.add(rental)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise

        return await self.get_by_id(rental.id)

    async def get_by_id(
        self, rental_id: uuid.UUID, user_id: Optional[uuid.UUID] = None
    ) -> Rental | None:
        stmt = self._with_item().where(Rental.id == rental_id)
        if user_id is not None:
            stmt = stmt.where(rental_visible_to(user_id))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_renter(self, renter_id: uuid.UUID) -> List[Rental]:
        result = await self.db.execute(
            self._with_item()
            .where(Rental.renter_id == renter_id)
            .order_by(Rental.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_for_owner(self, owner_id: uuid.UUID) -> List[Rental]:
        result = await self.db.execute(
            self._with_item()
            .where(Rental.owner_id == owner_id)
            .order_by(Rental.created_at.desc())
        )
        return list(result.scalars().all())

    async def set_status(self, rental: Rental, status: RentalStatus) -> Rental:
        if rental.status == status:
            return rental
        try:
            rental.status = status
            self.db.add(rental)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        return await self.get_by_id(rental.id)
