import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from core.breaker import breaker
from core.date_helper import rental_days
from core.error_status import to_http_exception
from core.mapper import ORMMapper
from core.settings import settings
from core.storage_errors import StorageError
from models.enums import RENTAL_TRANSITIONS, Action, MessageType, RentalStatus
from models.models import ClothingItem, Rental
from policy.access_policy import authorize, require
from repos.clothing_item_repo import ClothingItemRepo
from repos.rental_repo import RentalRepo
from schemas.schema import RentalCreate, RentalOut

from .messaging_client import MessagingClient

logger = logging.getLogger(__name__)


def format_amount(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return str(int(amount))
    return f"{amount:.2f}"


def rental_request_text(item: ClothingItem, rental: Rental) -> str:
    return (
        f'Hi! I\'d like to rent your "{item.title}" from '
        f"{rental.start_date.isoformat()} to {rental.end_date.isoformat()}. "
        f"Total: {settings.CURRENCY_SYMBOL}{format_amount(rental.total_price)}"
    )


def rental_request_metadata(rental: Rental) -> dict:
    return {
        "rental_id": str(rental.id),
        "rental_details": {
            "start_date": rental.start_date.isoformat(),
            "end_date": rental.end_date.isoformat(),
            "total_price": float(rental.total_price),
        },
    }


class RentalService:
    def __init__(self, db, messaging: Optional[MessagingClient] = None):
        self.repo: RentalRepo = RentalRepo(db)
        self.item_repo: ClothingItemRepo = ClothingItemRepo(db)
        self.messaging = messaging
        self.mapper: ORMMapper = ORMMapper()

    async def _call(self, handler):
        try:
            return await breaker.call(handler)
        except (SQLAlchemyError, StorageError) as e:
            raise to_http_exception(e)

    async def check_rental_exists(
        self, rental_id: uuid.UUID, current_user, action: Action = Action.READ
    ) -> Rental:
        rental = await self.repo.get_by_id(rental_id, current_user.id)
        if not rental:
            raise HTTPException(status_code=404, detail="Rental not found")
        if not authorize(current_user.id, rental, action):
            raise HTTPException(status_code=403, detail="Not Allowed")
        return rental

    async def request_rental(self, payload: RentalCreate, current_user) -> RentalOut:
        async def handler():
            item = await self.item_repo.get_by_id(payload.item_id)
            if not item:
                raise HTTPException(status_code=404, detail="Item not found")
            if not item.available:
                raise HTTPException(
                    status_code=400, detail="This item is not available for rent"
                )
            if item.owner_id == current_user.id:
                raise HTTPException(
                    status_code=400, detail="You cannot rent your own item"
                )

            days = rental_days(payload.start_date, payload.end_date)
            if days <= 0:
                raise HTTPException(
                    status_code=400, detail="End date must be after the start date."
                )

            rental = Rental(
                item_id=item.id,
                renter_id=current_user.id,
                owner_id=item.owner_id,
                start_date=payload.start_date,
                end_date=payload.end_date,
                total_price=item.price_per_day * days,
                status=RentalStatus.PENDING,
            )
            require(current_user.id, rental, Action.CREATE)
            return await self.repo.create(rental), item

        rental, item = await self._call(handler)
        await self._announce_request(rental, item)
        return self.mapper.one(rental, RentalOut)

    async def _announce_request(self, rental: Rental, item: ClothingItem) -> None:
        """Open the owner/renter thread and post the request; never fails the rental."""
        if self.messaging is None:
            return

        try:
            conversation = await self.messaging.get_or_create_conversation(
                item.id, item.owner_id, rental.renter_id
            )
            if conversation is None:
                logger.warning(
                    f"Rental {rental.id} created without a conversation: "
                    f"{self.messaging.last_error}"
                )
                return

            if not await self.messaging.link_rental(conversation.id, rental.id):
                logger.warning(
                    f"Could not link rental {rental.id} to conversation "
                    f"{conversation.id}: {self.messaging.last_error}"
                )

            message = await self.messaging.send_message(
                conversation.id,
                rental.renter_id,
                rental_request_text(item, rental),
                MessageType.RENTAL_REQUEST,
                rental_request_metadata(rental),
            )
            if message is None:
                logger.warning(
                    f"Rental request message for {rental.id} not sent: "
                    f"{self.messaging.last_error}"
                )
        except Exception:
            logger.exception(f"Chat setup failed for rental {rental.id}")

    async def list_my_rentals(self, current_user) -> List[RentalOut]:
        async def handler():
            rentals = await self.repo.list_for_renter(current_user.id)
            return self.mapper.many(items=rentals, schema=RentalOut)

        return await self._call(handler)

    async def list_rentals_for_my_items(self, current_user) -> List[RentalOut]:
        async def handler():
            rentals = await self.repo.list_for_owner(current_user.id)
            return self.mapper.many(items=rentals, schema=RentalOut)

        return await self._call(handler)

    async def get_rental(self, rental_id: uuid.UUID, current_user) -> RentalOut:
        async def handler():
            rental = await self.check_rental_exists(rental_id, current_user)
            return self.mapper.one(rental, RentalOut)

        return await self._call(handler)

    async def update_status(
        self, rental_id: uuid.UUID, status: RentalStatus, current_user
    ) -> RentalOut:
        async def handler():
            rental = await self.check_rental_exists(
                rental_id, current_user, Action.UPDATE
            )
            previous = rental.status
            if status not in RENTAL_TRANSITIONS[previous]:
                raise HTTPException(
                    status_code=400,
                    detail=f"Cannot move a {previous.value} rental to {status.value}",
                )

            updated = await self.repo.set_status(rental, status)
            return updated, previous

        rental, previous = await self._call(handler)
        await self._announce_status(rental, previous, current_user)
        return self.mapper.one(rental, RentalOut)

    async def _announce_status(
        self, rental: Rental, previous: RentalStatus, current_user
    ) -> None:
        if self.messaging is None:
            return

        try:
            conversation = await self.messaging.find_conversation(
                rental.item_id, rental.owner_id, rental.renter_id
            )
            if conversation is None:
                logger.warning(
                    f"No conversation for rental {rental.id}, status update not "
                    f"posted: {self.messaging.last_error}"
                )
                return

            await self.messaging.send_message(
                conversation.id,
                current_user.id,
                f"Rental status changed from {previous.value} to {rental.status.value}.",
                MessageType.RENTAL_UPDATE,
                {
                    "rental_id": str(rental.id),
                    "previous_status": previous.value,
                    "status": rental.status.value,
                },
            )
        except Exception:
            logger.exception(f"Status message failed for rental {rental.id}")
