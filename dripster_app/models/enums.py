from enum import Enum


class RentalStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


RENTAL_TRANSITIONS: dict[RentalStatus, frozenset[RentalStatus]] = {
    RentalStatus.PENDING: frozenset({RentalStatus.CONFIRMED, RentalStatus.CANCELLED}),
    RentalStatus.CONFIRMED: frozenset({RentalStatus.ACTIVE, RentalStatus.CANCELLED}),
    RentalStatus.ACTIVE: frozenset({RentalStatus.COMPLETED}),
    RentalStatus.COMPLETED: frozenset(),
    RentalStatus.CANCELLED: frozenset(),
}


class MessageType(str, Enum):
    TEXT = "text"
    SYSTEM = "system"
    RENTAL_REQUEST = "rental_request"
    RENTAL_UPDATE = "rental_update"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]
