from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)

from models.enums import MessageType, RentalStatus


class UserOut(BaseModel):
    id: uuid.UUID
    email: str
    full_name: Optional[str] = None

    model_config = {"from_attributes": True}


class ItemSummaryOut(BaseModel):
    id: uuid.UUID
    title: str
    images: List[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ClothingItemCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    size: str = Field(..., min_length=1)
    price_per_day: Decimal = Field(..., gt=0)
    images: List[str] = Field(default_factory=list)

    @field_validator("title", "category", "size", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class ClothingItemUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    size: Optional[str] = None
    price_per_day: Optional[Decimal] = Field(None, gt=0)
    images: Optional[List[str]] = None
    available: Optional[bool] = None


class ClothingItemOut(BaseModel):
    id: uuid.UUID
    title: str
    description: str
    category: str
    size: str
    price_per_day: Decimal
    images: List[str] = Field(default_factory=list)
    owner_id: uuid.UUID
    available: bool
    created_at: datetime
    updated_at: datetime
    owner: Optional[UserOut] = None

    model_config = {"from_attributes": True}


class RentalCreate(BaseModel):
    item_id: uuid.UUID
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after the start date.")
        return self


class RentalStatusUpdate(BaseModel):
    status: RentalStatus


class RentalOut(BaseModel):
    id: uuid.UUID
    item_id: uuid.UUID
    renter_id: uuid.UUID
    owner_id: uuid.UUID
    start_date: date
    end_date: date
    total_price: Decimal
    status: RentalStatus
    created_at: datetime
    item: Optional[ItemSummaryOut] = None

    model_config = {"from_attributes": True}


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)
    message_type: MessageType = MessageType.TEXT
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("content", mode="before")
    @classmethod
    def strip_content(cls, value):
        return value.strip() if isinstance(value, str) else value


class MessageEdit(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)


class ChatSocketFrame(BaseModel):
    action: Optional[Literal["read"]] = None
    content: str = Field("", max_length=4000)
    message_type: MessageType = MessageType.TEXT
    metadata: dict[str, Any] = Field(default_factory=dict)


class MessageOut(BaseModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    message_type: MessageType
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("meta", "metadata")
    )
    read_by: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    sender: Optional[UserOut] = None

    model_config = {"from_attributes": True}


class StartConversationIn(BaseModel):
    item_id: uuid.UUID


class ConversationOut(BaseModel):
    id: uuid.UUID
    item_id: uuid.UUID
    owner_id: uuid.UUID
    renter_id: uuid.UUID
    rental_id: Optional[uuid.UUID] = None
    last_message_at: datetime
    created_at: datetime
    updated_at: datetime
    item: Optional[ItemSummaryOut] = None
    owner: Optional[UserOut] = None
    renter: Optional[UserOut] = None
    last_message: Optional[MessageOut] = None
    unread_count: int = 0

    model_config = {"from_attributes": True}


class MarkReadOut(BaseModel):
    conversation_id: uuid.UUID
    updated: bool
