import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.error_status import to_http_exception
from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.get_messaging_client import get_messaging_client
from core.safe_handler import safe_handler
from models.models import User
from schemas.schema import (
    ConversationOut,
    MarkReadOut,
    MessageCreate,
    MessageEdit,
    MessageOut,
    StartConversationIn,
)
from services.clothing_item_service import ClothingItemService
from services.messaging_client import MessagingClient

router = APIRouter(tags=["Rental Conversations"])


@cbv(router)
class ConversationRoutes:
    @router.post("/conversations", response_model=ConversationOut)
    @safe_handler
    async def start_conversation(
        self,
        payload: StartConversationIn,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        client: MessagingClient = Depends(get_messaging_client),
    ):
        item = await ClothingItemService(db).check_item_exists(
            payload.item_id, current_user
        )
        if item.owner_id == current_user.id:
            raise HTTPException(
                status_code=400,
                detail="You cannot start a conversation about your own item",
            )

        convo = await client.get_or_create_conversation(
            item.id, item.owner_id, current_user.id
        )
        if convo is None:
            raise to_http_exception(client.last_error, "Conversation not found")
        return convo

    @router.get("/conversations", response_model=List[ConversationOut])
    @safe_handler
    async def list_conversations(
        self,
        current_user: User = Depends(get_current_user),
        client: MessagingClient = Depends(get_messaging_client),
    ):
        conversations = await client.get_user_conversations(current_user.id)
        if client.last_error is not None:
            raise to_http_exception(client.last_error, write=False)
        return conversations

    @router.get("/conversations/{conversation_id}", response_model=ConversationOut)
    @safe_handler
    async def get_conversation(
        self,
        conversation_id: uuid.UUID,
        client: MessagingClient = Depends(get_messaging_client),
    ):
        convo = await client.get_conversation(conversation_id)
        if convo is None:
            raise to_http_exception(
                client.last_error, "Conversation not found", write=False
            )
        return convo

    @router.get(
        "/conversations/{conversation_id}/messages", response_model=List[MessageOut]
    )
    @safe_handler
    async def list_messages(
        self,
        conversation_id: uuid.UUID,
        client: MessagingClient = Depends(get_messaging_client),
    ):
        messages = await client.get_messages(conversation_id)
        if client.last_error is not None:
            raise to_http_exception(
                client.last_error, "Conversation not found", write=False
            )
        return messages

    @router.post(
        "/conversations/{conversation_id}/messages",
        response_model=MessageOut,
        status_code=201,
    )
    @safe_handler
    async def send_message(
        self,
        conversation_id: uuid.UUID,
        payload: MessageCreate,
        current_user: User = Depends(get_current_user),
        client: MessagingClient = Depends(get_messaging_client),
    ):
        message = await client.send_message(
            conversation_id,
            current_user.id,
            payload.content,
            payload.message_type,
            payload.metadata,
        )
        if message is None:
            raise to_http_exception(client.last_error, "Conversation not found")
        return message

    @router.post(
        "/conversations/{conversation_id}/read", response_model=MarkReadOut
    )
    @safe_handler
    async def mark_as_read(
        self,
        conversation_id: uuid.UUID,
        current_user: User = Depends(get_current_user),
        client: MessagingClient = Depends(get_messaging_client),
    ):
        updated = await client.mark_as_read(conversation_id, current_user.id)
        if client.last_error is not None:
            raise to_http_exception(client.last_error)
        if not updated:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return MarkReadOut(conversation_id=conversation_id, updated=updated)

    @router.patch("/messages/{message_id}", response_model=MessageOut)
    @safe_handler
    async def edit_message(
        self,
        message_id: uuid.UUID,
        payload: MessageEdit,
        client: MessagingClient = Depends(get_messaging_client),
    ):
        message = await client.edit_message(message_id, payload.content)
        if message is None:
            raise to_http_exception(client.last_error, "Message not found")
        return message
