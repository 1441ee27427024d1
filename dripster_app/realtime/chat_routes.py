import logging
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user_ws
from core.get_db import get_change_feed, get_db_async, get_session_factory
from realtime.change_feed import ChangeFeed
from schemas.schema import ChatSocketFrame, ConversationOut, MessageOut
from services.messaging_client import MessagingClient

from .connection_manager import manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat Realtime"])


def _error_frame(client: MessagingClient, fallback: str) -> dict:
    detail = client.last_error.user_message if client.last_error else fallback
    return {"type": "error", "detail": detail}


@router.websocket("/ws/conversations/{conversation_id}")
async def conversation_socket(
    websocket: WebSocket,
    conversation_id: UUID,
    db: AsyncSession = Depends(get_db_async),
    session_factory=Depends(get_session_factory),
    feed: ChangeFeed = Depends(get_change_feed),
):
    try:
        current_user = await get_current_user_ws(websocket, db)
    except RuntimeError as e:
        logger.warning(f"Rejected chat socket for {conversation_id}: {e}")
        return

    async with MessagingClient(session_factory, current_user.id, feed=feed) as client:
        convo = await client.get_conversation(conversation_id)
        if convo is None:
            await websocket.close(code=4404)
            return

        await manager.connect(conversation_id, websocket)

        async def push(message: MessageOut):
            await websocket.send_json(
                {"type": "message", "message": message.model_dump(mode="json")}
            )

        client.subscribe_to_messages(conversation_id, push)

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    frame = ChatSocketFrame.model_validate_json(raw)
                except ValidationError as e:
                    logger.info(
                        f"Malformed frame from {current_user.id} on "
                        f"{conversation_id}: {e.error_count()} error(s)"
                    )
                    await websocket.send_json(
                        {
                            "type": "error",
                            "detail": "Frames must be JSON objects with a content "
                            "or action field",
                        }
                    )
                    continue

                if frame.action == "read":
                    if not await client.mark_as_read(conversation_id, current_user.id):
                        await websocket.send_json(
                            _error_frame(client, "Could not mark as read")
                        )
                    continue

                message = await client.send_message(
                    conversation_id,
                    current_user.id,
                    frame.content,
                    frame.message_type,
                    frame.metadata,
                )
                if message is None:
                    await websocket.send_json(
                        _error_frame(client, "Message could not be sent")
                    )
        except WebSocketDisconnect:
            logger.info(f"User {current_user.id} left conversation {conversation_id}")
        finally:
            await manager.disconnect(conversation_id, websocket)


@router.websocket("/ws/conversations")
async def conversation_list_socket(
    websocket: WebSocket,
    db: AsyncSession = Depends(get_db_async),
    session_factory=Depends(get_session_factory),
    feed: ChangeFeed = Depends(get_change_feed),
):
    try:
        current_user = await get_current_user_ws(websocket, db)
    except RuntimeError as e:
        logger.warning(f"Rejected conversation list socket: {e}")
        return

    channel = f"user:{current_user.id}"
    async with MessagingClient(session_factory, current_user.id, feed=feed) as client:
        await manager.connect(channel, websocket)

        async def push(conversation: ConversationOut):
            await websocket.send_json(
                {
                    "type": "conversation",
                    "conversation": conversation.model_dump(mode="json"),
                }
            )

        client.subscribe_to_conversations(current_user.id, push)

        try:
            while True:
                # inbound frames only keep the socket alive
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info(f"User {current_user.id} closed the conversation list feed")
        finally:
            await manager.disconnect(channel, websocket)
