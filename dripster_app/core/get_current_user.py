from fastapi import Depends, HTTPException, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession

from models.models import User
from repos.user_repo import UserRepo

from .get_db import get_db_async
from .validators import decode_ws_access_token, extract_ws_token, jwt_protect


async def get_current_user(
    user_id=Depends(jwt_protect), db: AsyncSession = Depends(get_db_async)
) -> User:
    user = await UserRepo(db).get_by_id(user_id)

    if not user:
        raise HTTPException(status_code=401, detail="Not Authenticated")

    return user


async def get_current_user_ws(
    websocket: WebSocket,
    db: AsyncSession,
) -> User:
    token = extract_ws_token(websocket)

    if not token:
        await websocket.close(code=4401)
        raise RuntimeError("Not authenticated")

    try:
        user_id = decode_ws_access_token(token)
    except ValueError:
        await websocket.close(code=4401)
        raise RuntimeError("Invalid token")

    user = await UserRepo(db).get_by_id(user_id)

    if not user:
        await websocket.close(code=4401)
        raise RuntimeError("User not found")

    return user
