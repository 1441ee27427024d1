import uuid

import jwt
from fastapi import HTTPException, Request, WebSocket
from jose import JWTError
from jose import jwt as websocket_jwt

from .settings import settings


def _subject_to_uuid(payload: dict) -> uuid.UUID:
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Token missing user ID")
    return uuid.UUID(str(user_id))


def decode_ws_access_token(token: str) -> uuid.UUID:
    try:
        payload = websocket_jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
    except JWTError:
        raise ValueError("Invalid or expired token")

    return _subject_to_uuid(payload)


def decode_http_access_token(token: str) -> uuid.UUID:
    payload = jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM],
    )
    return _subject_to_uuid(payload)


def extract_token(request: Request) -> str | None:
    token = request.cookies.get("access_token")
    if token:
        return token

    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def extract_ws_token(websocket: WebSocket) -> str | None:
    return websocket.cookies.get("access_token") or websocket.query_params.get(
        "token"
    )


async def jwt_protect(request: Request) -> uuid.UUID:
    token = extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        return decode_http_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except (jwt.InvalidTokenError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
