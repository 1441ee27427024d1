from fastapi import Depends

from models.models import User
from realtime.change_feed import ChangeFeed
from services.messaging_client import MessagingClient

from .get_current_user import get_current_user
from .get_db import get_change_feed, get_session_factory


async def get_messaging_client(
    current_user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory),
    feed: ChangeFeed = Depends(get_change_feed),
):
    async with MessagingClient(session_factory, current_user.id, feed=feed) as client:
        yield client
