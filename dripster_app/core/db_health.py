import logging

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine
from tenacity import retry, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

CHAT_TABLES = ("conversations", "messages", "conversation_participants")


class DatabaseProbe:
    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def ping(self) -> None:
        try:
            logger.info("Connecting to the database...")
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("Database connected.")
        except Exception as e:
            logger.error("Database connection error:", exc_info=e)
            raise

    async def missing_tables(self, tables=CHAT_TABLES) -> list[str]:
        async with self.engine.connect() as conn:
            existing = await conn.run_sync(
                lambda sync_conn: set(inspect(sync_conn).get_table_names())
            )
        return [table for table in tables if table not in existing]
