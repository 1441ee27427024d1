import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from realtime.connection_manager import manager

from .db_health import DatabaseProbe
from .get_db import async_engine

logger = logging.getLogger("startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Waiting for application startup...")
    probe = DatabaseProbe(async_engine)

    try:
        await probe.ping()
    except Exception:
        logger.exception("Database connection failed")
    else:
        try:
            missing = await probe.missing_tables()
            if missing:
                logger.error(
                    f"Chat tables missing: {', '.join(missing)}. "
                    "Run `alembic upgrade head` before using chat."
                )
            else:
                logger.info("Chat tables present.")
        except Exception:
            logger.exception("Failed to inspect database schema")

    logger.info("Application startup complete.")

    yield

    try:
        await manager.close_all()
    except Exception:
        logger.exception("Failed to close live sockets")

    await async_engine.dispose()
    logger.info("Database engine disposed.")
