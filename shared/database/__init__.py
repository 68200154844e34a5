from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from tortoise import Tortoise

from shared.config import config
from shared.logger import get_logger
from shared.database.config import build_tortoise_config

logger = get_logger("shared.database")


async def init_db(database_url: Optional[str] = None, *, generate_schemas: Optional[bool] = None) -> None:
    """Initialize Tortoise ORM with the configured settings."""

    await Tortoise.init(config=build_tortoise_config(database_url))

    should_generate = config.DB_GENERATE_SCHEMAS if generate_schemas is None else generate_schemas
    if should_generate:
        logger.warning(
            "Schema generation is enabled – generating schemas at startup. "
            "Disable in production and rely on migrations instead.",
        )
        await Tortoise.generate_schemas()


async def close_db() -> None:
    """Close all ORM connections."""
    await Tortoise.close_connections()


@asynccontextmanager
async def db_lifespan(
    database_url: Optional[str] = None, *, generate_schemas: Optional[bool] = None
) -> AsyncIterator[None]:
    """Open the ORM for the duration of the block."""
    logger.info("Initializing database connections")
    await init_db(database_url, generate_schemas=generate_schemas)
    try:
        yield
    finally:
        logger.info("Closing database connections")
        await close_db()


__all__ = ["db_lifespan", "init_db", "close_db"]
