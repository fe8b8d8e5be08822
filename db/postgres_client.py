import asyncpg # type: ignore
import logging
from pathlib import Path

from utils.config import AppConfig


SCHEMA_FILE = Path(__file__).with_name("schema.sql")

logger = logging.getLogger(__name__)


async def get_db_pool():
    return await asyncpg.create_pool(
        user=AppConfig.POSTGRES_USER,
        password=AppConfig.POSTGRES_PASSWORD,
        database=AppConfig.POSTGRES_DB,
        host=AppConfig.POSTGRES_HOST,
        port=AppConfig.POSTGRES_PORT,
    )


async def init_schema(pool) -> None:
    """Apply db/schema.sql; every statement in it is idempotent"""
    async with pool.acquire() as connection:
        await connection.execute(SCHEMA_FILE.read_text(encoding="utf-8"))
    logger.info("Database schema ensured")
