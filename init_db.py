# init_db.py
import asyncio
import logging

from sqlalchemy import inspect, text

from db import engine

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("profiles", "projects", "connection_requests", "connections")


async def init_db() -> None:
    """
    Проверка подключения к базе и наличия таблиц.

    Схема создаётся и меняется только миграциями:
        alembic upgrade head
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
        existing = await conn.run_sync(
            lambda sync_conn: set(inspect(sync_conn).get_table_names())
        )

    missing = [name for name in REQUIRED_TABLES if name not in existing]
    if missing:
        raise RuntimeError(
            "database schema is not initialized, missing tables: "
            + ", ".join(missing)
            + " (run `alembic upgrade head`)"
        )

    logger.info("db_ready tables=%s", ",".join(REQUIRED_TABLES))


if __name__ == "__main__":
    #   python -m init_db
    asyncio.run(init_db())
