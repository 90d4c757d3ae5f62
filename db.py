from typing import Any

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from config import settings


class Base(DeclarativeBase):
    def as_record(self) -> dict[str, Any]:
        """Плоский снимок колонок строки — то, что уходит в события change feed."""
        return {
            column.key: getattr(self, column.key) for column in self.__table__.columns
        }


engine = create_async_engine(
    settings.database_url,
    echo=False,  # можно включить True для дебага
)

async_session_maker = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)
