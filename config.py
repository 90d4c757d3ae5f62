# config.py
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Telegram bot
    bot_token: str = Field(default="", alias="BOT_TOKEN")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./devconnect.db",
        alias="DATABASE_URL",
    )

    # Environment
    env: Literal["dev", "stage", "prod"] = Field("dev", alias="ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: str = Field("devconnect.log", alias="LOG_FILE")

    # Размеры выдачи в списках
    developers_page_size: int = Field(20, alias="DEVELOPERS_PAGE_SIZE")
    projects_page_size: int = Field(20, alias="PROJECTS_PAGE_SIZE")

    # Admin / alerts
    admin_chat_id: Optional[int] = Field(
        default=None,
        alias="ADMIN_CHAT_ID",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("admin_chat_id", mode="before")
    @classmethod
    def parse_admin_chat_id(cls, v):
        """
        Пустая строка в .env (ADMIN_CHAT_ID=) — значит алерты выключены.
        """
        if isinstance(v, str) and not v.strip():
            return None
        return v


@lru_cache
def get_settings() -> Settings:
    # кэшируем, чтобы не читать .env каждый раз
    return Settings()


settings = get_settings()
