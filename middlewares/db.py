# middlewares/db.py
from typing import Any, Awaitable, Callable, Dict
import logging

from aiogram import BaseMiddleware
from aiogram.exceptions import TelegramAPIError
from aiogram.types import TelegramObject, Update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db import async_session_maker

logger = logging.getLogger(__name__)

CALLBACK_ERROR_TEXT = "Что-то пошло не так, попробуй ещё раз 🛠"
MESSAGE_ERROR_TEXT = "Упс, случилась ошибка. Попробуй ещё раз чуть позже."


class DbSessionMiddleware(BaseMiddleware):
    """
    Одна сессия БД на апдейт: data["session"].

    Необработанная ошибка хендлера логируется, незакоммиченное
    откатывается, пользователь получает короткое сообщение — бот не падает.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
    ) -> None:
        self.session_maker = session_maker

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        async with self.session_maker() as session:
            data["session"] = session
            try:
                return await handler(event, data)
            except Exception:
                logger.exception(
                    "update_failed update_id=%s event_type=%s",
                    getattr(event, "update_id", None),
                    getattr(event, "event_type", type(event).__name__),
                )
                if session.in_transaction():
                    await session.rollback()
                await self._notify_user(event)
                return None

    @staticmethod
    async def _notify_user(event: TelegramObject) -> None:
        if not isinstance(event, Update):
            return
        try:
            if event.callback_query:
                await event.callback_query.answer(CALLBACK_ERROR_TEXT, show_alert=True)
            elif event.message:
                await event.message.answer(MESSAGE_ERROR_TEXT)
        except TelegramAPIError:
            # Даже если не получилось отправить сообщение, только логируем
            logger.warning("update_failed_notify_failed", exc_info=True)
