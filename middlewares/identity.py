# middlewares/identity.py
from typing import Any, Awaitable, Callable, Dict
import logging

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject
from sqlalchemy.ext.asyncio import AsyncSession

from repositories import get_profile_by_telegram_id

logger = logging.getLogger(__name__)


class IdentityMiddleware(BaseMiddleware):
    """
    «Текущий пользователь»: кладёт в data["identity"] профиль автора апдейта
    или None, если профиля ещё нет (до /start).

    Вешается на message / callback_query, после DbSessionMiddleware.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        session: AsyncSession | None = data.get("session")
        tg_user = getattr(event, "from_user", None)

        identity = None
        if session is not None and tg_user is not None:
            identity = await get_profile_by_telegram_id(session, tg_user.id)

        data["identity"] = identity
        logger.debug(
            "identity_resolved telegram_id=%s profile_id=%s",
            tg_user.id if tg_user else None,
            identity.id if identity else None,
        )
        return await handler(event, data)
