# middlewares/logging_context.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware
from aiogram.types import Update

from logging_config import chat_id_var, update_id_var, user_id_var


def extract_user_chat(update: Update) -> tuple[Optional[int], Optional[int]]:
    """Telegram user_id и chat_id автора апдейта (None, если не определить)."""
    if update.message:
        msg = update.message
        return (msg.from_user.id if msg.from_user else None), msg.chat.id

    if update.callback_query:
        cq = update.callback_query
        chat_id = cq.message.chat.id if cq.message else None
        return cq.from_user.id, chat_id

    if update.my_chat_member:
        member = update.my_chat_member
        return member.from_user.id, member.chat.id

    return None, None


def _as_ctx(value: Optional[int]) -> str:
    return "-" if value is None else str(value)


class LoggingContextMiddleware(BaseMiddleware):
    """
    На время обработки апдейта кладёт user_id / chat_id / update_id
    в contextvars: их подхватывают форматтеры из logging_config.
    """

    async def __call__(
        self,
        handler: Callable[[Update, Dict[str, Any]], Awaitable[Any]],
        event: Update,
        data: Dict[str, Any],
    ) -> Any:
        if isinstance(event, Update):
            user_id, chat_id = extract_user_chat(event)
            update_id: Optional[int] = event.update_id
        else:
            user_id = chat_id = update_id = None

        tokens = (
            (user_id_var, user_id_var.set(_as_ctx(user_id))),
            (chat_id_var, chat_id_var.set(_as_ctx(chat_id))),
            (update_id_var, update_id_var.set(_as_ctx(update_id))),
        )
        try:
            return await handler(event, data)
        finally:
            for var, token in tokens:
                var.reset(token)
