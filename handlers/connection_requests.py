# handlers/connection_requests.py

import logging

from aiogram import Router, F, Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder
from sqlalchemy.ext.asyncio import AsyncSession

from models import Profile
from services import (
    ConnectionsOverview,
    accept_connection_request,
    get_connections_overview,
    get_profile_by_id,
    in_flight,
    profile_views,
    reject_connection_request,
    remove_connection,
    withdraw_connection_request,
)
from views import format_connections_overview, html_safe, short_name

router = Router()
logger = logging.getLogger(__name__)

# суффикс кнопок экрана «Контакты»: после действия перерисовываем список,
# без него подписываем уведомление
LIST_SUFFIX = ":list"

FAIL_TEXT = {
    "not_found": "Заявка не найдена",
    "forbidden": "Это не твоя заявка",
    "processed": "Эта заявка уже обработана",
    "failed": "Что-то пошло не так, попробуй ещё раз",
}


def build_overview_keyboard(overview: ConnectionsOverview) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    sizes: list[int] = []

    for req in overview.incoming:
        who = short_name(req.sender)
        kb.button(text=f"✅ {who}", callback_data=f"conn_accept:{req.id}{LIST_SUFFIX}")
        kb.button(text=f"❌ {who}", callback_data=f"conn_reject:{req.id}{LIST_SUFFIX}")
        sizes.append(2)

    for req in overview.outgoing:
        kb.button(
            text=f"↩️ Отозвать {short_name(req.receiver)}",
            callback_data=f"conn_cancel:{req.id}{LIST_SUFFIX}",
        )
        sizes.append(1)

    for conn in overview.connections:
        kb.button(
            text=f"🗑 Удалить {short_name(conn.connected_user)}",
            callback_data=f"conn_remove:{conn.id}{LIST_SUFFIX}",
        )
        sizes.append(1)

    kb.button(text="🔄 Обновить", callback_data="conn_refresh")
    sizes.append(1)
    kb.adjust(*sizes)
    return kb.as_markup()


def _parse(data: str) -> tuple[int | None, bool]:
    """'conn_accept:12:list' -> (12, True)"""
    parts = data.split(":")
    try:
        item_id = int(parts[1])
    except (IndexError, ValueError):
        return None, False
    return item_id, len(parts) > 2


async def _render_overview(
    message: Message,
    session: AsyncSession,
    user_id: int,
    *,
    edit: bool,
) -> None:
    overview = await get_connections_overview(session, user_id=user_id)
    text = format_connections_overview(overview)
    markup = build_overview_keyboard(overview)

    if not edit:
        await message.answer(text, reply_markup=markup)
        return
    try:
        await message.edit_text(text, reply_markup=markup)
    except TelegramBadRequest as e:
        logger.debug("connections_overview_edit_skipped reason=%s", e)


async def _mark_message(callback: CallbackQuery, suffix: str) -> None:
    """Убираем кнопки из уведомления и дописываем итог."""
    base_text = callback.message.html_text or ""
    try:
        await callback.message.edit_text(base_text + "\n\n" + suffix, reply_markup=None)
    except TelegramBadRequest as e:
        logger.debug("connection_notice_edit_skipped reason=%s", e)


async def _notify(bot: Bot, profile: Profile | None, text: str) -> None:
    if profile is None:
        return
    try:
        await bot.send_message(chat_id=profile.telegram_id, text=text)
    except TelegramAPIError:
        logger.debug(
            "connection_notify_failed profile_id=%s", profile.id, exc_info=True
        )


# ===== /connections =====


@router.message(Command("connections"))
async def cmd_connections(
    message: Message,
    session: AsyncSession,
    identity: Profile | None,
):
    profile_views.detach(message.chat.id)

    if identity is None:
        await message.answer("Сначала нажми /start — так мы создадим профиль.")
        return

    logger.info("connections_opened profile_id=%s", identity.id)
    await _render_overview(message, session, identity.id, edit=False)


@router.callback_query(F.data == "conn_refresh")
async def conn_refresh_callback(
    callback: CallbackQuery,
    session: AsyncSession,
    identity: Profile | None,
):
    if identity is None:
        await callback.answer("Сначала нажми /start", show_alert=True)
        return
    await callback.answer("Обновлено")
    await _render_overview(callback.message, session, identity.id, edit=True)


# ===== принять / отклонить =====


@router.callback_query(F.data.startswith("conn_accept:"))
async def conn_accept_callback(
    callback: CallbackQuery,
    session: AsyncSession,
    bot: Bot,
    identity: Profile | None,
):
    request_id, from_list = _parse(callback.data)
    if request_id is None:
        await callback.answer("Неверная заявка", show_alert=True)
        return
    if identity is None:
        await callback.answer("Сначала нажми /start", show_alert=True)
        return

    actor_id = identity.id
    with in_flight.claim(("respond", actor_id, request_id)) as claimed:
        if not claimed:
            await callback.answer("Уже обрабатываем…")
            return
        req, reason = await accept_connection_request(
            session,
            request_id=request_id,
            actor_id=actor_id,
        )

    if reason != "ok":
        await callback.answer(FAIL_TEXT.get(reason, "Ошибка"), show_alert=True)
        if from_list:
            await _render_overview(callback.message, session, actor_id, edit=True)
        return

    sender_id = req.sender_id
    await callback.answer("Заявка принята ✅")

    if from_list:
        await _render_overview(callback.message, session, actor_id, edit=True)
    else:
        await _mark_message(callback, "✅ Заявка принята.")

    me = await get_profile_by_id(session, actor_id)
    sender = await get_profile_by_id(session, sender_id)
    if me is not None:
        await _notify(
            bot,
            sender,
            f"Твою заявку приняли 🎉\n\n"
            f"{html_safe(me.name, default=me.username)} теперь у тебя в контактах.\n"
            f"Можешь писать: @{html_safe(me.username)}",
        )


@router.callback_query(F.data.startswith("conn_reject:"))
async def conn_reject_callback(
    callback: CallbackQuery,
    session: AsyncSession,
    bot: Bot,
    identity: Profile | None,
):
    request_id, from_list = _parse(callback.data)
    if request_id is None:
        await callback.answer("Неверная заявка", show_alert=True)
        return
    if identity is None:
        await callback.answer("Сначала нажми /start", show_alert=True)
        return

    actor_id = identity.id
    with in_flight.claim(("respond", actor_id, request_id)) as claimed:
        if not claimed:
            await callback.answer("Уже обрабатываем…")
            return
        req, reason = await reject_connection_request(
            session,
            request_id=request_id,
            actor_id=actor_id,
        )

    if reason != "ok":
        await callback.answer(FAIL_TEXT.get(reason, "Ошибка"), show_alert=True)
        if from_list:
            await _render_overview(callback.message, session, actor_id, edit=True)
        return

    sender_id = req.sender_id
    await callback.answer("Отклонено ❌")

    if from_list:
        await _render_overview(callback.message, session, actor_id, edit=True)
    else:
        await _mark_message(callback, "❌ Заявка отклонена.")

    sender = await get_profile_by_id(session, sender_id)
    await _notify(
        bot,
        sender,
        "Твою заявку отклонили. Не принимай это близко к сердцу, это просто люди.",
    )


# ===== отозвать свою заявку / удалить контакт =====


@router.callback_query(F.data.startswith("conn_cancel:"))
async def conn_cancel_callback(
    callback: CallbackQuery,
    session: AsyncSession,
    identity: Profile | None,
):
    request_id, _ = _parse(callback.data)
    if request_id is None:
        await callback.answer("Неверная заявка", show_alert=True)
        return
    if identity is None:
        await callback.answer("Сначала нажми /start", show_alert=True)
        return

    actor_id = identity.id
    with in_flight.claim(("withdraw", actor_id, request_id)) as claimed:
        if not claimed:
            await callback.answer("Уже отзываем…")
            return
        reason = await withdraw_connection_request(
            session,
            request_id=request_id,
            actor_id=actor_id,
        )

    if reason == "ok":
        await callback.answer("Заявка отозвана")
    else:
        await callback.answer(FAIL_TEXT.get(reason, "Ошибка"), show_alert=True)
    await _render_overview(callback.message, session, actor_id, edit=True)


@router.callback_query(F.data.startswith("conn_remove:"))
async def conn_remove_callback(
    callback: CallbackQuery,
    session: AsyncSession,
    identity: Profile | None,
):
    connection_id, _ = _parse(callback.data)
    if connection_id is None:
        await callback.answer("Неверный контакт", show_alert=True)
        return
    if identity is None:
        await callback.answer("Сначала нажми /start", show_alert=True)
        return

    actor_id = identity.id
    with in_flight.claim(("remove", actor_id, connection_id)) as claimed:
        if not claimed:
            await callback.answer("Уже удаляем…")
            return
        reason = await remove_connection(
            session,
            connection_id=connection_id,
            actor_id=actor_id,
        )

    if reason == "ok":
        await callback.answer("Контакт удалён")
    elif reason == "not_found":
        await callback.answer("Контакт уже удалён", show_alert=True)
    elif reason == "forbidden":
        await callback.answer("Это не твой контакт", show_alert=True)
    else:
        await callback.answer(FAIL_TEXT["failed"], show_alert=True)
    await _render_overview(callback.message, session, actor_id, edit=True)
