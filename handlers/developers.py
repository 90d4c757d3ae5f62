# handlers/developers.py
import logging

from aiogram import Router, F, Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from constants import CONNECTION_STATE_PENDING_SENT
from db import async_session_maker
from models import Profile
from services import (
    NO_CONNECTION,
    ConnectionState,
    ProfileSnapshot,
    ProfileView,
    collect_skills,
    get_connection_request,
    get_profile_by_id,
    get_profile_by_username,
    in_flight,
    profile_views,
    search_developers,
    send_connect_request,
    withdraw_connection_request,
)
from views import format_developers_list, format_profile_card, profile_action_button

router = Router()
logger = logging.getLogger(__name__)


def command_args(message: Message) -> str:
    """Текст после команды; для кнопок меню — пусто."""
    parts = (message.text or "").split(maxsplit=1)
    if parts and parts[0].startswith("/") and len(parts) > 1:
        return parts[1].strip()
    return ""


def split_query(raw: str) -> tuple[str | None, list[str]]:
    """'react #python #go' -> ('react', ['python', 'go'])"""
    words: list[str] = []
    tags: list[str] = []
    for token in raw.split():
        if token.startswith("#") and len(token) > 1:
            tags.append(token[1:])
        else:
            words.append(token)
    return (" ".join(words) or None), tags


# ===== /developers =====


@router.message(Command("developers"))
async def cmd_developers(
    message: Message,
    session: AsyncSession,
    identity: Profile | None,
):
    profile_views.detach(message.chat.id)

    term, skills = split_query(command_args(message))
    profiles = await search_developers(
        session,
        requester_id=identity.id if identity else None,
        term=term,
        skills=skills,
        limit=settings.developers_page_size,
    )

    text = format_developers_list(profiles, skills=skills)
    if profiles and not skills:
        popular = collect_skills(profiles)[:8]
        if popular:
            text += "\n\nФильтр по навыку: /developers " + " ".join(
                f"#{s}" for s in popular
            )
    await message.answer(text)


# ===== карточка профиля =====


def build_profile_keyboard(
    snapshot: ProfileSnapshot,
    *,
    viewer_id: int | None,
) -> InlineKeyboardMarkup | None:
    kb = InlineKeyboardBuilder()
    action = profile_action_button(snapshot)
    if action:
        text, data = action
        kb.button(text=text, callback_data=data)
    elif snapshot.found and snapshot.profile.id == viewer_id:
        kb.button(text="✏️ Редактировать", callback_data="profile_edit")
    else:
        return None
    return kb.as_markup()


def _busy_keyboard(text: str) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.button(text=text, callback_data="noop")
    return kb.as_markup()


async def _edit_card(
    bot: Bot,
    *,
    chat_id: int,
    message_id: int,
    text: str,
    reply_markup: InlineKeyboardMarkup | None,
) -> None:
    try:
        await bot.edit_message_text(
            text=text,
            chat_id=chat_id,
            message_id=message_id,
            reply_markup=reply_markup,
        )
    except TelegramBadRequest as e:
        # "message is not modified": нормальная ситуация при повторном рендере
        logger.debug("profile_card_edit_skipped chat_id=%s reason=%s", chat_id, e)


def make_card_renderer(bot: Bot, *, chat_id: int, message_id: int):
    async def render(view: ProfileView, snapshot: ProfileSnapshot) -> None:
        await _edit_card(
            bot,
            chat_id=chat_id,
            message_id=message_id,
            text=format_profile_card(snapshot),
            reply_markup=build_profile_keyboard(snapshot, viewer_id=view.viewer_id),
        )

    return render


async def open_profile_view(
    message: Message,
    session: AsyncSession,
    bot: Bot,
    *,
    viewer_id: int | None,
    username: str,
) -> ProfileView | None:
    """
    Открывает «живую» карточку: сообщение-заглушка, затем ProfileView
    перерисовывает его при каждом изменении профиля или отношений.
    """
    chat_id = message.chat.id
    profile_views.detach(chat_id)

    profile = await get_profile_by_username(session, username)
    if profile is None:
        await message.answer(format_profile_card(ProfileSnapshot(profile=None)))
        return None

    if profile.avatar_file_id:
        try:
            await bot.send_photo(chat_id=chat_id, photo=profile.avatar_file_id)
        except TelegramAPIError:
            logger.debug("profile_avatar_send_failed profile_id=%s", profile.id)

    placeholder = await message.answer("Загружаю профиль…")
    view = ProfileView(
        viewer_id=viewer_id,
        username=profile.username,
        session_maker=async_session_maker,
        subject_id=profile.id,
        message_id=placeholder.message_id,
        on_refresh=make_card_renderer(
            bot,
            chat_id=chat_id,
            message_id=placeholder.message_id,
        ),
    )
    profile_views.attach(chat_id, view)
    await view.open()

    logger.info(
        "profile_view_opened viewer_id=%s username=%s subject_id=%s",
        viewer_id,
        username,
        view.subject_id,
    )
    return view


@router.message(Command("u"))
async def cmd_user_profile(
    message: Message,
    session: AsyncSession,
    bot: Bot,
    identity: Profile | None,
):
    username = command_args(message).lstrip("@").lower()
    if not username:
        await message.answer("Формат: /u username\nНапример: /u alice")
        return

    await open_profile_view(
        message,
        session,
        bot,
        viewer_id=identity.id if identity else None,
        username=username,
    )


@router.callback_query(F.data == "noop")
async def noop_callback(callback: CallbackQuery):
    await callback.answer("Секунду…")


# ===== Connect / Withdraw с карточки =====


def _parse_id(data: str) -> int | None:
    try:
        return int(data.split(":", 1)[1])
    except (IndexError, ValueError):
        return None


def _view_for(chat_id: int, subject_id: int | None) -> ProfileView | None:
    """Открытая в чате карточка именно этого subject (или None)."""
    if subject_id is None:
        return None
    view = profile_views.get(chat_id)
    if view is None or view.closed or view.subject_id != subject_id:
        return None
    return view


async def _settle_card(
    bot: Bot,
    callback: CallbackQuery,
    view: ProfileView | None,
) -> None:
    """
    Снять «⏳» после действия. Живая карточка перерисовывается сама;
    старое сообщение (не карточка view) остаётся без кнопок.
    """
    if view is not None:
        await view.render()
    if view is not None and view.message_id == callback.message.message_id:
        return
    try:
        await bot.edit_message_reply_markup(
            chat_id=callback.message.chat.id,
            message_id=callback.message.message_id,
            reply_markup=None,
        )
    except TelegramBadRequest as e:
        logger.debug("profile_card_keyboard_clear_skipped reason=%s", e)


async def _notify_receiver(
    session: AsyncSession,
    bot: Bot,
    *,
    receiver_id: int,
    request_id: int,
    sender_name: str,
    sender_username: str,
) -> None:
    receiver = await get_profile_by_id(session, receiver_id)
    if receiver is None:
        return

    kb = InlineKeyboardBuilder()
    kb.button(text="✅ Принять", callback_data=f"conn_accept:{request_id}")
    kb.button(text="❌ Отклонить", callback_data=f"conn_reject:{request_id}")
    kb.adjust(2)

    try:
        await bot.send_message(
            chat_id=receiver.telegram_id,
            text=(
                f"🤝 {sender_name} (@{sender_username}) хочет добавить тебя в контакты.\n"
                f"Профиль: /u {sender_username}"
            ),
            reply_markup=kb.as_markup(),
        )
    except TelegramAPIError:
        logger.debug(
            "connection_request_notify_failed receiver_id=%s request_id=%s",
            receiver_id,
            request_id,
            exc_info=True,
        )


CONNECT_FAIL_TEXT = {
    "self": "Нельзя отправить заявку самому себе",
    "failed": "Не получилось отправить заявку, попробуй ещё раз",
}


@router.callback_query(F.data.startswith("conn_connect:"))
async def conn_connect_callback(
    callback: CallbackQuery,
    session: AsyncSession,
    bot: Bot,
    identity: Profile | None,
):
    subject_id = _parse_id(callback.data)
    if subject_id is None:
        await callback.answer("Неверная кнопка", show_alert=True)
        return
    if identity is None:
        await callback.answer("Сначала нажми /start", show_alert=True)
        return

    # после отката сессии identity протухает, дальше работаем только с копиями
    viewer_id = identity.id
    viewer_name = identity.name or identity.username
    viewer_username = identity.username
    chat_id = callback.message.chat.id
    message_id = callback.message.message_id

    with in_flight.claim(("connect", viewer_id, subject_id)) as claimed:
        if not claimed:
            await callback.answer("Заявка уже отправляется…")
            return

        await _edit_card(
            bot,
            chat_id=chat_id,
            message_id=message_id,
            text=callback.message.html_text or "",
            reply_markup=_busy_keyboard("⏳ Отправляем…"),
        )
        req, reason = await send_connect_request(
            session,
            sender_id=viewer_id,
            receiver_id=subject_id,
        )

    view = _view_for(chat_id, subject_id)

    if req is None:
        await callback.answer(CONNECT_FAIL_TEXT.get(reason, "Ошибка"), show_alert=True)
        await _settle_card(bot, callback, view)
        return

    request_id = req.id
    await callback.answer("Заявка отправлена ✅")

    if view is not None:
        view.apply_local(ConnectionState(CONNECTION_STATE_PENDING_SENT, request_id))
    await _settle_card(bot, callback, view)

    await _notify_receiver(
        session,
        bot,
        receiver_id=subject_id,
        request_id=request_id,
        sender_name=viewer_name,
        sender_username=viewer_username,
    )


WITHDRAW_FAIL_TEXT = {
    "not_found": "Заявка уже не существует",
    "forbidden": "Это не твоя заявка",
    "processed": "На заявку уже ответили",
    "failed": "Не получилось отозвать заявку, попробуй ещё раз",
}


@router.callback_query(F.data.startswith("conn_withdraw:"))
async def conn_withdraw_callback(
    callback: CallbackQuery,
    session: AsyncSession,
    bot: Bot,
    identity: Profile | None,
):
    request_id = _parse_id(callback.data)
    if request_id is None:
        await callback.answer("Неверная кнопка", show_alert=True)
        return
    if identity is None:
        await callback.answer("Сначала нажми /start", show_alert=True)
        return

    viewer_id = identity.id
    chat_id = callback.message.chat.id

    # кнопка могла остаться на старой карточке другого человека:
    # локальный переход применяем только к карточке получателя заявки
    req = await get_connection_request(session, request_id=request_id)
    subject_id = req.receiver_id if req is not None else None

    with in_flight.claim(("withdraw", viewer_id, request_id)) as claimed:
        if not claimed:
            await callback.answer("Уже отзываем…")
            return

        await _edit_card(
            bot,
            chat_id=chat_id,
            message_id=callback.message.message_id,
            text=callback.message.html_text or "",
            reply_markup=_busy_keyboard("⏳ Отзываем…"),
        )
        reason = await withdraw_connection_request(
            session,
            request_id=request_id,
            actor_id=viewer_id,
        )

    view = _view_for(chat_id, subject_id)

    if reason != "ok":
        await callback.answer(WITHDRAW_FAIL_TEXT.get(reason, "Ошибка"), show_alert=True)
        if view is not None:
            await view.refresh()
        await _settle_card(bot, callback, view)
        return

    await callback.answer("Заявка отозвана")
    if view is not None:
        view.apply_local(NO_CONNECTION)
    await _settle_card(bot, callback, view)
