# handlers/projects/feed.py

import logging

from aiogram import Router, F, Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message
from aiogram.utils.keyboard import InlineKeyboardBuilder
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from constants import PROJECT_STATUS_FILTERS
from models import Profile
from services import get_project, get_projects_feed, profile_views
from views import format_project_card, format_projects_feed
from ..developers import command_args, open_profile_view

router = Router()
logger = logging.getLogger(__name__)

STATUS_FILTER_LABELS = {
    "all": "Все",
    "open": "🟢 Открытые",
    "closed": "🔒 Закрытые",
}


def parse_feed_args(raw: str) -> tuple[str, str | None, list[str]]:
    """
    '/projects open chat #react #node' -> ('open', 'chat', ['react', 'node'])
    Статус — только первым словом, по умолчанию all.
    """
    tokens = raw.split()
    status = "all"
    if tokens and tokens[0].lower() in PROJECT_STATUS_FILTERS:
        status = tokens.pop(0).lower()

    words: list[str] = []
    tech: list[str] = []
    for token in tokens:
        if token.startswith("#") and len(token) > 1:
            tech.append(token[1:])
        else:
            words.append(token)
    return status, (" ".join(words) or None), tech


def _build_status_keyboard(current: str) -> InlineKeyboardBuilder:
    kb = InlineKeyboardBuilder()
    for code in PROJECT_STATUS_FILTERS:
        prefix = "• " if code == current else ""
        kb.button(
            text=prefix + STATUS_FILTER_LABELS[code],
            callback_data=f"projfeed_status:{code}",
        )
    kb.adjust(3)
    return kb


# ===== /projects =====


@router.message(Command("projects"))
async def cmd_projects(message: Message, session: AsyncSession):
    profile_views.detach(message.chat.id)

    status, term, tech = parse_feed_args(command_args(message))
    projects = await get_projects_feed(
        session,
        status=status,
        term=term,
        tech=tech,
        limit=settings.projects_page_size,
    )

    logger.info(
        "projects_feed_shown user_id=%s status=%s count=%s",
        message.from_user.id if message.from_user else None,
        status,
        len(projects),
    )
    await message.answer(
        format_projects_feed(projects),
        reply_markup=_build_status_keyboard(status).as_markup(),
    )


@router.callback_query(F.data.startswith("projfeed_status:"))
async def projects_status_callback(callback: CallbackQuery, session: AsyncSession):
    _, status = callback.data.split(":", 1)
    if status not in PROJECT_STATUS_FILTERS:
        await callback.answer("Неизвестный фильтр", show_alert=True)
        return

    projects = await get_projects_feed(
        session,
        status=status,
        limit=settings.projects_page_size,
    )
    await callback.answer(STATUS_FILTER_LABELS[status])
    try:
        await callback.message.edit_text(
            format_projects_feed(projects),
            reply_markup=_build_status_keyboard(status).as_markup(),
        )
    except TelegramBadRequest as e:
        logger.debug("projects_feed_edit_skipped reason=%s", e)


# ===== /project <id> =====


@router.message(Command("project"))
async def cmd_project(message: Message, session: AsyncSession, bot: Bot):
    profile_views.detach(message.chat.id)

    raw = command_args(message).strip()
    try:
        project_id = int(raw)
    except ValueError:
        await message.answer("Формат: /project id\nНапример: /project 12")
        return

    project = await get_project(session, project_id)
    if project is None:
        await message.answer("Проект не найден. Возможно, его удалили.")
        return

    text = format_project_card(project)
    kb = InlineKeyboardBuilder()
    if project.owner:
        kb.button(
            text=f"👤 Автор @{project.owner.username}",
            callback_data=f"proj_owner:{project.owner.username}",
        )

    await bot.send_message(
        chat_id=message.chat.id,
        text=text,
        reply_markup=kb.as_markup() if project.owner else None,
    )


@router.callback_query(F.data.startswith("proj_owner:"))
async def project_owner_callback(
    callback: CallbackQuery,
    session: AsyncSession,
    bot: Bot,
    identity: Profile | None,
):
    _, username = callback.data.split(":", 1)
    await callback.answer()
    await open_profile_view(
        callback.message,
        session,
        bot,
        viewer_id=identity.id if identity else None,
        username=username,
    )
