# handlers/start.py

import logging

from aiogram import Router, F, Bot
from aiogram.filters import CommandStart, Command
from aiogram.fsm.context import FSMContext
from aiogram.types import Message
from aiogram.utils.keyboard import ReplyKeyboardBuilder
from sqlalchemy.ext.asyncio import AsyncSession

from constants import (
    MENU_CONNECTIONS,
    MENU_DEVELOPERS,
    MENU_NEW_PROJECT,
    MENU_PROFILE,
    MENU_PROJECTS,
)
from models import Profile
from services import ensure_profile, profile_views
from .connection_requests import cmd_connections
from .developers import cmd_developers
from .profile import cmd_profile
from .projects import cmd_projects, start_project_registration

router = Router()
logger = logging.getLogger(__name__)


def build_main_menu_keyboard() -> ReplyKeyboardBuilder:
    kb = ReplyKeyboardBuilder()
    kb.button(text=MENU_DEVELOPERS)
    kb.button(text=MENU_PROJECTS)
    kb.button(text=MENU_NEW_PROJECT)
    kb.button(text=MENU_CONNECTIONS)
    kb.button(text=MENU_PROFILE)
    kb.adjust(2, 2, 1)
    return kb


# ===== /start =====


@router.message(CommandStart())
async def cmd_start(
    message: Message,
    state: FSMContext,
    session: AsyncSession,
):
    user = message.from_user
    logger.info(
        "cmd_start_called user_id=%s username=%s",
        user.id if user else None,
        user.username if user else None,
    )

    await state.clear()
    profile_views.detach(message.chat.id)

    profile = await ensure_profile(session, user)
    kb = build_main_menu_keyboard()

    await message.answer(
        f"Привет! Это DevConnect — здесь разработчики находят друг друга и проекты.\n\n"
        f"Твой username: @{profile.username}\n"
        "Заполнить профиль — /edit_profile, все команды — /help.",
        reply_markup=kb.as_markup(resize_keyboard=True),
    )
    logger.info(
        "cmd_start_profile_ready user_id=%s profile_id=%s",
        user.id,
        profile.id,
    )


@router.message(Command("help"))
async def cmd_help(message: Message):
    logger.info(
        "cmd_help_called user_id=%s",
        message.from_user.id if message.from_user else None,
    )
    await message.answer(
        "Основное:\n"
        "/start — главное меню\n"
        "/profile — мой профиль\n"
        "/edit_profile — изменить профиль\n\n"
        "Люди:\n"
        "/developers [поиск] [#навык] — лента разработчиков\n"
        "/u username — карточка разработчика\n"
        "/connections — заявки и контакты\n\n"
        "Проекты:\n"
        "/projects [open|closed|all] [поиск] [#технология] — лента проектов\n"
        "/project id — карточка проекта\n"
        "/new_project — создать проект\n\n"
        "/cancel — прервать заполнение формы",
    )


# ===== КНОПКИ МЕНЮ =====


@router.message(F.text == MENU_PROFILE)
async def on_menu_profile(
    message: Message,
    session: AsyncSession,
    bot: Bot,
    identity: Profile | None,
):
    logger.info(
        "menu_profile_clicked user_id=%s",
        message.from_user.id if message.from_user else None,
    )
    await cmd_profile(message, session, bot, identity)


@router.message(F.text == MENU_DEVELOPERS)
async def on_menu_developers(
    message: Message,
    session: AsyncSession,
    identity: Profile | None,
):
    logger.info(
        "menu_developers_clicked user_id=%s",
        message.from_user.id if message.from_user else None,
    )
    await cmd_developers(message, session, identity)


@router.message(F.text == MENU_PROJECTS)
async def on_menu_projects(
    message: Message,
    session: AsyncSession,
):
    logger.info(
        "menu_projects_clicked user_id=%s",
        message.from_user.id if message.from_user else None,
    )
    await cmd_projects(message, session)


@router.message(F.text == MENU_CONNECTIONS)
async def on_menu_connections(
    message: Message,
    session: AsyncSession,
    identity: Profile | None,
):
    logger.info(
        "menu_connections_clicked user_id=%s",
        message.from_user.id if message.from_user else None,
    )
    await cmd_connections(message, session, identity)


@router.message(F.text == MENU_NEW_PROJECT)
async def on_menu_new_project(
    message: Message,
    state: FSMContext,
    identity: Profile | None,
):
    logger.info(
        "menu_new_project_clicked user_id=%s",
        message.from_user.id if message.from_user else None,
    )
    await start_project_registration(message, state, identity)
