# handlers/projects/create.py

import logging
from types import SimpleNamespace

from aiogram import Router, F
from aiogram.filters import Command, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import StatesGroup, State
from aiogram.types import Message, CallbackQuery
from aiogram.utils.keyboard import InlineKeyboardBuilder
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from constants import PROJECT_STATUS_OPEN, TECH_OPTIONS
from models import Profile
from schemas import ProjectForm, first_error, split_tags
from services import create_user_project, profile_views
from views import format_project_card

router = Router()
logger = logging.getLogger(__name__)

SKIP_MARK = "-"


class ProjectStates(StatesGroup):
    title = State()
    description = State()
    tech = State()
    tech_custom = State()
    contributors = State()
    github_url = State()
    live_url = State()
    confirm = State()


# ===== ВСПОМОГАТЕЛЬНЫЕ ФУНКЦИИ =====


def _build_preview_project(data: dict) -> SimpleNamespace:
    """
    "Псевдо-проект" из FSM-данных, чтобы показать format_project_card
    без сохранения в БД.
    """
    return SimpleNamespace(
        title=data.get("title"),
        description=data.get("description"),
        tech_stack=data.get("tech_stack") or [],
        contributors_needed=data.get("contributors_needed") or [],
        github_url=data.get("github_url"),
        live_url=data.get("live_url"),
        status=PROJECT_STATUS_OPEN,
        owner=SimpleNamespace(
            name=data.get("owner_name"),
            username=data.get("owner_username"),
        ),
    )


def _build_preview_keyboard() -> InlineKeyboardBuilder:
    kb = InlineKeyboardBuilder()
    kb.button(text="✅ Опубликовать", callback_data="project_confirm:publish")
    kb.button(text="❌ Отмена", callback_data="project_confirm:cancel")
    kb.adjust(2)
    return kb


def _build_tech_keyboard(selected: list[str]) -> InlineKeyboardBuilder:
    kb = InlineKeyboardBuilder()
    for tech in TECH_OPTIONS:
        prefix = "✅ " if tech in selected else ""
        kb.button(text=prefix + tech, callback_data=f"project_tech:{tech}")
    kb.button(text="Другое", callback_data="project_tech:other")
    kb.button(text="Готово", callback_data="project_tech:done")
    kb.adjust(3)
    return kb


def _validate(field_name: str, value, data: dict):
    """
    Проверяем одно поле через ProjectForm; обязательные поля подставляем
    из уже введённых (или заглушкой), чтобы модель собралась.
    """
    payload = {
        "title": data.get("title") or "draft",
        "description": data.get("description") or "draft",
        field_name: value,
    }
    form = ProjectForm(**payload)
    return getattr(form, field_name)


async def _show_project_preview(message: Message, state: FSMContext):
    data = await state.get_data()
    await state.set_state(ProjectStates.confirm)

    await message.answer(
        "Проверь проект перед публикацией 👇\n\n"
        f"{format_project_card(_build_preview_project(data))}",
        reply_markup=_build_preview_keyboard().as_markup(),
    )


# ===== СТАРТ СОЗДАНИЯ ПРОЕКТА =====


async def start_project_registration(
    message: Message,
    state: FSMContext,
    identity: Profile | None,
):
    """
    Старт мастера создания проекта. Дергается из /new_project и из меню.
    """
    if identity is None:
        await message.answer("Сначала нажми /start — так мы создадим профиль.")
        return

    profile_views.detach(message.chat.id)
    await state.clear()
    await state.update_data(
        owner_id=identity.id,
        owner_name=identity.name,
        owner_username=identity.username,
        tech_stack=[],
    )
    await state.set_state(ProjectStates.title)

    logger.info("project_create_started owner_id=%s", identity.id)
    await message.answer(
        "Создаём новый проект.\n\n"
        "Шаг 1.\n"
        "Напиши короткое название проекта.\n"
        "Например: «Платформа для IT-нетворкинга».\n\n"
        "Прервать — /cancel"
    )


@router.message(Command("new_project"))
async def cmd_new_project(
    message: Message,
    state: FSMContext,
    identity: Profile | None,
):
    await start_project_registration(message, state, identity)


@router.message(Command("cancel"), StateFilter(ProjectStates))
async def cmd_cancel_project(message: Message, state: FSMContext):
    await state.clear()
    await message.answer("Создание проекта отменено.")


# ===== Шаг 1: название =====


@router.message(ProjectStates.title, F.text)
async def project_title(message: Message, state: FSMContext):
    data = await state.get_data()
    try:
        title = _validate("title", message.text, data)
    except ValidationError as e:
        await message.answer(first_error(e))
        return

    await state.update_data(title=title)
    await state.set_state(ProjectStates.description)
    await message.answer(
        "Шаг 2.\n"
        "Опиши идею: что делаете, для кого и на какой стадии проект."
    )


# ===== Шаг 2: описание =====


@router.message(ProjectStates.description, F.text)
async def project_description(message: Message, state: FSMContext):
    data = await state.get_data()
    try:
        description = _validate("description", message.text, data)
    except ValidationError as e:
        await message.answer(first_error(e))
        return

    await state.update_data(description=description)
    await _ask_tech(message, state)


# ===== Шаг 3: стек (мультивыбор) =====


async def _ask_tech(message: Message, state: FSMContext):
    await state.set_state(ProjectStates.tech)
    data = await state.get_data()

    await message.answer(
        "Шаг 3.\n"
        "Выбери стек проекта. Можно выбрать несколько вариантов.\n"
        "Если чего-то не хватает — нажми «Другое» и впиши.\n"
        "Когда закончишь — нажми «Готово».",
        reply_markup=_build_tech_keyboard(data.get("tech_stack") or []).as_markup(),
    )


@router.callback_query(ProjectStates.tech, F.data.startswith("project_tech:"))
async def project_tech_callback(callback: CallbackQuery, state: FSMContext):
    _, code = callback.data.split(":", 1)
    data = await state.get_data()
    selected: list[str] = list(data.get("tech_stack") or [])

    if code == "done":
        await callback.answer()
        await _ask_contributors(callback.message, state)
        return

    if code == "other":
        await state.set_state(ProjectStates.tech_custom)
        await callback.answer()
        await callback.message.answer("Впиши технологии через запятую.")
        return

    if code in selected:
        selected.remove(code)
    else:
        selected.append(code)
    await state.update_data(tech_stack=selected)

    await callback.message.edit_reply_markup(
        reply_markup=_build_tech_keyboard(selected).as_markup()
    )
    await callback.answer()


@router.message(ProjectStates.tech_custom, F.text)
async def project_tech_custom(message: Message, state: FSMContext):
    data = await state.get_data()
    selected = split_tags(list(data.get("tech_stack") or []) + split_tags(message.text))
    await state.update_data(tech_stack=selected)
    await _ask_tech(message, state)


# ===== Шаг 4: кого ищем =====


async def _ask_contributors(message: Message, state: FSMContext):
    await state.set_state(ProjectStates.contributors)
    await message.answer(
        "Шаг 4.\n"
        "Кого ищете в команду? Роли через запятую.\n"
        "Например: Frontend, Designer, QA.\n\n"
        f"Никого не ищете — отправь «{SKIP_MARK}»."
    )


@router.message(ProjectStates.contributors, F.text)
async def project_contributors(message: Message, state: FSMContext):
    raw = message.text.strip()
    contributors = [] if raw == SKIP_MARK else split_tags(raw)
    await state.update_data(contributors_needed=contributors)

    await state.set_state(ProjectStates.github_url)
    await message.answer(
        f"Шаг 5.\nСсылка на репозиторий (GitHub и т.п.) или «{SKIP_MARK}»."
    )


# ===== Шаги 5-6: ссылки =====


async def _process_link(
    message: Message,
    state: FSMContext,
    field_name: str,
) -> bool:
    raw = message.text.strip()
    if raw == SKIP_MARK:
        await state.update_data(**{field_name: None})
        return True

    data = await state.get_data()
    try:
        url = _validate(field_name, raw, data)
    except ValidationError as e:
        await message.answer(first_error(e))
        return False

    await state.update_data(**{field_name: url})
    return True


@router.message(ProjectStates.github_url, F.text)
async def project_github_url(message: Message, state: FSMContext):
    if not await _process_link(message, state, "github_url"):
        return
    await state.set_state(ProjectStates.live_url)
    await message.answer(f"Шаг 6.\nСсылка на демо или сайт проекта, или «{SKIP_MARK}».")


@router.message(ProjectStates.live_url, F.text)
async def project_live_url(message: Message, state: FSMContext):
    if not await _process_link(message, state, "live_url"):
        return
    await _show_project_preview(message, state)


# ===== Подтверждение =====


@router.callback_query(ProjectStates.confirm, F.data == "project_confirm:cancel")
async def project_confirm_cancel(callback: CallbackQuery, state: FSMContext):
    await state.clear()
    await callback.answer("Отменено")
    await callback.message.answer("Создание проекта отменено.")


@router.callback_query(ProjectStates.confirm, F.data == "project_confirm:publish")
async def project_confirm_publish(
    callback: CallbackQuery,
    state: FSMContext,
    session: AsyncSession,
):
    data = await state.get_data()

    try:
        form = ProjectForm(
            title=data.get("title") or "",
            description=data.get("description") or "",
            tech_stack=data.get("tech_stack") or [],
            contributors_needed=data.get("contributors_needed") or [],
            github_url=data.get("github_url"),
            live_url=data.get("live_url"),
        )
    except ValidationError as e:
        await callback.answer(first_error(e), show_alert=True)
        return

    try:
        project = await create_user_project(
            session,
            owner_id=data["owner_id"],
            **form.model_dump(),
        )
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("project_create_failed owner_id=%s", data.get("owner_id"))
        await callback.answer("Не получилось сохранить проект, попробуй ещё раз", show_alert=True)
        return

    project_id = project.id
    await state.clear()
    await callback.answer("Опубликовано ✅")
    await callback.message.answer(
        f"Проект опубликован 🎉\nКарточка: /project {project_id}"
    )
