import logging

from aiogram import Router, F, Bot
from aiogram.filters import Command, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import Message, CallbackQuery
from aiogram.utils.keyboard import InlineKeyboardBuilder
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from constants import TECH_OPTIONS
from models import Profile
from schemas import ProfileForm, first_error
from services import (
    UsernameTakenError,
    get_profile_by_id,
    get_profile_by_username,
    profile_views,
    set_profile_avatar,
    update_profile_data,
)
from views import format_profile_text

router = Router()
logger = logging.getLogger(__name__)

PROFILE_CANCEL_CB = "profile_cancel_edit"
SKIP_MARK = "-"


class ProfileEditStates(StatesGroup):
    username = State()
    name = State()
    bio = State()
    location = State()
    email = State()
    skills = State()
    github_url = State()
    website_url = State()
    linkedin_url = State()
    avatar = State()


# (state, поле формы, вопрос), по порядку шагов
TEXT_STEPS: list[tuple[State, str, str]] = [
    (
        ProfileEditStates.username,
        "username",
        "Придумай username: латиница, цифры, '_' и '.', от 3 до 32 символов.",
    ),
    (ProfileEditStates.name, "name", "Как тебя показывать в профиле?"),
    (ProfileEditStates.bio, "bio", "Пара слов о себе: чем занимаешься, что ищешь."),
    (ProfileEditStates.location, "location", "Где ты находишься? Город или страна."),
    (ProfileEditStates.email, "email", "Email для связи (по желанию)."),
    (
        ProfileEditStates.skills,
        "skills",
        "Навыки через запятую.\nНапример: " + ", ".join(TECH_OPTIONS[:5]),
    ),
    (ProfileEditStates.github_url, "github_url", "Ссылка на GitHub."),
    (ProfileEditStates.website_url, "website_url", "Ссылка на личный сайт."),
    (ProfileEditStates.linkedin_url, "linkedin_url", "Ссылка на LinkedIn."),
]
TOTAL_STEPS = len(TEXT_STEPS) + 1  # + аватар


def _step_index(state_name: str | None) -> int:
    for idx, (step_state, _, _) in enumerate(TEXT_STEPS):
        if step_state.state == state_name:
            return idx
    raise LookupError(f"unknown profile edit state: {state_name!r}")


def _cancel_keyboard(*extra: tuple[str, str]) -> InlineKeyboardBuilder:
    kb = InlineKeyboardBuilder()
    for text, data in extra:
        kb.button(text=text, callback_data=data)
    kb.button(text="Отменить редактирование", callback_data=PROFILE_CANCEL_CB)
    kb.adjust(1)
    return kb


async def _ask_step(message: Message, state: FSMContext, idx: int) -> None:
    step_state, field_name, question = TEXT_STEPS[idx]
    await state.set_state(step_state)

    extra = []
    if field_name == "name":
        extra.append(("Взять имя из Telegram", "name_from_tg"))

    await message.answer(
        f"Шаг {idx + 1} из {TOTAL_STEPS}.\n"
        f"{question}\n\n"
        f"Отправь «{SKIP_MARK}», чтобы оставить как есть.",
        reply_markup=_cancel_keyboard(*extra).as_markup(),
    )


async def _ask_avatar(message: Message, state: FSMContext) -> None:
    await state.set_state(ProfileEditStates.avatar)
    kb = _cancel_keyboard(
        ("Взять фото из Telegram", "avatar_from_tg"),
        ("Пропустить", "avatar_skip"),
    )
    await message.answer(
        f"Шаг {TOTAL_STEPS} из {TOTAL_STEPS}.\n"
        "Отправь фото для аватара или выбери вариант ниже.",
        reply_markup=kb.as_markup(),
    )


async def _next_step(message: Message, state: FSMContext, idx: int) -> None:
    if idx + 1 < len(TEXT_STEPS):
        await _ask_step(message, state, idx + 1)
    else:
        await _ask_avatar(message, state)


async def _remember_field(state: FSMContext, field_name: str, value) -> None:
    data = await state.get_data()
    fields = dict(data.get("fields") or {})
    fields[field_name] = value
    await state.update_data(fields=fields)


# ===== /edit_profile =====


async def start_profile_edit(
    message: Message,
    state: FSMContext,
    identity: Profile | None,
) -> None:
    if identity is None:
        await message.answer("Сначала нажми /start — так мы создадим профиль.")
        return

    profile_views.detach(message.chat.id)
    await state.clear()
    await state.update_data(profile_id=identity.id, fields={})
    logger.info("profile_edit_started profile_id=%s", identity.id)

    await message.answer("Давай обновим профиль. Текущие значения видны в /profile.")
    await _ask_step(message, state, 0)


@router.message(Command("edit_profile"))
async def cmd_edit_profile(
    message: Message,
    state: FSMContext,
    identity: Profile | None,
):
    await start_profile_edit(message, state, identity)


@router.callback_query(F.data == "profile_edit")
async def profile_edit_callback(
    callback: CallbackQuery,
    state: FSMContext,
    identity: Profile | None,
):
    await callback.answer()
    await start_profile_edit(callback.message, state, identity)


@router.message(Command("cancel"), StateFilter(ProfileEditStates))
async def cmd_cancel_edit(message: Message, state: FSMContext):
    await state.clear()
    await message.answer("Редактирование отменено. Профиль не изменился.")


@router.callback_query(F.data == PROFILE_CANCEL_CB)
async def profile_cancel_callback(callback: CallbackQuery, state: FSMContext):
    logger.info("profile_edit_cancelled user_id=%s", callback.from_user.id)
    await state.clear()
    await callback.answer("Отменено")
    await callback.message.answer("Редактирование отменено. Профиль не изменился.")


# ===== текстовые шаги =====


@router.callback_query(ProfileEditStates.name, F.data == "name_from_tg")
async def process_name_from_tg(callback: CallbackQuery, state: FSMContext):
    await _remember_field(state, "name", callback.from_user.full_name)
    await callback.answer()
    await _next_step(callback.message, state, _step_index(ProfileEditStates.name.state))


@router.message(StateFilter(*(step for step, _, _ in TEXT_STEPS)), F.text)
async def process_text_step(
    message: Message,
    state: FSMContext,
    session: AsyncSession,
):
    idx = _step_index(await state.get_state())
    _, field_name, _ = TEXT_STEPS[idx]
    raw = message.text.strip()

    if raw == SKIP_MARK:
        await _next_step(message, state, idx)
        return

    try:
        form = ProfileForm(**{field_name: raw})
    except ValidationError as e:
        await message.answer(first_error(e) + "\nПопробуй ещё раз.")
        return

    value = getattr(form, field_name)

    if field_name == "username":
        data = await state.get_data()
        owner = await get_profile_by_username(session, value)
        if owner and owner.id != data.get("profile_id"):
            await message.answer(f"Username @{value} уже занят. Попробуй другой.")
            return

    await _remember_field(state, field_name, value)
    await _next_step(message, state, idx)


# ===== аватар =====


@router.message(ProfileEditStates.avatar, F.photo)
async def process_avatar_photo(
    message: Message,
    state: FSMContext,
    session: AsyncSession,
    bot: Bot,
):
    await state.update_data(avatar_file_id=message.photo[-1].file_id)
    await _finish_profile_edit(message, state, session, bot)


@router.callback_query(ProfileEditStates.avatar, F.data == "avatar_from_tg")
async def process_avatar_from_tg(
    callback: CallbackQuery,
    state: FSMContext,
    session: AsyncSession,
    bot: Bot,
):
    photos = await bot.get_user_profile_photos(callback.from_user.id, limit=1)
    if photos.total_count > 0 and photos.photos:
        await state.update_data(avatar_file_id=photos.photos[0][-1].file_id)
        await callback.answer()
    else:
        await callback.answer("В Telegram нет фото профиля", show_alert=False)

    await _finish_profile_edit(callback.message, state, session, bot)


@router.callback_query(ProfileEditStates.avatar, F.data == "avatar_skip")
async def process_avatar_skip(
    callback: CallbackQuery,
    state: FSMContext,
    session: AsyncSession,
    bot: Bot,
):
    await callback.answer()
    await _finish_profile_edit(callback.message, state, session, bot)


async def _finish_profile_edit(
    message: Message,
    state: FSMContext,
    session: AsyncSession,
    bot: Bot,
) -> None:
    data = await state.get_data()
    profile_id = data["profile_id"]
    fields = data.get("fields") or {}

    try:
        profile = await update_profile_data(session, profile_id=profile_id, **fields)
    except UsernameTakenError as e:
        logger.info(
            "profile_edit_username_taken profile_id=%s username=%s",
            profile_id,
            e.username,
        )
        await message.answer(
            f"Пока ты заполнял профиль, username @{e.username} успели занять."
        )
        await _ask_step(message, state, 0)
        return

    avatar_file_id = data.get("avatar_file_id")
    if avatar_file_id:
        profile = await set_profile_avatar(
            session,
            profile_id=profile_id,
            file_id=avatar_file_id,
        )

    await state.clear()

    if profile is None:
        await message.answer("Профиль не найден. Нажми /start.")
        return

    logger.info("profile_edit_finished profile_id=%s", profile_id)
    await message.answer("Профиль обновлён ✅")
    await _send_profile(bot, message.chat.id, profile)


# ===== /profile =====


async def _send_profile(bot: Bot, chat_id: int, profile: Profile) -> None:
    text = format_profile_text(profile)

    kb = InlineKeyboardBuilder()
    kb.button(text="✏️ Редактировать", callback_data="profile_edit")

    if profile.avatar_file_id:
        await bot.send_photo(
            chat_id=chat_id,
            photo=profile.avatar_file_id,
            caption=text,
            reply_markup=kb.as_markup(),
        )
    else:
        await bot.send_message(
            chat_id=chat_id,
            text=text,
            reply_markup=kb.as_markup(),
        )


@router.message(Command("profile"))
async def cmd_profile(
    message: Message,
    session: AsyncSession,
    bot: Bot,
    identity: Profile | None,
):
    profile_views.detach(message.chat.id)

    if identity is None:
        await message.answer("Профиля ещё нет. Нажми /start, чтобы его создать.")
        return

    profile = await get_profile_by_id(session, identity.id)
    if profile is None:
        await message.answer("Профиль не найден. Нажми /start.")
        return

    await _send_profile(bot, message.chat.id, profile)
