# services/profiles.py
import logging
from typing import Iterable, Sequence

from aiogram.types import User
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Profile
from repositories import (
    create_profile,
    get_profile_by_id as repo_get_profile_by_id,
    get_profile_by_telegram_id,
    get_profile_by_username as repo_get_profile_by_username,
    list_profiles,
    update_profile as repo_update_profile,
)
from schemas import USERNAME_MAX_LEN, USERNAME_MIN_LEN, USERNAME_RE

logger = logging.getLogger(__name__)


class UsernameTakenError(Exception):
    def __init__(self, username: str) -> None:
        super().__init__(f"username {username!r} already taken")
        self.username = username


def _default_username(tg_user: User) -> str:
    """
    Username из Telegram, если он подходит под наши правила,
    иначе — dev<telegram_id>.
    """
    candidate = (tg_user.username or "").lower()
    if USERNAME_MIN_LEN <= len(candidate) <= USERNAME_MAX_LEN and USERNAME_RE.match(
        candidate
    ):
        return candidate
    return f"dev{tg_user.id}"


async def ensure_profile(
    session: AsyncSession,
    tg_user: User,
) -> Profile:
    """
    Убедиться, что у пользователя есть строка профиля в БД.
    Остальные поля заполняются в /edit_profile.
    """
    profile = await get_profile_by_telegram_id(session, tg_user.id)
    if profile:
        return profile

    username = _default_username(tg_user)
    if await repo_get_profile_by_username(session, username):
        # username из Telegram уже занят кем-то, кто сменил свой вручную
        username = f"dev{tg_user.id}"

    profile = await create_profile(
        session,
        telegram_id=tg_user.id,
        username=username,
        name=tg_user.full_name or None,
    )
    logger.info(
        "profile_created telegram_id=%s username=%s profile_id=%s",
        tg_user.id,
        username,
        profile.id,
    )
    return profile


async def get_profile(
    session: AsyncSession,
    telegram_id: int,
) -> Profile | None:
    profile = await get_profile_by_telegram_id(session, telegram_id)
    logger.info(
        "profile_fetched telegram_id=%s found=%s",
        telegram_id,
        bool(profile),
    )
    return profile


async def get_profile_by_id(
    session: AsyncSession,
    profile_id: int,
) -> Profile | None:
    return await repo_get_profile_by_id(session, profile_id)


async def get_profile_by_username(
    session: AsyncSession,
    username: str,
) -> Profile | None:
    profile = await repo_get_profile_by_username(session, username.lstrip("@"))
    logger.info(
        "profile_fetched username=%s found=%s",
        username,
        bool(profile),
    )
    return profile


async def update_profile_data(
    session: AsyncSession,
    *,
    profile_id: int,
    username: str | None = None,
    name: str | None = None,
    bio: str | None = None,
    location: str | None = None,
    email: str | None = None,
    skills: list[str] | None = None,
    github_url: str | None = None,
    website_url: str | None = None,
    linkedin_url: str | None = None,
) -> Profile | None:
    """
    Обновление профиля через сервисный слой.
    Менять профиль может только его владелец — profile_id берём из identity.

    Занятый username => UsernameTakenError.
    """
    fields = {
        "username": username,
        "name": name,
        "bio": bio,
        "location": location,
        "email": email,
        "skills": skills,
        "github_url": github_url,
        "website_url": website_url,
        "linkedin_url": linkedin_url,
    }
    changed_fields = [key for key, value in fields.items() if value is not None]

    if username is not None:
        owner = await repo_get_profile_by_username(session, username)
        if owner and owner.id != profile_id:
            raise UsernameTakenError(username)

    try:
        updated_profile = await repo_update_profile(
            session,
            profile_id=profile_id,
            fields=fields,
        )
    except IntegrityError:
        await session.rollback()
        # гонка: username заняли между проверкой и коммитом
        raise UsernameTakenError(username or "")

    logger.info(
        "profile_updated profile_id=%s updated_fields=%s success=%s",
        profile_id,
        ",".join(changed_fields) if changed_fields else "-",
        bool(updated_profile),
    )

    return updated_profile


async def set_profile_avatar(
    session: AsyncSession,
    *,
    profile_id: int,
    file_id: str,
) -> Profile | None:
    """Аватар хранится в Telegram, у нас только ссылка (file_id)."""
    profile = await repo_update_profile(
        session,
        profile_id=profile_id,
        fields={"avatar_file_id": file_id},
    )
    logger.info(
        "profile_avatar_updated profile_id=%s success=%s",
        profile_id,
        bool(profile),
    )
    return profile


# ===== поиск разработчиков =====


def _matches_term(profile: Profile, term: str) -> bool:
    term = term.lower()
    fields = [profile.name, profile.username, profile.bio]
    if any(value and term in value.lower() for value in fields):
        return True
    return any(term in skill.lower() for skill in (profile.skills or []))


async def search_developers(
    session: AsyncSession,
    *,
    requester_id: int | None = None,
    term: str | None = None,
    skills: Iterable[str] = (),
    limit: int = 20,
) -> list[Profile]:
    """
    Лента разработчиков:
    - без самого пользователя
    - term — подстрока в имени / username / bio / навыках (без учёта регистра)
    - skills — все выбранные навыки должны быть в профиле
    """
    selected = [s for s in skills if s]
    raw_profiles = await list_profiles(session, exclude_id=requester_id)

    profiles: list[Profile] = []
    for p in raw_profiles:
        if term and not _matches_term(p, term):
            continue
        if selected and not all(s in (p.skills or []) for s in selected):
            continue

        profiles.append(p)
        if len(profiles) >= limit:
            break

    logger.info(
        "developers_search requester_id=%s term=%r skills=%s limit=%s "
        "raw_count=%s result_count=%s",
        requester_id,
        term,
        ",".join(selected) if selected else "-",
        limit,
        len(raw_profiles),
        len(profiles),
    )
    return profiles


def collect_skills(profiles: Sequence[Profile]) -> list[str]:
    """Все навыки из выдачи — отсортированный список без дублей."""
    skills: set[str] = set()
    for p in profiles:
        skills.update(p.skills or [])
    return sorted(skills)
