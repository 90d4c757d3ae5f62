# schemas.py
import re
from typing import Optional

from pydantic import BaseModel, ValidationError, field_validator

USERNAME_RE = re.compile(r"^[a-z0-9_.]+$")
USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 32


def split_tags(value) -> list[str]:
    """
    "python, Docker ,  , python" -> ["python", "Docker"]
    Порядок сохраняем, дубли (без учёта регистра) выкидываем.
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.split(",")
    else:
        raw = list(value)

    tags: list[str] = []
    seen: set[str] = set()
    for item in raw:
        tag = str(item).strip()
        if not tag or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        tags.append(tag)
    return tags


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _check_url(value: Optional[str]) -> Optional[str]:
    value = _clean_text(value)
    if value is None:
        return None
    if not value.startswith(("http://", "https://")):
        raise ValueError("Ссылка должна начинаться с http:// или https://")
    return value


def first_error(error: ValidationError) -> str:
    """Человеко-читаемый текст первой ошибки — для ответа в чат."""
    errors = error.errors()
    if not errors:
        return "Некорректное значение."
    msg = errors[0].get("msg", "Некорректное значение.")
    return msg.removeprefix("Value error, ")


class ProfileForm(BaseModel):
    username: Optional[str] = None
    name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None
    skills: Optional[list[str]] = None
    github_url: Optional[str] = None
    website_url: Optional[str] = None
    linkedin_url: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, username: Optional[str]) -> Optional[str]:
        if username is None:
            return None
        username = username.strip().lstrip("@").lower()

        if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
            raise ValueError(
                f"Username должен быть от {USERNAME_MIN_LEN} до {USERNAME_MAX_LEN} "
                f"символов (сейчас {len(username)})."
            )
        if not USERNAME_RE.match(username):
            raise ValueError(
                "Username может содержать только латинские буквы, цифры, '_' и '.'."
            )
        return username

    @field_validator("name", "bio", "location")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        value = _clean_text(value)
        if value is not None and "@" not in value:
            raise ValueError("Это не похоже на email.")
        return value

    @field_validator("skills", mode="before")
    @classmethod
    def parse_skills(cls, value):
        if value is None:
            return None
        return split_tags(value)

    @field_validator("github_url", "website_url", "linkedin_url")
    @classmethod
    def validate_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_url(value)


class ProjectForm(BaseModel):
    title: str
    description: str
    tech_stack: list[str] = []
    contributors_needed: list[str] = []
    github_url: Optional[str] = None
    live_url: Optional[str] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, title: str) -> str:
        title = title.strip()
        if not title:
            raise ValueError("Название не может быть пустым.")
        if len(title) > 200:
            raise ValueError("Название слишком длинное (максимум 200 символов).")
        return title

    @field_validator("description")
    @classmethod
    def validate_description(cls, description: str) -> str:
        description = description.strip()
        if not description:
            raise ValueError("Опиши проект хотя бы парой слов.")
        return description

    @field_validator("tech_stack", "contributors_needed", mode="before")
    @classmethod
    def parse_tags(cls, value):
        return split_tags(value)

    @field_validator("github_url", "live_url")
    @classmethod
    def validate_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_url(value)
