# services/projects.py
import logging
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from constants import PROJECT_STATUS_OPEN, PROJECT_STATUS_FILTERS
from models import Project
from repositories import (
    create_project,
    get_project_by_id,
    list_projects,
    list_projects_by_owner,
)

logger = logging.getLogger(__name__)


async def create_user_project(
    session: AsyncSession,
    *,
    owner_id: int,
    title: str,
    description: str,
    tech_stack: list[str] | None = None,
    contributors_needed: list[str] | None = None,
    github_url: str | None = None,
    live_url: str | None = None,
) -> Project:
    """
    Создание проекта от пользователя. Новый проект всегда открыт.
    """
    project = await create_project(
        session,
        owner_id=owner_id,
        title=title,
        description=description,
        tech_stack=list(tech_stack or []),
        contributors_needed=list(contributors_needed or []),
        github_url=github_url,
        live_url=live_url,
        status=PROJECT_STATUS_OPEN,
    )

    logger.info(
        "project_created owner_id=%s project_id=%s title=%r tech=%s",
        owner_id,
        project.id,
        title,
        ",".join(project.tech_stack) or "-",
    )
    return project


def _matches_term(project: Project, term: str) -> bool:
    term = term.lower()
    if term in project.title.lower() or term in project.description.lower():
        return True
    return any(term in tech.lower() for tech in (project.tech_stack or []))


def _matches_tech(project: Project, tech: list[str]) -> bool:
    """Хватает совпадения хотя бы по одной технологии (без учёта регистра)."""
    wanted = {t.lower() for t in tech}
    return any(t.lower() in wanted for t in (project.tech_stack or []))


async def get_projects_feed(
    session: AsyncSession,
    *,
    status: str = "all",
    term: str | None = None,
    tech: Iterable[str] = (),
    limit: int = 20,
) -> list[Project]:
    """
    Лента проектов, новые сверху.

    status — all / open / closed,
    term   — подстрока в названии / описании / стеке,
    tech   — проект подходит, если в стеке есть любая из выбранных технологий.

    Ошибка БД => пустая лента (читающие экраны не падают).
    """
    if status not in PROJECT_STATUS_FILTERS:
        raise ValueError(f"unknown project status filter: {status!r}")

    selected = [t for t in tech if t]

    try:
        base_projects = await list_projects(
            session,
            status=None if status == "all" else status,
        )
    except SQLAlchemyError:
        logger.warning("projects_feed_failed status=%s", status, exc_info=True)
        return []

    projects: list[Project] = []
    for p in base_projects:
        if term and not _matches_term(p, term):
            continue
        if selected and not _matches_tech(p, selected):
            continue

        projects.append(p)
        if len(projects) >= limit:
            break

    logger.info(
        "projects_feed status=%s term=%r tech=%s limit=%s base_count=%s result_count=%s",
        status,
        term,
        ",".join(selected) if selected else "-",
        limit,
        len(base_projects),
        len(projects),
    )
    return projects


async def get_project(
    session: AsyncSession,
    project_id: int,
) -> Project | None:
    project = await get_project_by_id(session, project_id)
    logger.info(
        "project_fetched project_id=%s found=%s",
        project_id,
        bool(project),
    )
    return project


async def get_user_projects(
    session: AsyncSession,
    owner_id: int,
) -> list[Project]:
    return await list_projects_by_owner(session, owner_id)
