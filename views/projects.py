# views/projects.py
from typing import Sequence

from constants import PROJECT_STATUS_LABELS, PROJECT_STATUS_OPEN
from models import Project
from views.safe import html_safe, html_tags


def _status_label(project: Project) -> str:
    return html_safe(PROJECT_STATUS_LABELS.get(project.status, project.status))


def format_project_line(project: Project) -> str:
    """Одна строка проекта — для списков на карточке профиля."""
    return f"• {html_safe(project.title)} ({_status_label(project)}) — /project {project.id}"


def format_project_card(project: Project) -> str:
    """
    Карточка проекта (лента + детальный просмотр).
    """
    owner = project.owner
    owner_line = (
        f"{html_safe(owner.name, default='Unknown User')} (@{html_safe(owner.username)})"
        if owner
        else "Unknown User"
    )

    lines: list[str] = []
    lines.append(f"<b>{html_safe(project.title)}</b>")
    lines.append(f"Статус: {_status_label(project)}")
    lines.append(f"Автор: {owner_line}")
    lines.append(f"Стек: {html_tags(project.tech_stack)}")
    lines.append("")
    lines.append(html_safe(project.description))

    # кого ищем показываем только у открытых проектов
    if project.status == PROJECT_STATUS_OPEN and project.contributors_needed:
        lines.append("")
        lines.append(f"Ищем: {html_tags(project.contributors_needed)}")

    if project.github_url:
        lines.append(f'<a href="{html_safe(project.github_url)}">GitHub</a>')
    if project.live_url:
        lines.append(f'<a href="{html_safe(project.live_url)}">Демо</a>')

    return "\n".join(lines)


def format_projects_feed(projects: Sequence[Project]) -> str:
    if not projects:
        return (
            "Под такие фильтры проектов нет. "
            "Попробуй изменить поиск или опубликуй свой — /new_project."
        )

    blocks: list[str] = ["Проекты:"]
    for p in projects:
        blocks.append(
            f"{format_project_line(p)}\n   {html_tags(p.tech_stack)}"
        )

    return "\n".join(blocks)
