# views/profiles.py
from typing import Sequence

from models import Profile
from services.connections import ConnectionState
from services.profile_view import ProfileSnapshot
from views.projects import format_project_line
from views.safe import html_safe, html_tags

CONNECT_LABEL = "🤝 Connect"
WITHDRAW_LABEL = "↩️ Withdraw Request"


def format_profile_text(profile: Profile) -> str:
    """
    Полный вид профиля: имя, @username, био, локация, навыки, ссылки.
    """
    lines: list[str] = []
    lines.append(f"<b>{html_safe(profile.name, default='Unknown User')}</b>")
    lines.append(f"@{html_safe(profile.username)}")
    lines.append("")
    lines.append(f"О себе: {html_safe(profile.bio, default='No bio available')}")
    lines.append(f"📍 {html_safe(profile.location, default='Location not specified')}")
    if profile.email:
        lines.append(f"✉️ {html_safe(profile.email)}")
    lines.append(f"Навыки: {html_tags(profile.skills)}")

    links = [
        ("GitHub", profile.github_url),
        ("Сайт", profile.website_url),
        ("LinkedIn", profile.linkedin_url),
    ]
    for label, url in links:
        if url:
            lines.append(f'<a href="{html_safe(url)}">{label}</a>')

    return "\n".join(lines)


def format_status_line(status: ConnectionState | None) -> str | None:
    if status is None:
        return None
    if status.is_connected:
        return "✅ Вы на связи"
    if status.is_pending_sent:
        return "⏳ Заявка отправлена, ждём ответа"
    return None


def format_profile_card(snapshot: ProfileSnapshot) -> str:
    """
    Карточка открытого профиля: сам профиль, статус отношений и проекты.
    """
    if not snapshot.found:
        return "Профиль не найден.\nВозможно, человек сменил username."

    blocks: list[str] = [format_profile_text(snapshot.profile)]

    status_line = format_status_line(snapshot.status)
    if status_line:
        blocks.append(status_line)

    if snapshot.projects:
        project_lines = [format_project_line(p) for p in snapshot.projects]
        blocks.append("Проекты:\n" + "\n".join(project_lines))
    else:
        blocks.append("Проектов пока нет.")

    return "\n\n".join(blocks)


def profile_action_button(
    snapshot: ProfileSnapshot,
) -> tuple[str, str] | None:
    """
    Единственная основная кнопка карточки — (текст, callback_data) или None.
    none -> Connect, pending_sent -> Withdraw, connected / свой профиль -> ничего.
    """
    if not snapshot.found or snapshot.status is None:
        return None

    status = snapshot.status
    if status.is_pending_sent:
        return WITHDRAW_LABEL, f"conn_withdraw:{status.request_id}"
    if status.is_none:
        return CONNECT_LABEL, f"conn_connect:{snapshot.profile.id}"
    return None


def format_developers_list(
    profiles: Sequence[Profile],
    *,
    skills: Sequence[str] = (),
) -> str:
    """
    Короткая выдача разработчиков (/developers): имя, @username, навыки.
    Открыть карточку — /u username.
    """
    if not profiles:
        return "Никого не нашлось под такие параметры. Попробуй изменить поиск."

    lines: list[str] = ["Разработчики:"]
    for p in profiles:
        lines.append(
            f"• {html_safe(p.name, default='Unknown User')} — "
            f"/u {html_safe(p.username)}\n"
            f"   {html_tags(p.skills)}"
        )

    if skills:
        lines.append("")
        lines.append(f"Фильтр по навыкам: {html_tags(skills)}")

    return "\n".join(lines)
