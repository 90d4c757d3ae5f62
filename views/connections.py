# views/connections.py
from datetime import datetime

from models import Profile
from services.connections import ConnectionsOverview
from views.safe import html_safe


def _who(profile: Profile | None) -> str:
    if profile is None:
        return "Unknown User (@unknown)"
    return (
        f"{html_safe(profile.name, default='Unknown User')} "
        f"(@{html_safe(profile.username, default='unknown')})"
    )


def _date(value: datetime | None) -> str:
    return value.strftime("%d.%m.%Y") if value else "—"


def format_connections_overview(overview: ConnectionsOverview) -> str:
    """
    Экран «Контакты»: входящие заявки, отправленные заявки и связи.
    Кнопки под сообщением идут в том же порядке.
    """
    lines: list[str] = []

    lines.append(f"<b>Входящие заявки ({len(overview.incoming)})</b>")
    if overview.incoming:
        for req in overview.incoming:
            lines.append(f"• {_who(req.sender)} — {_date(req.created_at)}")
    else:
        lines.append("Новых заявок нет.")

    lines.append("")
    lines.append(f"<b>Отправленные ({len(overview.outgoing)})</b>")
    if overview.outgoing:
        for req in overview.outgoing:
            lines.append(f"• {_who(req.receiver)} — {_date(req.created_at)}")
    else:
        lines.append("Ты пока никому не отправлял заявок.")

    lines.append("")
    lines.append(f"<b>Контакты ({len(overview.connections)})</b>")
    if overview.connections:
        for conn in overview.connections:
            lines.append(f"• {_who(conn.connected_user)} — с {_date(conn.created_at)}")
    else:
        lines.append("Контактов пока нет — загляни в /developers.")

    return "\n".join(lines)


def short_name(profile: Profile | None) -> str:
    """Для подписи кнопок: без HTML, коротко."""
    if profile is None:
        return "unknown"
    return f"@{profile.username}"
