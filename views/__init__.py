from .profiles import (
    CONNECT_LABEL,
    WITHDRAW_LABEL,
    format_profile_text,
    format_profile_card,
    format_developers_list,
    profile_action_button,
)
from .projects import (
    format_project_card,
    format_project_line,
    format_projects_feed,
)
from .connections import format_connections_overview, short_name
from .safe import html_safe, html_tags


__all__ = [
    "CONNECT_LABEL",
    "WITHDRAW_LABEL",
    "format_profile_text",
    "format_profile_card",
    "format_developers_list",
    "profile_action_button",
    "format_project_card",
    "format_project_line",
    "format_projects_feed",
    "format_connections_overview",
    "short_name",
    "html_safe",
    "html_tags",
]
