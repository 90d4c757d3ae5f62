# views/safe.py
from __future__ import annotations

from html import escape
from typing import Iterable


def html_safe(value, default: str = "—") -> str:
    """
    Экранирует строку для ParseMode.HTML.
    - None/пустое -> default
    - иначе -> html.escape(..., quote=True)
    """
    if value is None:
        return default

    s = str(value).strip()
    if not s:
        return default

    return escape(s, quote=True)


def html_tags(values: Iterable[str] | None, default: str = "—") -> str:
    """["Python", "<b>"] -> "Python, &lt;b&gt;" """
    items = [escape(str(v).strip(), quote=True) for v in (values or []) if str(v).strip()]
    if not items:
        return default
    return ", ".join(items)
