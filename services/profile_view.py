# services/profile_view.py
"""
Открытая карточка профиля + синхронизация через change feed.

Пока карточка открыта, слушаем:
  - строку профиля,
  - заявки между viewer и subject (в обе стороны),
  - половины связи между ними.
На любое событие целиком перечитываем профиль, проекты и статус.
Перечитывание идемпотентно, поэтому порядок и дубли событий не важны,
а сами перечитывания идут по одному.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import Profile, Project
from realtime import ChangeEvent, ChangeFeed, Subscription, change_feed, field_equals, involves_pair
from repositories import (
    get_profile_by_id,
    get_profile_by_username,
    list_projects_by_owner,
)
from services.connections import ConnectionState, get_connection_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileSnapshot:
    profile: Profile | None
    projects: list[Project] = field(default_factory=list)
    # None: статус не считается: свой профиль, аноним или профиль не найден
    status: ConnectionState | None = None

    @property
    def found(self) -> bool:
        return self.profile is not None


NOT_FOUND = ProfileSnapshot(profile=None)


async def load_profile_snapshot(
    session: AsyncSession,
    *,
    viewer_id: int | None,
    username: str | None = None,
    subject_id: int | None = None,
) -> ProfileSnapshot:
    """
    Профиль (по id, если он уже известен, иначе по username),
    его проекты и статус отношений с viewer.
    Ошибки чтения превращаются в «не найдено» / пустые списки.
    """
    try:
        if subject_id is not None:
            profile = await get_profile_by_id(session, subject_id)
        elif username:
            profile = await get_profile_by_username(session, username)
        else:
            profile = None
    except SQLAlchemyError:
        logger.warning(
            "profile_snapshot_profile_failed username=%s subject_id=%s",
            username,
            subject_id,
            exc_info=True,
        )
        return NOT_FOUND

    if profile is None:
        return NOT_FOUND

    try:
        projects = await list_projects_by_owner(session, profile.id)
    except SQLAlchemyError:
        logger.warning(
            "profile_snapshot_projects_failed subject_id=%s", profile.id, exc_info=True
        )
        projects = []

    status = None
    if viewer_id is not None and viewer_id != profile.id:
        status = await get_connection_status(
            session,
            viewer_id=viewer_id,
            subject_id=profile.id,
        )

    return ProfileSnapshot(profile=profile, projects=projects, status=status)


RefreshCallback = Callable[["ProfileView", ProfileSnapshot], Awaitable[None]]


class ProfileView:
    """
    Одна открытая карточка. Обновления идут строго по очереди (под локом):
    каждое перечитывание начинается после предыдущего, поэтому последним
    на экран попадает самый свежий снимок.
    """

    def __init__(
        self,
        *,
        viewer_id: int | None,
        username: str,
        session_maker: async_sessionmaker[AsyncSession],
        feed: ChangeFeed = change_feed,
        on_refresh: RefreshCallback | None = None,
        subject_id: int | None = None,
        message_id: int | None = None,
    ) -> None:
        self.viewer_id = viewer_id
        self.username = username
        self.session_maker = session_maker
        self.feed = feed
        self.on_refresh = on_refresh
        # сообщение с карточкой, если view рисует в Telegram
        self.message_id = message_id

        self.snapshot: ProfileSnapshot | None = None
        self.subject_id: int | None = subject_id
        self.closed = False
        self._subscriptions: list[Subscription] = []
        self._refresh_lock = asyncio.Lock()

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    async def open(self) -> ProfileSnapshot | None:
        """
        Сначала подписка, потом первое чтение: изменение, закоммиченное
        между ними, придёт событием и вызовет ещё одно перечитывание.
        """
        if self.subject_id is None:
            self.subject_id = await self._resolve_subject_id()
        if self.subject_id is not None and not self.closed:
            self._subscribe(self.subject_id)
        return await self.refresh()

    async def refresh(self) -> ProfileSnapshot | None:
        """
        Полное перечитывание. Если за время запроса карточку закрыли,
        результат выбрасываем.
        """
        async with self._refresh_lock:
            if self.closed:
                return None

            async with self.session_maker() as session:
                snapshot = await load_profile_snapshot(
                    session,
                    viewer_id=self.viewer_id,
                    username=self.username,
                    subject_id=self.subject_id,
                )

            if self.closed:
                logger.debug(
                    "profile_view_refresh_discarded viewer_id=%s username=%s",
                    self.viewer_id,
                    self.username,
                )
                return None

            self.snapshot = snapshot
            if snapshot.found:
                self.subject_id = snapshot.profile.id
                self.username = snapshot.profile.username

            if self.on_refresh is not None:
                await self.on_refresh(self, snapshot)
            return snapshot

    async def handle_change(self, event: ChangeEvent) -> None:
        logger.info(
            "profile_view_change viewer_id=%s subject_id=%s table=%s type=%s",
            self.viewer_id,
            self.subject_id,
            event.table,
            event.type,
        )
        await self.refresh()

    async def render(self) -> None:
        """Перерисовать текущий снимок (например, после apply_local)."""
        if self.closed or self.snapshot is None or self.on_refresh is None:
            return
        await self.on_refresh(self, self.snapshot)

    def apply_local(self, status: ConnectionState) -> bool:
        """
        Локальный переход после своего действия (connect / withdraw),
        не дожидаясь события из feed.
        """
        if self.closed or self.snapshot is None or not self.snapshot.found:
            return False
        self.snapshot = dataclasses.replace(self.snapshot, status=status)
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()

        logger.info(
            "profile_view_closed viewer_id=%s subject_id=%s",
            self.viewer_id,
            self.subject_id,
        )

    async def _resolve_subject_id(self) -> int | None:
        try:
            async with self.session_maker() as session:
                profile = await get_profile_by_username(session, self.username)
        except SQLAlchemyError:
            logger.warning(
                "profile_view_resolve_failed username=%s", self.username, exc_info=True
            )
            return None
        return profile.id if profile is not None else None

    def _subscribe(self, subject_id: int) -> None:
        tag = f"profile_view:{self.viewer_id}->{subject_id}"

        self._subscriptions.append(
            self.feed.subscribe(
                "profiles",
                self.handle_change,
                predicate=field_equals("id", subject_id),
                name=f"{tag}:profile",
            )
        )

        if self.viewer_id is None or self.viewer_id == subject_id:
            return

        self._subscriptions.append(
            self.feed.subscribe(
                "connection_requests",
                self.handle_change,
                predicate=involves_pair(
                    "sender_id", "receiver_id", self.viewer_id, subject_id
                ),
                name=f"{tag}:requests",
            )
        )
        self._subscriptions.append(
            self.feed.subscribe(
                "connections",
                self.handle_change,
                predicate=involves_pair(
                    "user_id", "connected_user_id", self.viewer_id, subject_id
                ),
                name=f"{tag}:connections",
            )
        )


class ProfileViewRegistry:
    """Не больше одной открытой карточки на чат; старая закрывается."""

    def __init__(self) -> None:
        self._views: dict[int, ProfileView] = {}

    def get(self, chat_id: int) -> ProfileView | None:
        return self._views.get(chat_id)

    def attach(self, chat_id: int, view: ProfileView) -> None:
        previous = self._views.pop(chat_id, None)
        if previous is not None and previous is not view:
            previous.close()
        self._views[chat_id] = view

    def detach(self, chat_id: int) -> ProfileView | None:
        view = self._views.pop(chat_id, None)
        if view is not None:
            view.close()
        return view

    def close_all(self) -> None:
        for chat_id in list(self._views):
            self.detach(chat_id)

    def __len__(self) -> int:
        return len(self._views)


profile_views = ProfileViewRegistry()
