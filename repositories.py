from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import and_, delete, desc, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from constants import REQUEST_STATUS_PENDING
from models import Connection, ConnectionRequest, Profile, Project
from realtime import ChangeEvent, change_feed


def _publish(table: str, type_: str, record: dict | None = None, old: dict | None = None):
    change_feed.publish(
        ChangeEvent(
            table=table,
            type=type_,
            record=record or {},
            old_record=old or {},
        )
    )


# ===== ПРОФИЛИ =====


async def get_profile_by_id(
    session: AsyncSession,
    profile_id: int,
) -> Profile | None:
    stmt = select(Profile).where(Profile.id == profile_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_profile_by_telegram_id(
    session: AsyncSession,
    telegram_id: int,
) -> Profile | None:
    stmt = select(Profile).where(Profile.telegram_id == telegram_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_profile_by_username(
    session: AsyncSession,
    username: str,
) -> Profile | None:
    stmt = select(Profile).where(Profile.username == username.lower())
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_profile(
    session: AsyncSession,
    *,
    telegram_id: int,
    username: str,
    name: str | None = None,
) -> Profile:
    profile = Profile(
        telegram_id=telegram_id,
        username=username.lower(),
        name=name,
        skills=[],
    )
    session.add(profile)
    await session.commit()
    await session.refresh(profile)

    _publish("profiles", "INSERT", profile.as_record())
    return profile


async def update_profile(
    session: AsyncSession,
    *,
    profile_id: int,
    fields: dict[str, Any],
) -> Profile | None:
    """
    Обновляем только переданные поля (None в fields — значит «не трогать»).
    IntegrityError (занятый username) летит наружу — разбирается в сервисе.
    """
    profile = await get_profile_by_id(session, profile_id)
    if not profile:
        return None

    old = profile.as_record()
    for name, value in fields.items():
        if value is not None:
            setattr(profile, name, value)

    await session.commit()
    await session.refresh(profile)

    _publish("profiles", "UPDATE", profile.as_record(), old)
    return profile


async def list_profiles(
    session: AsyncSession,
    *,
    exclude_id: int | None = None,
) -> Sequence[Profile]:
    stmt = select(Profile)
    if exclude_id is not None:
        stmt = stmt.where(Profile.id != exclude_id)

    stmt = stmt.order_by(Profile.name, Profile.username)
    result = await session.execute(stmt)
    return result.scalars().all()


# ===== ПРОЕКТЫ =====


async def create_project(
    session: AsyncSession,
    *,
    owner_id: int,
    title: str,
    description: str,
    tech_stack: list[str],
    contributors_needed: list[str],
    github_url: str | None = None,
    live_url: str | None = None,
    status: str | None = None,
) -> Project:
    project = Project(
        owner_id=owner_id,
        title=title,
        description=description,
        tech_stack=tech_stack,
        contributors_needed=contributors_needed,
        github_url=github_url,
        live_url=live_url,
    )
    if status is not None:
        project.status = status

    session.add(project)
    await session.commit()
    await session.refresh(project)

    _publish("projects", "INSERT", project.as_record())
    return project


async def list_projects(
    session: AsyncSession,
    *,
    status: str | None = None,
) -> list[Project]:
    """
    Все проекты с владельцем, новые сверху.
    Поиск по подстроке и тегам делаем в сервисном слое — теги лежат в JSON.
    """
    stmt = select(Project).options(selectinload(Project.owner))

    if status:
        stmt = stmt.where(Project.status == status)

    stmt = stmt.order_by(desc(Project.created_at), desc(Project.id))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_projects_by_owner(
    session: AsyncSession,
    owner_id: int,
) -> list[Project]:
    stmt = (
        select(Project)
        .options(selectinload(Project.owner))
        .where(Project.owner_id == owner_id)
        .order_by(desc(Project.created_at), desc(Project.id))
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_project_by_id(
    session: AsyncSession,
    project_id: int,
) -> Project | None:
    stmt = (
        select(Project)
        .options(selectinload(Project.owner))
        .where(Project.id == project_id)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


# ===== ЗАЯВКИ НА КОННЕКТ =====


async def get_connection_request_by_id(
    session: AsyncSession,
    request_id: int,
) -> ConnectionRequest | None:
    stmt = (
        select(ConnectionRequest)
        .where(ConnectionRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_pending_request_between(
    session: AsyncSession,
    *,
    sender_id: int,
    receiver_id: int,
) -> Sequence[ConnectionRequest]:
    """
    Висящие заявки sender -> receiver. Возвращаем список:
    хранилище не гарантирует, что такая строка одна.
    """
    stmt = (
        select(ConnectionRequest)
        .where(
            ConnectionRequest.sender_id == sender_id,
            ConnectionRequest.receiver_id == receiver_id,
            ConnectionRequest.status == REQUEST_STATUS_PENDING,
        )
        .order_by(ConnectionRequest.id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_pending_requests(
    session: AsyncSession,
    *,
    sender_id: int | None = None,
    receiver_id: int | None = None,
) -> Sequence[ConnectionRequest]:
    """
    Входящие (receiver_id=...) или исходящие (sender_id=...) pending-заявки
    вместе с профилем второй стороны.
    """
    stmt = select(ConnectionRequest).where(
        ConnectionRequest.status == REQUEST_STATUS_PENDING
    )

    if sender_id is not None:
        stmt = stmt.where(ConnectionRequest.sender_id == sender_id).options(
            selectinload(ConnectionRequest.receiver)
        )
    if receiver_id is not None:
        stmt = stmt.where(ConnectionRequest.receiver_id == receiver_id).options(
            selectinload(ConnectionRequest.sender)
        )

    stmt = stmt.order_by(desc(ConnectionRequest.created_at), desc(ConnectionRequest.id))
    result = await session.execute(stmt)
    return result.scalars().all()


async def create_connection_request(
    session: AsyncSession,
    *,
    sender_id: int,
    receiver_id: int,
) -> ConnectionRequest:
    """
    Создание pending-заявки.
    При конфликте уникальности (sender_id, receiver_id) коммит бросит
    IntegrityError — откат и «самолечение» делает сервис.
    """
    req = ConnectionRequest(
        sender_id=sender_id,
        receiver_id=receiver_id,
        status=REQUEST_STATUS_PENDING,
    )
    session.add(req)
    await session.commit()
    await session.refresh(req)

    _publish("connection_requests", "INSERT", req.as_record())
    return req


async def set_connection_request_status(
    session: AsyncSession,
    *,
    request_id: int,
    status: str,
    sender_id: int | None = None,
) -> ConnectionRequest | None:
    """
    Меняем статус. Если передан sender_id — трогаем заявку,
    только если она действительно от него.
    """
    req = await get_connection_request_by_id(session, request_id)
    if not req:
        return None
    if sender_id is not None and req.sender_id != sender_id:
        return None

    old = req.as_record()
    req.status = status
    req.responded_at = datetime.utcnow()
    await session.commit()
    await session.refresh(req)

    _publish("connection_requests", "UPDATE", req.as_record(), old)
    return req


async def delete_connection_request(
    session: AsyncSession,
    *,
    request_id: int,
    sender_id: int,
) -> int:
    """Удаление заявки по id, только от имени отправителя. Возвращает число строк."""
    condition = and_(
        ConnectionRequest.id == request_id,
        ConnectionRequest.sender_id == sender_id,
    )
    return await _delete_requests(session, condition)

async def replace_requests_between(
    session: AsyncSession,
    *,
    sender_id: int,
    receiver_id: int,
) -> tuple[ConnectionRequest, int]:
    """
    Удалить все заявки пары и вставить новую pending-заявку одним коммитом.
    Если коммит упал, не применилось ни удаление, ни вставка.
    Возвращает (новая заявка, сколько старых удалили).
    """
    condition = _request_pair_condition(sender_id, receiver_id)
    rows = (
        (await session.execute(select(ConnectionRequest).where(condition)))
        .scalars()
        .all()
    )
    old_records = [r.as_record() for r in rows]

    await session.execute(delete(ConnectionRequest).where(condition))
    req = ConnectionRequest(
        sender_id=sender_id,
        receiver_id=receiver_id,
        status=REQUEST_STATUS_PENDING,
    )
    session.add(req)
    await session.commit()
    await session.refresh(req)

    for old in old_records:
        _publish("connection_requests", "DELETE", old=old)
    _publish("connection_requests", "INSERT", req.as_record())
    return req, len(old_records)


def _request_pair_condition(user_a: int, user_b: int):
    return or_(
        and_(
            ConnectionRequest.sender_id == user_a,
            ConnectionRequest.receiver_id == user_b,
        ),
        and_(
            ConnectionRequest.sender_id == user_b,
            ConnectionRequest.receiver_id == user_a,
        ),
    )


async def _delete_requests(session: AsyncSession, condition) -> int:
    rows = (
        (await session.execute(select(ConnectionRequest).where(condition)))
        .scalars()
        .all()
    )
    old_records = [r.as_record() for r in rows]

    await session.execute(delete(ConnectionRequest).where(condition))
    await session.commit()

    for old in old_records:
        _publish("connection_requests", "DELETE", old=old)
    return len(old_records)


# ===== КОННЕКТЫ (две строки на одну связь) =====


async def get_connection_by_id(
    session: AsyncSession,
    connection_id: int,
) -> Connection | None:
    stmt = select(Connection).where(Connection.id == connection_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def _pair_condition(user_a: int, user_b: int):
    return or_(
        and_(Connection.user_id == user_a, Connection.connected_user_id == user_b),
        and_(Connection.user_id == user_b, Connection.connected_user_id == user_a),
    )


async def list_connections_between(
    session: AsyncSession,
    *,
    user_a: int,
    user_b: int,
) -> Sequence[Connection]:
    stmt = select(Connection).where(_pair_condition(user_a, user_b)).execution_options(
        populate_existing=True
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_connections_for_user(
    session: AsyncSession,
    user_id: int,
) -> Sequence[Connection]:
    stmt = (
        select(Connection)
        .options(selectinload(Connection.connected_user))
        .where(Connection.user_id == user_id)
        .order_by(desc(Connection.created_at), desc(Connection.id))
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def create_connection_half(
    session: AsyncSession,
    *,
    user_id: int,
    connected_user_id: int,
) -> Connection:
    conn = Connection(user_id=user_id, connected_user_id=connected_user_id)
    session.add(conn)
    await session.commit()
    await session.refresh(conn)

    _publish("connections", "INSERT", conn.as_record())
    return conn


async def delete_connections_between(
    session: AsyncSession,
    *,
    user_a: int,
    user_b: int,
) -> int:
    """Одним запросом удаляем обе половины связи (A->B и B->A)."""
    condition = _pair_condition(user_a, user_b)

    rows = (await session.execute(select(Connection).where(condition))).scalars().all()
    old_records = [r.as_record() for r in rows]

    await session.execute(delete(Connection).where(condition))
    await session.commit()

    for old in old_records:
        _publish("connections", "DELETE", old=old)
    return len(old_records)
