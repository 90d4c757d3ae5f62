# services/connections.py
import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from constants import (
    CONNECTION_STATE_CONNECTED,
    CONNECTION_STATE_NONE,
    CONNECTION_STATE_PENDING_SENT,
    REQUEST_STATUS_ACCEPTED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
    REQUEST_STATUS_WITHDRAWN,
)
from models import Connection, ConnectionRequest
from repositories import (
    create_connection_request,
    delete_connection_request,
    delete_connections_between,
    get_connection_by_id,
    get_connection_request_by_id,
    get_pending_request_between,
    list_connections_between,
    list_connections_for_user,
    list_pending_requests,
    replace_requests_between,
    set_connection_request_status,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionState:
    """
    Производный статус отношений viewer -> subject.
    request_id заполнен только для pending_sent.
    """

    kind: str = CONNECTION_STATE_NONE
    request_id: int | None = None

    @property
    def is_none(self) -> bool:
        return self.kind == CONNECTION_STATE_NONE

    @property
    def is_pending_sent(self) -> bool:
        return self.kind == CONNECTION_STATE_PENDING_SENT

    @property
    def is_connected(self) -> bool:
        return self.kind == CONNECTION_STATE_CONNECTED


NO_CONNECTION = ConnectionState()
CONNECTED = ConnectionState(CONNECTION_STATE_CONNECTED)


@dataclass
class ConnectionsOverview:
    incoming: list[ConnectionRequest] = field(default_factory=list)
    outgoing: list[ConnectionRequest] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)


# ===== вычисление статуса =====


def resolve_status(
    requests: Iterable[ConnectionRequest],
    connections: Iterable[Connection],
    viewer_id: int,
    subject_id: int,
) -> ConnectionState:
    """
    Чистая функция от текущих строк:
    1) висящая заявка viewer -> subject  => pending_sent (+ id заявки)
    2) любая половина связи между ними    => connected
    3) иначе                              => none

    Входящие заявки (subject -> viewer) сюда намеренно не попадают,
    они показываются отдельным списком на экране контактов.
    """
    pending = sorted(
        (
            r
            for r in requests
            if r.sender_id == viewer_id
            and r.receiver_id == subject_id
            and r.status == REQUEST_STATUS_PENDING
        ),
        key=lambda r: r.id,
    )
    if pending:
        return ConnectionState(CONNECTION_STATE_PENDING_SENT, pending[0].id)

    pair = {viewer_id, subject_id}
    for c in connections:
        if {c.user_id, c.connected_user_id} == pair:
            return CONNECTED

    return NO_CONNECTION


async def get_connection_status(
    session: AsyncSession,
    *,
    viewer_id: int,
    subject_id: int,
) -> ConnectionState:
    """
    Статус для карточки профиля. Свой профиль сюда не передаём.

    Любая ошибка БД => none: кнопка «Connect» остаётся доступной,
    источник правды — всё равно таблицы.
    """
    if viewer_id == subject_id:
        raise ValueError("viewer_id и subject_id совпадают: свой профиль не резолвим")

    try:
        requests = await get_pending_request_between(
            session,
            sender_id=viewer_id,
            receiver_id=subject_id,
        )
        connections: Iterable[Connection] = ()
        if not requests:
            connections = await list_connections_between(
                session,
                user_a=viewer_id,
                user_b=subject_id,
            )
    except SQLAlchemyError:
        logger.warning(
            "connection_status_failed viewer_id=%s subject_id=%s fallback=none",
            viewer_id,
            subject_id,
            exc_info=True,
        )
        return NO_CONNECTION

    state = resolve_status(requests, connections, viewer_id, subject_id)
    logger.info(
        "connection_status_resolved viewer_id=%s subject_id=%s status=%s request_id=%s",
        viewer_id,
        subject_id,
        state.kind,
        state.request_id,
    )
    return state


# ===== отправка заявки =====


async def send_connect_request(
    session: AsyncSession,
    *,
    sender_id: int,
    receiver_id: int,
) -> tuple[ConnectionRequest | None, str]:
    """
    Возвращаем (request, reason)
    reason:
      - "ok" — новая заявка
      - "healed" — был конфликт, старые заявки пары удалили, повтор удался
      - "self" — попытка отправить себе
      - "failed" — не получилось (в т.ч. повтор после конфликта)

    Конфликт уникальности считаем следом старого несогласованного состояния:
    чистим все заявки пары в обе стороны и пробуем вставить ровно ещё раз.
    Чистка и повтор идут одним коммитом: если повтор не прошёл,
    заявки пары остаются как были, reason = "failed".
    """
    if sender_id == receiver_id:
        return None, "self"

    try:
        req = await create_connection_request(
            session,
            sender_id=sender_id,
            receiver_id=receiver_id,
        )
    except IntegrityError:
        await session.rollback()
        logger.warning(
            "connection_request_conflict sender_id=%s receiver_id=%s",
            sender_id,
            receiver_id,
        )
    except SQLAlchemyError:
        await session.rollback()
        logger.exception(
            "connection_request_send_failed sender_id=%s receiver_id=%s",
            sender_id,
            receiver_id,
        )
        return None, "failed"
    else:
        logger.info(
            "connection_request_sent sender_id=%s receiver_id=%s request_id=%s",
            sender_id,
            receiver_id,
            req.id,
        )
        return req, "ok"

    # ===== самолечение после конфликта =====
    try:
        req, removed = await replace_requests_between(
            session,
            sender_id=sender_id,
            receiver_id=receiver_id,
        )
    except SQLAlchemyError:
        await session.rollback()
        logger.exception(
            "connection_request_retry_failed sender_id=%s receiver_id=%s",
            sender_id,
            receiver_id,
        )
        return None, "failed"

    logger.info(
        "connection_request_healed sender_id=%s receiver_id=%s request_id=%s removed=%s",
        sender_id,
        receiver_id,
        req.id,
        removed,
    )
    return req, "healed"


# ===== отзыв / принятие / отклонение =====


async def withdraw_connection_request(
    session: AsyncSession,
    *,
    request_id: int,
    actor_id: int,
) -> str:
    """
    Отзыв заявки отправителем: статус withdrawn, затем удаление строки.
    Оба шага ограничены sender_id = actor_id.

    reason: "ok" / "not_found" / "forbidden" / "processed" / "failed"
    """
    try:
        req = await get_connection_request_by_id(session, request_id)
        if not req:
            return "not_found"
        if req.sender_id != actor_id:
            logger.warning(
                "connection_request_withdraw_forbidden request_id=%s actor_id=%s sender_id=%s",
                request_id,
                actor_id,
                req.sender_id,
            )
            return "forbidden"
        if req.status != REQUEST_STATUS_PENDING:
            return "processed"

        updated = await set_connection_request_status(
            session,
            request_id=request_id,
            status=REQUEST_STATUS_WITHDRAWN,
            sender_id=actor_id,
        )
        if not updated:
            return "not_found"

        await delete_connection_request(
            session,
            request_id=request_id,
            sender_id=actor_id,
        )
    except SQLAlchemyError:
        await session.rollback()
        logger.exception(
            "connection_request_withdraw_failed request_id=%s actor_id=%s",
            request_id,
            actor_id,
        )
        return "failed"

    logger.info(
        "connection_request_withdrawn request_id=%s actor_id=%s",
        request_id,
        actor_id,
    )
    return "ok"


async def _respond_to_request(
    session: AsyncSession,
    *,
    request_id: int,
    actor_id: int,
    status: str,
) -> tuple[ConnectionRequest | None, str]:
    try:
        req = await get_connection_request_by_id(session, request_id)
        if not req:
            return None, "not_found"

        # ✅ отвечать может только получатель
        if req.receiver_id != actor_id:
            logger.warning(
                "connection_request_respond_forbidden request_id=%s actor_id=%s status=%s",
                request_id,
                actor_id,
                status,
            )
            return req, "forbidden"

        if req.status != REQUEST_STATUS_PENDING:
            return req, "processed"

        req = await set_connection_request_status(
            session,
            request_id=request_id,
            status=status,
        )
    except SQLAlchemyError:
        await session.rollback()
        logger.exception(
            "connection_request_respond_failed request_id=%s actor_id=%s status=%s",
            request_id,
            actor_id,
            status,
        )
        return None, "failed"

    if not req:
        return None, "not_found"

    logger.info(
        "connection_request_%s request_id=%s sender_id=%s receiver_id=%s",
        status,
        req.id,
        req.sender_id,
        req.receiver_id,
    )
    return req, "ok"


async def accept_connection_request(
    session: AsyncSession,
    *,
    request_id: int,
    actor_id: int,
) -> tuple[ConnectionRequest | None, str]:
    """
    Только меняем статус на accepted.
    Две строки connections создаёт материализатор (services/materializer.py),
    который слушает change feed.
    """
    return await _respond_to_request(
        session,
        request_id=request_id,
        actor_id=actor_id,
        status=REQUEST_STATUS_ACCEPTED,
    )


async def reject_connection_request(
    session: AsyncSession,
    *,
    request_id: int,
    actor_id: int,
) -> tuple[ConnectionRequest | None, str]:
    """Статус rejected, строка остаётся — как история."""
    return await _respond_to_request(
        session,
        request_id=request_id,
        actor_id=actor_id,
        status=REQUEST_STATUS_REJECTED,
    )


async def get_connection_request(
    session: AsyncSession,
    *,
    request_id: int,
) -> ConnectionRequest | None:
    req = await get_connection_request_by_id(session, request_id)
    logger.info(
        "connection_request_fetched request_id=%s found=%s",
        request_id,
        bool(req),
    )
    return req


# ===== удаление связи =====


async def remove_connection(
    session: AsyncSession,
    *,
    connection_id: int,
    actor_id: int,
) -> str:
    """
    1) читаем строку, чтобы узнать обоих участников
    2) одним запросом удаляем обе половины (A->B и B->A)

    Отката нет: если шаг 2 применился частично, останется «осиротевшая»
    половина. Это известное ограничение.

    reason: "ok" / "not_found" / "forbidden" / "failed"
    """
    try:
        conn = await get_connection_by_id(session, connection_id)
        if not conn:
            return "not_found"

        if actor_id not in (conn.user_id, conn.connected_user_id):
            logger.warning(
                "connection_remove_forbidden connection_id=%s actor_id=%s",
                connection_id,
                actor_id,
            )
            return "forbidden"

        removed = await delete_connections_between(
            session,
            user_a=conn.user_id,
            user_b=conn.connected_user_id,
        )
    except SQLAlchemyError:
        await session.rollback()
        logger.exception(
            "connection_remove_failed connection_id=%s actor_id=%s",
            connection_id,
            actor_id,
        )
        return "failed"

    logger.info(
        "connection_removed connection_id=%s actor_id=%s rows=%s",
        connection_id,
        actor_id,
        removed,
    )
    return "ok"


# ===== экран «Контакты» =====


async def get_connections_overview(
    session: AsyncSession,
    *,
    user_id: int,
) -> ConnectionsOverview:
    """
    Три списка: входящие заявки, исходящие заявки, установленные связи.
    Ошибка чтения => пустой экран, а не падение.
    """
    try:
        incoming = await list_pending_requests(session, receiver_id=user_id)
        outgoing = await list_pending_requests(session, sender_id=user_id)
        connections = await list_connections_for_user(session, user_id)
    except SQLAlchemyError:
        logger.warning(
            "connections_overview_failed user_id=%s",
            user_id,
            exc_info=True,
        )
        return ConnectionsOverview()

    logger.info(
        "connections_overview_loaded user_id=%s incoming=%s outgoing=%s connections=%s",
        user_id,
        len(incoming),
        len(outgoing),
        len(connections),
    )
    return ConnectionsOverview(
        incoming=list(incoming),
        outgoing=list(outgoing),
        connections=list(connections),
    )
