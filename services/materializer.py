# services/materializer.py

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from constants import REQUEST_STATUS_ACCEPTED
from realtime import ChangeEvent, ChangeFeed, Subscription, field_equals
from repositories import create_connection_half, list_connections_between

logger = logging.getLogger(__name__)


class ConnectionMaterializer:
    """
    Превращает принятую заявку в две строки connections (A->B и B->A).

    Workflow заявок только ставит статус accepted, а этот слушатель
    change feed доводит дело до связи. Повторная доставка события
    безопасна: уже существующие половины пропускаем.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        feed: ChangeFeed,
    ) -> None:
        self.session_maker = session_maker
        self.feed = feed
        self._subscription: Subscription | None = None

    def start(self) -> None:
        if self._subscription is not None:
            return

        self._subscription = self.feed.subscribe(
            "connection_requests",
            self._on_change,
            predicate=field_equals("status", REQUEST_STATUS_ACCEPTED),
            name="connection_materializer",
        )
        logger.info("connection_materializer_started")

    def stop(self) -> None:
        if self._subscription is None:
            return

        self._subscription.unsubscribe()
        self._subscription = None
        logger.info("connection_materializer_stopped")

    async def _on_change(self, event: ChangeEvent) -> None:
        if event.type != "UPDATE":
            return
        if event.old_record.get("status") == REQUEST_STATUS_ACCEPTED:
            return
        await self.handle(event)

    async def handle(self, event: ChangeEvent) -> int:
        """Создаёт недостающие половины связи. Возвращает число новых строк."""
        sender_id = event.record["sender_id"]
        receiver_id = event.record["receiver_id"]

        created = 0
        async with self.session_maker() as session:
            existing = await list_connections_between(
                session,
                user_a=sender_id,
                user_b=receiver_id,
            )
            present = {(c.user_id, c.connected_user_id) for c in existing}

            for user_id, connected_user_id in (
                (sender_id, receiver_id),
                (receiver_id, sender_id),
            ):
                if (user_id, connected_user_id) in present:
                    continue
                try:
                    await create_connection_half(
                        session,
                        user_id=user_id,
                        connected_user_id=connected_user_id,
                    )
                    created += 1
                except IntegrityError:
                    # кто-то успел вставить ту же половину
                    await session.rollback()

        logger.info(
            "connection_materialized request_id=%s sender_id=%s receiver_id=%s created=%s",
            event.record.get("id"),
            sender_id,
            receiver_id,
            created,
        )
        return created
