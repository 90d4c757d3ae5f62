# realtime.py
"""
Change feed: доставка событий INSERT/UPDATE/DELETE по таблицам.

Репозитории публикуют события после коммита, подписчики получают их
через собственную asyncio.Queue и отдельную задачу-потребителя.
Порядок доставки между разными подписками не гарантируется, поэтому
обработчики должны быть идемпотентными (обычно — просто перечитать данные).
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal

logger = logging.getLogger(__name__)

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]
Record = dict[str, Any]
Predicate = Callable[[Record], bool]
ChangeHandler = Callable[["ChangeEvent"], Awaitable[Any]]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: ChangeType
    record: Record = field(default_factory=dict)
    old_record: Record = field(default_factory=dict)

    @property
    def row(self) -> Record:
        """Строка, по которой фильтруем: для DELETE — старая версия."""
        if self.type == "DELETE":
            return self.old_record
        return self.record


# ===== предикаты для фильтров подписки =====


def field_equals(name: str, value: Any) -> Predicate:
    def predicate(row: Record) -> bool:
        return row.get(name) == value

    return predicate


def involves_pair(field_a: str, field_b: str, x: Any, y: Any) -> Predicate:
    """Строка связывает x и y в любом порядке."""

    def predicate(row: Record) -> bool:
        a, b = row.get(field_a), row.get(field_b)
        return (a == x and b == y) or (a == y and b == x)

    return predicate


def all_of(*predicates: Predicate) -> Predicate:
    def predicate(row: Record) -> bool:
        return all(p(row) for p in predicates)

    return predicate


# ===== подписка =====


class Subscription:
    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        handler: ChangeHandler,
        *,
        predicate: Predicate | None = None,
        name: str | None = None,
    ) -> None:
        self.feed = feed
        self.table = table
        self.handler = handler
        self.predicate = predicate
        self.name = name or f"{table}:{id(self):x}"

        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._task: asyncio.Task | None = asyncio.get_running_loop().create_task(
            self._consume(),
            name=f"subscription:{self.name}",
        )

    @property
    def active(self) -> bool:
        return self._task is not None

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.predicate is None:
            return True
        return self.predicate(event.row)

    def deliver(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.handler(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                # падение одного обработчика не должно гасить подписку
                logger.exception(
                    "change_handler_failed subscription=%s table=%s type=%s",
                    self.name,
                    event.table,
                    event.type,
                )

    def unsubscribe(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        self._task = None
        self.feed._detach(self)

        logger.debug("subscription_closed name=%s", self.name)


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        *,
        predicate: Predicate | None = None,
        name: str | None = None,
    ) -> Subscription:
        """
        Подписка на изменения таблицы. Нужен запущенный event loop:
        обработчик крутится в отдельной задаче.
        """
        sub = Subscription(self, table, handler, predicate=predicate, name=name)
        self._subscriptions.append(sub)

        logger.debug("subscription_opened name=%s table=%s", sub.name, table)
        return sub

    def publish(self, event: ChangeEvent) -> int:
        delivered = 0
        for sub in list(self._subscriptions):
            try:
                matched = sub.matches(event)
            except Exception:
                logger.exception("change_filter_failed subscription=%s", sub.name)
                continue

            if matched:
                sub.deliver(event)
                delivered += 1

        logger.debug(
            "change_published table=%s type=%s delivered=%s",
            event.table,
            event.type,
            delivered,
        )
        return delivered

    def close(self) -> None:
        for sub in list(self._subscriptions):
            sub.unsubscribe()

    def _detach(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass


change_feed = ChangeFeed()
