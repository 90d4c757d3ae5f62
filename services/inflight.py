# services/inflight.py

import logging
from contextlib import contextmanager
from typing import Hashable, Iterator

logger = logging.getLogger(__name__)


class InFlightActions:
    """
    Защита от двойного нажатия: пока действие с тем же ключом не завершилось,
    второе не запускаем (иначе зря сработает ветка с конфликтом заявки).

    Всё крутится в одном event loop, так что обычного set достаточно.
    """

    def __init__(self) -> None:
        self._keys: set[Hashable] = set()

    @contextmanager
    def claim(self, key: Hashable) -> Iterator[bool]:
        if key in self._keys:
            logger.info("action_already_in_flight key=%s", key)
            yield False
            return

        self._keys.add(key)
        try:
            yield True
        finally:
            self._keys.discard(key)


in_flight = InFlightActions()
