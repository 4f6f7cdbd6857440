"""
Живые подписки на коллекции.

После каждой успешной записи репозиторий публикует свежий снимок всей
коллекции, и все подписчики этой коллекции получают его. Подписка - это
явный дескриптор, который нужно закрыть по окончании жизни подписчика.
"""

import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

COLLECTIONS = ("vendors", "markets", "bookings", "announcements")

Listener = Callable[[str, Sequence[Any]], Union[None, Awaitable[None]]]


class Subscription:
    def __init__(self, feed: "LiveFeed", collection: str, listener: Listener):
        self.feed = feed
        self.collection = collection
        self.listener = listener
        self.active = True

    def close(self) -> None:
        if self.active:
            self.feed._remove(self)
            self.active = False


class LiveFeed:
    """Канал publish/subscribe для каждой коллекции в пределах пространства имен"""

    def __init__(self, namespace: str = "default-app-id"):
        self.namespace = namespace
        self._subscribers: Dict[str, List[Subscription]] = {c: [] for c in COLLECTIONS}

    def channel(self, collection: str) -> str:
        return f"{self.namespace}:{collection}"

    def subscribe(self, collection: str, listener: Listener) -> Subscription:
        if collection not in self._subscribers:
            raise ValueError(f"Неизвестная коллекция: {collection}")
        subscription = Subscription(self, collection, listener)
        self._subscribers[collection].append(subscription)
        logger.debug("Подписка на %s", self.channel(collection))
        return subscription

    @asynccontextmanager
    async def subscription(self, collection: str, listener: Listener):
        sub = self.subscribe(collection, listener)
        try:
            yield sub
        finally:
            sub.close()

    def has_subscribers(self, collection: str) -> bool:
        return bool(self._subscribers.get(collection))

    def subscriber_count(self, collection: Optional[str] = None) -> int:
        if collection:
            return len(self._subscribers.get(collection, []))
        return sum(len(subs) for subs in self._subscribers.values())

    async def publish(self, collection: str, snapshot: Sequence[Any]) -> int:
        """Рассылает снимок коллекции всем подписчикам, возвращает число доставок"""
        delivered = 0
        for sub in list(self._subscribers.get(collection, [])):
            try:
                result = sub.listener(collection, snapshot)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Ошибка подписчика {self.channel(collection)}: {e}", exc_info=True
                )
        return delivered

    def close_all(self) -> None:
        for subs in self._subscribers.values():
            for sub in list(subs):
                sub.close()

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscribers.get(subscription.collection, [])
        if subscription in subs:
            subs.remove(subscription)
