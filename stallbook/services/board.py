import datetime
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from stallbook.core.config import Settings
from stallbook.core.feed import LiveFeed, Subscription
from stallbook.repositories.booking_repository import BookingRepository
from stallbook.repositories.market_repository import MarketRepository
from stallbook.services.recommendation import Suggestion, recommend

logger = logging.getLogger(__name__)


class BookingBoard:
    """
    Локальная копия коллекций bookings и markets, синхронизируемая через
    LiveFeed. Рекомендации считаются по этой копии и сбрасываются при
    любом изменении любой из двух коллекций.
    """

    def __init__(self, feed: LiveFeed, settings: Settings):
        self.feed = feed
        self.limit = settings.recommendation_limit
        self.threshold_days = settings.recommendation_threshold_days
        self.bookings: List[Any] = []
        self.markets: List[Any] = []
        self._subscriptions: List[Subscription] = []
        self._cache: Dict[Tuple[Optional[str], datetime.date], List[Suggestion]] = {}

    async def start(self, session: AsyncSession) -> "BookingBoard":
        self.bookings = list(await BookingRepository(session).get_all())
        self.markets = list(await MarketRepository(session).get_all())
        if not self._subscriptions:
            self._subscriptions = [
                self.feed.subscribe("bookings", self._on_snapshot),
                self.feed.subscribe("markets", self._on_snapshot),
            ]
        logger.info(
            "Доска бронирований загружена: %d бронирований, %d рынков",
            len(self.bookings),
            len(self.markets),
        )
        return self

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions = []
        self._cache.clear()

    def _on_snapshot(self, collection: str, snapshot: Sequence[Any]) -> None:
        if collection == "bookings":
            self.bookings = list(snapshot)
        elif collection == "markets":
            self.markets = list(snapshot)
        self._cache.clear()

    def suggestions(
        self, vendor_id: Optional[str], today: Optional[datetime.date] = None
    ) -> List[Suggestion]:
        today = today or datetime.date.today()
        key = (vendor_id, today)
        if key not in self._cache:
            self._cache[key] = recommend(
                self.bookings,
                self.markets,
                vendor_id,
                today=today,
                limit=self.limit,
                threshold_days=self.threshold_days,
            )
        return self._cache[key]
