from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List, Optional
from stallbook.core.exceptions import ValidationError
from stallbook.core.feed import LiveFeed
from stallbook.models.market import Market
from stallbook.repositories.market_repository import MarketRepository
from stallbook.utils.validators import validate_name
import logging

logger = logging.getLogger(__name__)


class MarketService:
    def __init__(self, session: AsyncSession, feed: Optional[LiveFeed] = None):
        self.repo = MarketRepository(session, feed)

    async def list_markets(self) -> List[Market]:
        return await self.repo.get_all()

    async def get_by_id(self, market_id: str) -> Optional[Market]:
        return await self.repo.get(market_id)

    async def get_cities(self) -> List[str]:
        return await self.repo.get_cities()

    async def get_by_city(self, city: str) -> List[Market]:
        return await self.repo.get_by_city(city)

    async def grouped_by_city(self) -> Dict[str, List[Market]]:
        """Рынки по городам: города и рынки внутри отсортированы по названию"""
        grouped: Dict[str, List[Market]] = {}
        for market in await self.repo.get_all():
            grouped.setdefault(market.city, []).append(market)
        return grouped

    async def find_by_name(self, name: str, city: Optional[str] = None) -> Optional[Market]:
        return await self.repo.find_by_name(name, city)

    async def create_market(self, city: str, name: str) -> Market:
        """
        Добавить рынок. Пара (город, название) не проверяется на
        уникальность, дубликаты возможны.
        """
        city = validate_name(city, "Город")
        name = validate_name(name, "Название рынка")

        market = await self.repo.add(city=city, name=name)
        logger.info("Добавлен рынок %s: %s %s", market.id, city, name)
        return market

    async def update_market(
        self, market: Market, city: Optional[str] = None, name: Optional[str] = None
    ) -> Market:
        """Изменить город и/или название; снимки в бронированиях не меняются"""
        changes = {}
        if city is not None:
            changes["city"] = validate_name(city, "Город")
        if name is not None:
            name = validate_name(name, "Название рынка")
            changes["name"] = name
        if not changes:
            return market

        logger.info("Изменение рынка %s: %s", market.id, changes)
        return await self.repo.update(market, **changes)

    async def delete_market(self, market: Market) -> None:
        booked = await self.repo.count_bookings(market.id)
        if booked:
            raise ValidationError(
                f"На рынке {market.name} есть бронирования ({booked}), удаление невозможно"
            )
        await self.repo.delete(market)
        logger.info("Удален рынок %s (%s %s)", market.id, market.city, market.name)
