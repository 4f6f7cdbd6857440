from typing import List, Optional
from sqlalchemy.future import select
from sqlalchemy.sql import func
from stallbook.models.market import Market
from stallbook.models.booking import Booking
from stallbook.repositories.base import CollectionRepository


class MarketRepository(CollectionRepository):
    model = Market
    collection = "markets"
    ordering = (Market.city, Market.name)

    async def get_cities(self) -> List[str]:
        result = await self.session.execute(
            select(Market.city).distinct().order_by(Market.city)
        )
        return result.scalars().all()

    async def get_by_city(self, city: str) -> List[Market]:
        result = await self.session.execute(
            select(Market).filter_by(city=city).order_by(Market.name)
        )
        return result.scalars().all()

    async def find_by_name(self, name: str, city: Optional[str] = None) -> Optional[Market]:
        query = select(Market).filter_by(name=name)
        if city:
            query = query.filter_by(city=city)
        result = await self.session.execute(query.order_by(Market.id))
        return result.scalars().first()

    async def count_bookings(self, market_id: str) -> int:
        result = await self.session.execute(
            select(func.count(Booking.id)).where(Booking.market_id == market_id)
        )
        return result.scalar() or 0
