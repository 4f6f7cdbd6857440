from typing import List, Optional
from datetime import date
from sqlalchemy.future import select
from stallbook.models.booking import Booking
from stallbook.models.market import Market
from stallbook.repositories.base import CollectionRepository


class BookingRepository(CollectionRepository):
    model = Booking
    collection = "bookings"
    ordering = (Booking.date, Booking.market_name, Booking.id)

    async def get_by_market(self, market_id: str) -> List[Booking]:
        result = await self.session.execute(
            select(Booking).filter_by(market_id=market_id).order_by(Booking.date)
        )
        return result.scalars().all()

    async def get_by_vendor(self, vendor_id: str) -> List[Booking]:
        result = await self.session.execute(
            select(Booking).filter_by(vendor_id=vendor_id).order_by(Booking.date)
        )
        return result.scalars().all()

    async def get_by_date(self, date_: date) -> List[Booking]:
        result = await self.session.execute(
            select(Booking).filter_by(date=date_).order_by(Booking.market_name)
        )
        return result.scalars().all()

    async def get_between(self, start_date: date, end_date: date) -> List[Booking]:
        result = await self.session.execute(
            select(Booking)
            .filter(Booking.date >= start_date, Booking.date <= end_date)
            .order_by(Booking.date, Booking.market_name)
        )
        return result.scalars().all()

    async def lock_market(self, market_id: str) -> Optional[Market]:
        """
        Блокирует строку рынка до конца транзакции, чтобы проверка окна и
        запись бронирования шли атомарно. SQLite FOR UPDATE игнорирует.
        """
        result = await self.session.execute(
            select(Market).filter_by(id=market_id).with_for_update()
        )
        return result.scalars().first()
