from dataclasses import dataclass

from sqlalchemy import Column, String, Date, Integer, DateTime, ForeignKey, func
from stallbook.core.database import Base


@dataclass(frozen=True)
class BookingSnapshot:
    """
    Названия рынка и продавца на момент записи.

    Снимок намеренно не обновляется при последующих переименованиях рынка
    или продавца: история бронирований хранит факты на дату записи.
    """

    market_name: str
    market_city: str
    vendor_name: str

    @classmethod
    def capture(cls, market, vendor) -> "BookingSnapshot":
        return cls(
            market_name=market.name, market_city=market.city, vendor_name=vendor.name
        )

    def as_dict(self) -> dict:
        return {
            "market_name": self.market_name,
            "market_city": self.market_city,
            "vendor_name": self.vendor_name,
        }


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    market_id = Column(String, ForeignKey("markets.id"), nullable=False, index=True)
    market_name = Column(String, nullable=False)
    market_city = Column(String, nullable=False)
    vendor_id = Column(String, nullable=False, index=True)
    vendor_name = Column(String, nullable=False)
    remark = Column(String, nullable=True)
    sales_quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )
