"""
Модели данных для Telegram-бота Stallbook.
"""

from .vendor import Vendor
from .market import Market
from .booking import Booking, BookingSnapshot
from .announcement import Announcement

__all__ = [
    "Vendor",
    "Market",
    "Booking",
    "BookingSnapshot",
    "Announcement",
]
