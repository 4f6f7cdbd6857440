"""
Жизненный цикл бронирования: создание, изменение, удаление с
подтверждением и ввод продаж.

Черновик проходит состояния NONE -> PENDING -> SAVING -> SAVED | FAILED.
Перед записью выполняется проверка 7-дневного окна (services.conflict).
Проверка делается повторно внутри транзакции записи после блокировки
строки рынка; без поддержки FOR UPDATE (SQLite) это остается
проверкой-затем-записью, и два одновременных бронирования могут пройти.
"""

import datetime
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stallbook.core.exceptions import (
    ConflictError,
    PermissionDeniedError,
    StoreWriteError,
    ValidationError,
)
from stallbook.core.feed import LiveFeed
from stallbook.models.booking import Booking, BookingSnapshot
from stallbook.models.vendor import Vendor
from stallbook.repositories.booking_repository import BookingRepository
from stallbook.services.conflict import find_conflicts, to_date
from stallbook.utils.date_utils import (
    count_by_day,
    format_date_for_display,
    get_month_range,
)
from stallbook.utils.validators import sanitize_input

logger = logging.getLogger(__name__)

MAX_REMARK_LENGTH = 500


class BookingStatus(enum.Enum):
    NONE = "none"
    PENDING = "pending"
    SAVING = "saving"
    SAVED = "saved"
    FAILED = "failed"


@dataclass
class BookingDraft:
    vendor_id: str
    booking_id: Optional[str] = None
    date: Optional[datetime.date] = None
    market_id: Optional[str] = None
    remark: Optional[str] = None
    status: BookingStatus = BookingStatus.NONE
    error: Optional[str] = None
    warnings: List[Booking] = field(default_factory=list)
    result: Optional[Booking] = None

    @property
    def is_edit(self) -> bool:
        return self.booking_id is not None

    def fill(
        self, date: Any, market_id: Optional[str], remark: Optional[str] = None
    ) -> "BookingDraft":
        try:
            self.date = to_date(date) if date else None
        except ValueError as e:
            self.status = BookingStatus.FAILED
            self.error = f"Неверная дата: {date}"
            raise ValidationError(self.error) from e
        self.market_id = market_id or None
        self.remark = remark
        self.status = BookingStatus.PENDING
        self.error = None
        return self


@dataclass(frozen=True)
class PendingDeletion:
    """Запрос на удаление, ожидающий явного подтверждения пользователем"""

    booking_id: str
    vendor_id: str
    date: str
    market_name: str

    def as_dict(self) -> Dict[str, str]:
        return {
            "booking_id": self.booking_id,
            "vendor_id": self.vendor_id,
            "date": self.date,
            "market_name": self.market_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "PendingDeletion":
        return cls(
            booking_id=data["booking_id"],
            vendor_id=data["vendor_id"],
            date=data["date"],
            market_name=data["market_name"],
        )


def describe_conflicts(conflicts: List[Booking]) -> str:
    return "; ".join(
        f"{format_date_for_display(b.date, 'short')} - {b.vendor_name}"
        for b in conflicts
    )


class BookingService:
    def __init__(
        self,
        session: AsyncSession,
        feed: Optional[LiveFeed] = None,
        soft_conflicts: bool = False,
    ):
        self.session = session
        self.repo = BookingRepository(session, feed)
        self.soft_conflicts = soft_conflicts

    async def list_bookings(self) -> List[Booking]:
        return await self.repo.get_all()

    async def get_by_id(self, booking_id: str) -> Optional[Booking]:
        return await self.repo.get(booking_id)

    async def get_by_date(self, date_: datetime.date) -> List[Booking]:
        return await self.repo.get_by_date(date_)

    async def get_for_vendor(
        self, vendor_id: str, upcoming_from: Optional[datetime.date] = None
    ) -> List[Booking]:
        bookings = await self.repo.get_by_vendor(vendor_id)
        if upcoming_from:
            bookings = [b for b in bookings if b.date >= upcoming_from]
        return bookings

    async def get_month_counts(self, year: int, month: int) -> Dict[datetime.date, int]:
        start, end = get_month_range(datetime.date(year, month, 1))
        return count_by_day(b.date for b in await self.repo.get_between(start, end))

    async def preview_conflicts(
        self,
        date_: Any,
        market_id: Optional[str],
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """Быстрая проверка для подсказки в диалоге, до записи"""
        if not market_id:
            return []
        existing = await self.repo.get_by_market(market_id)
        return find_conflicts(existing, market_id, date_, exclude_booking_id)

    def new_draft(self, vendor: Vendor) -> BookingDraft:
        return BookingDraft(vendor_id=vendor.id)

    async def edit_draft(self, vendor: Vendor, booking_id: str) -> BookingDraft:
        booking = await self._require_own(vendor, booking_id)
        return BookingDraft(
            vendor_id=vendor.id,
            booking_id=booking.id,
            date=booking.date,
            market_id=booking.market_id,
            remark=booking.remark,
        )

    async def create(
        self,
        vendor: Vendor,
        date_: Any,
        market_id: Optional[str],
        remark: Optional[str] = None,
    ) -> BookingDraft:
        draft = self.new_draft(vendor).fill(date_, market_id, remark)
        return await self.save(draft, vendor)

    async def update(
        self,
        vendor: Vendor,
        booking_id: str,
        date_: Any,
        market_id: Optional[str],
        remark: Optional[str] = None,
    ) -> BookingDraft:
        draft = BookingDraft(vendor_id=vendor.id, booking_id=booking_id)
        draft.fill(date_, market_id, remark)
        return await self.save(draft, vendor)

    async def save(self, draft: BookingDraft, vendor: Vendor) -> BookingDraft:
        """
        Проверяет и записывает черновик. При ошибке черновик переходит в
        FAILED с текстом ошибки, а исключение пробрасывается вызывающему.
        Автоматических повторов нет.
        """
        try:
            self._validate(draft, vendor)
            draft.status = BookingStatus.SAVING
            draft.result = await self._write(draft, vendor)
        except (ValidationError, ConflictError, PermissionDeniedError, StoreWriteError) as e:
            draft.status = BookingStatus.FAILED
            draft.error = str(e)
            raise

        draft.status = BookingStatus.SAVED
        logger.info(
            "Бронирование %s %s: рынок=%s, дата=%s, продавец=%s",
            draft.result.id,
            "изменено" if draft.is_edit else "создано",
            draft.result.market_name,
            draft.result.date,
            vendor.id,
        )
        return draft

    async def request_delete(self, vendor: Vendor, booking_id: str) -> PendingDeletion:
        booking = await self._require_own(vendor, booking_id)
        return PendingDeletion(
            booking_id=booking.id,
            vendor_id=vendor.id,
            date=booking.date.isoformat(),
            market_name=booking.market_name,
        )

    async def confirm_delete(self, vendor: Vendor, pending: PendingDeletion) -> None:
        if pending.vendor_id != vendor.id:
            raise PermissionDeniedError("Запрос на удаление принадлежит другому продавцу")
        booking = await self._require_own(vendor, pending.booking_id)
        await self.repo.delete(booking)
        logger.info("Бронирование %s удалено продавцом %s", booking.id, vendor.id)

    async def record_sales(self, vendor: Vendor, booking_id: str, quantity: int) -> Booking:
        if quantity is None or quantity < 0:
            raise ValidationError("Количество продаж не может быть отрицательным")
        booking = await self._require_own(vendor, booking_id)
        booking = await self.repo.update(booking, sales_quantity=int(quantity))
        logger.info("Продажи по бронированию %s: %s", booking.id, quantity)
        return booking

    def _validate(self, draft: BookingDraft, vendor: Vendor) -> None:
        if draft.vendor_id != vendor.id:
            raise PermissionDeniedError("Черновик принадлежит другому продавцу")
        if not draft.market_id:
            raise ValidationError("Пожалуйста, выберите рынок")
        if not draft.date:
            raise ValidationError("Пожалуйста, выберите дату")
        if draft.remark:
            draft.remark = sanitize_input(draft.remark).strip()[:MAX_REMARK_LENGTH] or None

    async def _write(self, draft: BookingDraft, vendor: Vendor) -> Booking:
        booking = None
        if draft.is_edit:
            booking = await self._require_own(vendor, draft.booking_id)

        market = await self.repo.lock_market(draft.market_id)
        if market is None:
            await self._release_lock()
            raise ValidationError("Выбранный рынок не найден")

        existing = await self.repo.get_by_market(market.id)
        conflicts = find_conflicts(existing, market.id, draft.date, draft.booking_id)
        if conflicts:
            if not self.soft_conflicts:
                message = (
                    "Ошибка: на этом рынке уже есть бронирование в пределах недели "
                    f"({describe_conflicts(conflicts)})"
                )
                await self._release_lock()
                raise ConflictError(message, conflicts)
            logger.warning(
                "Бронирование рынка %s на %s пересекается: %s",
                market.id,
                draft.date,
                describe_conflicts(conflicts),
            )
            draft.warnings = conflicts

        snapshot = BookingSnapshot.capture(market, vendor)
        fields = dict(
            date=draft.date,
            market_id=market.id,
            remark=draft.remark,
            **snapshot.as_dict(),
        )
        if booking is not None:
            return await self.repo.update(booking, **fields)
        return await self.repo.add(vendor_id=vendor.id, sales_quantity=0, **fields)

    async def _require_own(self, vendor: Vendor, booking_id: str) -> Booking:
        booking = await self.repo.get(booking_id)
        if booking is None:
            raise ValidationError("Бронирование не найдено")
        # администратор чужие записи тоже не правит
        if booking.vendor_id != vendor.id:
            raise PermissionDeniedError("Можно изменять только свои бронирования")
        return booking

    async def _release_lock(self) -> None:
        # пустой commit снимает блокировку рынка и не сбрасывает загруженные объекты
        await self.session.commit()
