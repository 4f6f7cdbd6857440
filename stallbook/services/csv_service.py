import io
import logging
import datetime
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from stallbook.core.exceptions import ImportInterruptedError, StallbookError, StoreWriteError
from stallbook.core.feed import LiveFeed
from stallbook.models.booking import Booking
from stallbook.repositories.booking_repository import BookingRepository
from stallbook.repositories.market_repository import MarketRepository
from stallbook.repositories.vendor_repository import VendorRepository
from stallbook.services.conflict import find_conflicts
from stallbook.utils.validators import validate_date_format, validate_sales_quantity

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["date", "marketCity", "marketName", "vendorId", "vendorName"]
REQUIRED_IMPORT_COLUMNS = ["date", "marketName", "vendorId"]
UNKNOWN_VENDOR_NAME = "неизвестно"


def export_filename(brand: str, today: Optional[datetime.date] = None) -> str:
    today = today or datetime.date.today()
    return f"{brand}_{today.isoformat()}.csv"


@dataclass
class ImportResult:
    imported: List[Booking] = field(default_factory=list)
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class CsvService:
    """
    Выгрузка бронирований в CSV и загрузка из CSV.
    """

    def __init__(self, session: AsyncSession, feed: Optional[LiveFeed] = None):
        self.session = session
        self.booking_repo = BookingRepository(session, feed)
        self.market_repo = MarketRepository(session, feed)
        self.vendor_repo = VendorRepository(session)

    async def export_bookings(self) -> bytes:
        """
        CSV в UTF-8 с BOM и переводами строк CRLF, отсортированный по дате.
        Имя продавца берется из текущего списка, иначе из снимка.
        """
        vendor_names: Dict[str, str] = {
            v.id: v.name for v in await self.vendor_repo.get_all()
        }
        bookings = sorted(await self.booking_repo.get_all(), key=lambda b: b.date)

        rows = [
            {
                "date": b.date.isoformat(),
                "marketCity": b.market_city,
                "marketName": b.market_name,
                "vendorId": b.vendor_id,
                "vendorName": vendor_names.get(b.vendor_id)
                or b.vendor_name
                or UNKNOWN_VENDOR_NAME,
            }
            for b in bookings
        ]
        df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
        text = df.to_csv(index=False, lineterminator="\r\n")
        logger.info("Выгружено бронирований в CSV: %d", len(rows))
        return ("\ufeff" + text).encode("utf-8")

    async def import_bookings(self, data: bytes) -> ImportResult:
        """
        Загружает бронирования из CSV.

        Обязательные колонки: date, marketName, vendorId. Строка, для которой
        уже есть бронирование с той же тройкой (date, vendorId, marketName),
        пропускается. Неизвестные рынки создаются (нужна колонка marketCity),
        неизвестные продавцы попадают в список ошибок. Окно в 7 дней при
        загрузке не блокирует запись, пересечения возвращаются как
        предупреждения.
        """
        try:
            df = pd.read_csv(
                io.BytesIO(data),
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
            )
        except Exception as e:
            raise StallbookError(f"Не удалось прочитать CSV-файл: {e}") from e

        df.columns = [str(c).strip() for c in df.columns]
        missing = [c for c in REQUIRED_IMPORT_COLUMNS if c not in df.columns]
        if missing:
            raise StallbookError(
                f"В файле нет обязательных колонок: {', '.join(missing)}"
            )

        result = ImportResult()
        known = list(await self.booking_repo.get_all())

        for idx, row in enumerate(df.to_dict(orient="records"), start=2):
            try:
                booking = await self._import_row(row, known, result)
            except ValueError as e:
                result.errors.append(f"Строка {idx}: {e}")
                continue
            except StoreWriteError as e:
                logger.error(
                    "Импорт CSV прерван на строке %d, уже загружено %d: %s",
                    idx,
                    len(result.imported),
                    e,
                )
                raise ImportInterruptedError(f"Строка {idx}: {e}", result) from e
            if booking is None:
                result.skipped += 1
                continue
            known.append(booking)
            result.imported.append(booking)

        logger.info(
            "Импорт CSV: загружено %d, пропущено %d, ошибок %d",
            len(result.imported),
            result.skipped,
            len(result.errors),
        )
        return result

    async def _import_row(
        self, row: Dict[str, str], known: List[Booking], result: ImportResult
    ) -> Optional[Booking]:
        date_ = validate_date_format(row.get("date", ""))
        market_name = (row.get("marketName") or "").strip()
        market_city = (row.get("marketCity") or "").strip()
        vendor_id = (row.get("vendorId") or "").strip()
        if not market_name:
            raise ValueError("не указано название рынка")

        vendor = await self.vendor_repo.get_by_id_ci(vendor_id)
        if vendor is None:
            raise ValueError(f"продавец {vendor_id or '-'} не найден")

        duplicates = await self.booking_repo.query_once(
            date=date_, vendor_id=vendor.id, market_name=market_name
        )
        if duplicates:
            return None

        market = await self.market_repo.find_by_name(market_name, market_city or None)
        if market is None:
            if not market_city:
                raise ValueError(f"рынок {market_name} не найден, а город не указан")
            market = await self.market_repo.add(city=market_city, name=market_name)
            logger.info("При импорте создан рынок %s %s", market_city, market_name)

        overlaps = find_conflicts(known, market.id, date_)
        if overlaps:
            result.warnings.append(
                f"{date_.isoformat()} {market_name}: пересечение с "
                + ", ".join(b.date.isoformat() for b in overlaps)
            )

        sales_raw = (row.get("salesQuantity") or "").strip()
        return await self.booking_repo.add(
            date=date_,
            market_id=market.id,
            market_name=market_name,
            market_city=market_city or market.city,
            vendor_id=vendor.id,
            vendor_name=(row.get("vendorName") or "").strip() or vendor.name,
            remark=(row.get("remark") or "").strip() or None,
            sales_quantity=validate_sales_quantity(sales_raw) if sales_raw else 0,
        )
