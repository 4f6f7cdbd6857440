import io
import logging
import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from stallbook.core.exceptions import ValidationError
from stallbook.repositories.booking_repository import BookingRepository
from stallbook.services.conflict import DateLike, to_date, record_field

logger = logging.getLogger(__name__)


def sum_sales(
    bookings: Iterable[Any],
    vendor_id: str,
    start_date: DateLike,
    end_date: DateLike,
) -> int:
    """
    Сумма продаж продавца за период [start_date, end_date] включительно.
    Отсутствующее количество считается нулем.
    """
    start, end = to_date(start_date), to_date(end_date)
    total = 0
    for booking in bookings:
        if record_field(booking, "vendor_id", "vendorId") != vendor_id:
            continue
        if not start <= to_date(record_field(booking, "date")) <= end:
            continue
        total += int(record_field(booking, "sales_quantity", "salesQuantity") or 0)
    return total


class SalesService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = BookingRepository(session)

    async def get_vendor_total(
        self, vendor_id: str, start_date: datetime.date, end_date: datetime.date
    ) -> int:
        if start_date > end_date:
            raise ValidationError("Дата начала периода позже даты окончания")
        bookings = await self.repo.get_by_vendor(vendor_id)
        return sum_sales(bookings, vendor_id, start_date, end_date)

    async def _get_sales_for_report(
        self,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> List[Dict[str, Any]]:
        if start_date and end_date:
            bookings = await self.repo.get_between(start_date, end_date)
        else:
            bookings = await self.repo.get_all()

        return [
            {
                "date": b.date,
                "market": f"{b.market_city} {b.market_name}",
                "vendor_id": b.vendor_id,
                "vendor_name": b.vendor_name,
                "sales": b.sales_quantity or 0,
            }
            for b in bookings
        ]

    async def export_report(
        self,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> Tuple[bytes, Dict[str, bytes]]:
        """
        Экспортирует отчет о продажах в формате Excel и строит графики.

        Returns:
            Tuple[bytes, Dict[str, bytes]]: байты файла Excel и словарь
            PNG-графиков по рынкам
        """
        data = await self._get_sales_for_report(start_date, end_date)
        df = pd.DataFrame(
            data, columns=["date", "market", "vendor_id", "vendor_name", "sales"]
        )

        if not df.empty:
            df["date"] = pd.to_datetime(df["date"])
            df = df.sort_values(["market", "date"])

        excel_buffer = io.BytesIO()
        with pd.ExcelWriter(excel_buffer, engine="openpyxl") as writer:
            details = df.copy()
            details.columns = ["Дата", "Рынок", "Код продавца", "Продавец", "Продажи"]
            details.to_excel(writer, sheet_name="Details", index=False)

            if df.empty:
                summary = pd.DataFrame(
                    columns=["Рынок", "Выходов", "Продажи", "Продажи за выход"]
                )
            else:
                summary = (
                    df.groupby("market")
                    .agg(visits=("sales", "size"), sales=("sales", "sum"))
                    .reset_index()
                )
                summary["per_visit"] = (summary["sales"] / summary["visits"]).round(1)
                summary.columns = ["Рынок", "Выходов", "Продажи", "Продажи за выход"]
            summary.to_excel(writer, sheet_name="Summary", index=False)

        excel_buffer.seek(0)
        excel_bytes = excel_buffer.getvalue()

        image_dict = {}
        if not df.empty:
            try:
                import matplotlib

                matplotlib.use("Agg")
                import matplotlib.pyplot as plt

                for market_name in df["market"].unique():
                    market_data = df[df["market"] == market_name]

                    plt.figure(figsize=(10, 6))
                    plt.plot(
                        market_data["date"],
                        market_data["sales"],
                        marker="o",
                        linestyle="-",
                    )
                    plt.xlabel("Дата", fontsize=14)
                    plt.ylabel("Продажи", fontsize=14)
                    plt.title(f'Продажи на рынке "{market_name}"', fontsize=16)
                    plt.grid(True)
                    plt.tight_layout()

                    img_buffer = io.BytesIO()
                    plt.savefig(img_buffer, format="png")
                    img_buffer.seek(0)
                    image_dict[market_name] = img_buffer.getvalue()
                    plt.close()
            except Exception as e:
                logger.error(f"Error generating charts: {e}")

        return excel_bytes, image_dict
