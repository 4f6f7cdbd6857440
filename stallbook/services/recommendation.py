"""
Рекомендации рынков, на которых давно никто не стоял.

Рынок подходит, если последнее бронирование на нем старше порога
давности (по умолчанию 2 недели) или бронирований не было вовсе. Среди
подходящих рынков предлагаются, без повторов и по порядку приоритета:

1. любимый рынок продавца - тот, где он стоял чаще всего;
2. недоисследованный рынок - где продавец уже стоял, но реже всего;
3. остальные места заполняются по общей популярности.

Результат не хранится: он пересчитывается при каждом чтении.
"""

import datetime
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from stallbook.services.conflict import to_date, record_field

BEST_MATCH = "best_match"
UNDER_EXPLORED = "under_explored"
POPULAR = "popular"


@dataclass
class MarketStats:
    market: Any
    count: int = 0
    vendor_count: int = 0
    last_booked: Optional[datetime.date] = None

    @property
    def market_id(self) -> str:
        return record_field(self.market, "id")


@dataclass
class Suggestion:
    market: Any
    reason: str
    count: int
    last_booked: Optional[datetime.date]

    @property
    def market_id(self) -> str:
        return record_field(self.market, "id")


def collect_stats(
    bookings: Iterable[Any], markets: Iterable[Any], vendor_id: Optional[str] = None
) -> Dict[str, MarketStats]:
    """Число бронирований и дата последнего бронирования по каждому рынку"""
    stats = {record_field(m, "id"): MarketStats(market=m) for m in markets}
    for booking in bookings:
        item = stats.get(record_field(booking, "market_id", "marketId"))
        if item is None:
            continue
        item.count += 1
        if vendor_id is not None and record_field(booking, "vendor_id", "vendorId") == vendor_id:
            item.vendor_count += 1
        booked = to_date(record_field(booking, "date"))
        if item.last_booked is None or booked > item.last_booked:
            item.last_booked = booked
    return stats


def _staleness(item: MarketStats) -> datetime.date:
    return item.last_booked or datetime.date.min


def recommend(
    bookings: Iterable[Any],
    markets: Iterable[Any],
    vendor_id: Optional[str],
    today: Optional[datetime.date] = None,
    limit: int = 3,
    threshold_days: int = 14,
) -> List[Suggestion]:
    markets = list(markets)
    if not markets or limit <= 0:
        return []

    today = today or datetime.date.today()
    cutoff = today - datetime.timedelta(days=threshold_days)

    stats = collect_stats(bookings, markets, vendor_id)
    eligible = [
        item
        for item in stats.values()
        if item.last_booked is None or item.last_booked < cutoff
    ]

    picked: List[Suggestion] = []
    seen = set()

    def take(item: MarketStats, reason: str) -> None:
        if item.market_id in seen or len(picked) >= limit:
            return
        seen.add(item.market_id)
        picked.append(
            Suggestion(
                market=item.market,
                reason=reason,
                count=item.count,
                last_booked=item.last_booked,
            )
        )

    used = [item for item in eligible if item.vendor_count > 0]
    if used:
        best = min(
            used, key=lambda item: (-item.vendor_count, _staleness(item), item.market_id)
        )
        take(best, BEST_MATCH)
        for item in sorted(
            used, key=lambda item: (item.vendor_count, _staleness(item), item.market_id)
        ):
            if item.market_id not in seen:
                take(item, UNDER_EXPLORED)
                break

    for item in sorted(
        eligible, key=lambda item: (-item.count, _staleness(item), item.market_id)
    ):
        take(item, POPULAR)

    return picked
