"""
Правило конфликта бронирований.

Один рынок не может быть занят разными продавцами в пределах 7 дней:
бронирование конфликтует с кандидатом, если модуль разницы дат строго
меньше 7 суток. Даты сравниваются как календарные, без часовых поясов,
поэтому ровно 7 дней - уже не конфликт.

Единственный источник этого правила: им пользуются создание, изменение,
импорт и предупреждения в диалоге бронирования.
"""

import datetime
from typing import Any, Iterable, List, Optional, Union

CONFLICT_WINDOW = datetime.timedelta(days=7)
CONFLICT_WINDOW_MS = 7 * 24 * 60 * 60 * 1000

DateLike = Union[datetime.date, str]


def to_date(value: DateLike) -> datetime.date:
    """Приводит YYYY-MM-DD или date/datetime к календарной дате"""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(str(value).strip())


def record_field(record: Any, *names: str) -> Any:
    for name in names:
        if isinstance(record, dict):
            if name in record:
                return record[name]
        elif hasattr(record, name):
            return getattr(record, name)
    return None


def day_distance_ms(first: DateLike, second: DateLike) -> int:
    """Разница между календарными датами в миллисекундах"""
    delta = to_date(first) - to_date(second)
    return abs(delta.days) * 24 * 60 * 60 * 1000


def find_conflicts(
    all_bookings: Iterable[Any],
    candidate_market_id: Optional[str],
    candidate_date: DateLike,
    exclude_booking_id: Optional[str] = None,
) -> List[Any]:
    """Возвращает бронирования того же рынка ближе 7 дней к кандидату"""
    if not candidate_market_id:
        return []

    target = to_date(candidate_date)
    conflicts = []
    for booking in all_bookings:
        booking_id = record_field(booking, "id")
        if exclude_booking_id is not None and booking_id == exclude_booking_id:
            continue
        if record_field(booking, "market_id", "marketId") != candidate_market_id:
            continue
        if day_distance_ms(target, record_field(booking, "date")) < CONFLICT_WINDOW_MS:
            conflicts.append(booking)
    return conflicts


def has_conflict(
    all_bookings: Iterable[Any],
    candidate_market_id: Optional[str],
    candidate_date: DateLike,
    exclude_booking_id: Optional[str] = None,
) -> bool:
    return bool(
        find_conflicts(
            all_bookings, candidate_market_id, candidate_date, exclude_booking_id
        )
    )
