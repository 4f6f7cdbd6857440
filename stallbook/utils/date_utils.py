import calendar
import datetime
from typing import Dict, Iterable, List, Optional, Tuple


MONTH_NAMES = {
    1: "января",
    2: "февраля",
    3: "марта",
    4: "апреля",
    5: "мая",
    6: "июня",
    7: "июля",
    8: "августа",
    9: "сентября",
    10: "октября",
    11: "ноября",
    12: "декабря",
}

MONTH_NAMES_NOMINATIVE = {
    1: "январь",
    2: "февраль",
    3: "март",
    4: "апрель",
    5: "май",
    6: "июнь",
    7: "июль",
    8: "август",
    9: "сентябрь",
    10: "октябрь",
    11: "ноябрь",
    12: "декабрь",
}

WEEKDAY_HEADER = ["Пн", "Вт", "Ср", "Чт", "Пт", "Сб", "Вс"]


def get_month_range(date_obj: datetime.date) -> Tuple[datetime.date, datetime.date]:
    """
    Возвращает первый и последний день месяца.

    Args:
        date_obj: Дата, для которой нужно определить диапазон месяца

    Returns:
        Tuple[datetime.date, datetime.date]: Кортеж из первого и последнего дня месяца
    """
    first_day = datetime.date(date_obj.year, date_obj.month, 1)
    _, last_day_of_month = calendar.monthrange(date_obj.year, date_obj.month)
    last_day = datetime.date(date_obj.year, date_obj.month, last_day_of_month)

    return first_day, last_day


def month_grid(year: int, month: int) -> List[List[Optional[int]]]:
    """Недели месяца (понедельник первым днем), пустые клетки - None"""
    weeks = calendar.Calendar(firstweekday=0).monthdayscalendar(year, month)
    return [[day or None for day in week] for week in weeks]


def render_month(
    year: int, month: int, counts: Dict[datetime.date, int]
) -> str:
    """
    Текстовый календарь месяца: рядом с днем, на который есть
    бронирования, выводится их число.
    """
    lines = [f"{MONTH_NAMES_NOMINATIVE[month].capitalize()} {year}", " ".join(
        f"{name:>4}" for name in WEEKDAY_HEADER
    )]
    for week in month_grid(year, month):
        cells = []
        for day in week:
            if day is None:
                cells.append("    ")
                continue
            count = counts.get(datetime.date(year, month, day), 0)
            cells.append(f"{day:>2}" + (f"·{count}" if count else "  "))
        lines.append(" ".join(cells))
    return "\n".join(lines)


def count_by_day(dates: Iterable[datetime.date]) -> Dict[datetime.date, int]:
    counts: Dict[datetime.date, int] = {}
    for day in dates:
        counts[day] = counts.get(day, 0) + 1
    return counts


def format_date_for_display(date_obj: datetime.date, format_type: str = "full") -> str:
    """
    Форматирует дату для отображения в разных форматах.

    Args:
        date_obj: Дата для форматирования
        format_type: Тип формата ('full', 'short', 'iso', 'day_month', 'month_year')

    Returns:
        str: Отформатированная дата
    """
    if format_type == "full":
        return f"{date_obj.day} {MONTH_NAMES[date_obj.month]} {date_obj.year}"
    elif format_type == "short":
        return date_obj.strftime("%d.%m.%Y")
    elif format_type == "iso":
        return date_obj.isoformat()
    elif format_type == "day_month":
        return f"{date_obj.day} {MONTH_NAMES[date_obj.month]}"
    elif format_type == "month_year":
        return f"{MONTH_NAMES_NOMINATIVE[date_obj.month]} {date_obj.year}"
    else:
        raise ValueError(f"Unknown format type: {format_type}")


def validate_date_format(date_str: str) -> datetime.date:
    """
    Валидирует и преобразует строку даты в объект datetime.date.
    Поддерживает форматы: DD.MM.YYYY, DD/MM/YYYY, YYYY-MM-DD

    Args:
        date_str: Строка с датой

    Returns:
        datetime.date: Объект даты

    Raises:
        ValueError: Если дата имеет неправильный формат
    """
    formats = ["%d.%m.%Y", "%d/%m/%Y", "%Y-%m-%d"]

    for fmt in formats:
        try:
            return datetime.datetime.strptime((date_str or "").strip(), fmt).date()
        except ValueError:
            continue

    raise ValueError(
        f"Неверный формат даты: {date_str}. Поддерживаемые форматы: DD.MM.YYYY, DD/MM/YYYY, YYYY-MM-DD"
    )


def parse_period(text: str) -> Tuple[datetime.date, datetime.date]:
    """
    Разбирает период из двух дат через пробел или дефис с пробелами,
    например "01.03.2024 31.03.2024". Одна дата - однодневный период.
    """
    parts = [p for p in (text or "").replace(" - ", " ").split() if p]
    if not parts or len(parts) > 2:
        raise ValueError("Укажите одну или две даты")
    start = validate_date_format(parts[0])
    end = validate_date_format(parts[-1])
    if start > end:
        raise ValueError("Дата начала периода позже даты окончания")
    return start, end
