import datetime
from typing import Dict, Iterable, List, Optional

from aiogram import types
from aiogram.utils.keyboard import ReplyKeyboardBuilder

CANCEL_TEXT = "Отмена"
YES_TEXT = "Да, удалить"
NO_TEXT = "Нет"
NEW_MARKET_TEXT = "+ Новый рынок"
SKIP_TEXT = "Пропустить"

VENDOR_MENU_TEXT = """
🏪 <b>Меню продавца</b>

Доступные команды:
/book - Забронировать рынок на дату
/edit - Изменить свое бронирование
/delete - Удалить свое бронирование
/mybookings - Мои ближайшие бронирования
/day - Бронирования на дату
/calendar - Календарь месяца
/suggest - Рекомендованные рынки
/analyze - AI-анализ рекомендованного рынка
/promo - AI-текст для продвижения выхода
/setsales - Записать продажи по бронированию
/sales - Сумма продаж за период
/profile - Изменить отображаемое имя
/password - Сменить пароль
/logout - Выйти
/help - Показать это сообщение

Изменять и удалять можно только свои бронирования.
"""

ADMIN_MENU_TEXT = (
    VENDOR_MENU_TEXT.replace("Меню продавца", "Меню администратора").rstrip()
    + """

Администрирование:
/vendors - Список продавцов
/addvendor - Добавить продавца
/delvendor - Удалить продавца
/resetpassword - Сбросить пароль продавца
/markets - Список рынков
/addmarket - Добавить рынок
/editmarket - Изменить рынок
/delmarket - Удалить рынок
/announce - Опубликовать объявление
/export - Выгрузить бронирования в CSV
/import - Загрузить бронирования из CSV
/report - Отчет о продажах в Excel
"""
)

GUEST_MENU_TEXT = """
👋 <b>Меню гостя</b>

Для начала работы с ботом необходимо авторизоваться.
Доступные команды:
/start - Войти по коду продавца
/help - Показать это сообщение
"""


def get_main_keyboard(role: Optional[str] = None):
    """Создает клавиатуру в зависимости от роли пользователя"""
    builder = ReplyKeyboardBuilder()

    if role in ("admin", "vendor"):
        builder.row(
            types.KeyboardButton(text="/book"), types.KeyboardButton(text="/mybookings")
        )
        builder.row(
            types.KeyboardButton(text="/calendar"), types.KeyboardButton(text="/suggest")
        )
        builder.row(
            types.KeyboardButton(text="/setsales"), types.KeyboardButton(text="/sales")
        )
        if role == "admin":
            builder.row(
                types.KeyboardButton(text="/vendors"),
                types.KeyboardButton(text="/markets"),
            )
            builder.row(
                types.KeyboardButton(text="/export"), types.KeyboardButton(text="/report")
            )
        builder.row(types.KeyboardButton(text="/help"))
    else:
        builder.row(
            types.KeyboardButton(text="/start"), types.KeyboardButton(text="/help")
        )

    return builder.as_markup(resize_keyboard=True)


def get_menu_text(role: Optional[str] = None) -> str:
    """Возвращает текст меню в зависимости от роли пользователя"""
    if role == "admin":
        return ADMIN_MENU_TEXT
    elif role == "vendor":
        return VENDOR_MENU_TEXT
    else:
        return GUEST_MENU_TEXT


def choice_keyboard(labels: Iterable[str], columns: int = 2, cancel: bool = True):
    kb = ReplyKeyboardBuilder()
    for label in labels:
        kb.button(text=label)
    if cancel:
        kb.button(text=CANCEL_TEXT)
    kb.adjust(columns)
    return kb.as_markup(resize_keyboard=True)


def confirm_keyboard():
    return choice_keyboard([YES_TEXT, NO_TEXT], cancel=False)


def booking_label(booking) -> str:
    return f"{booking.date.strftime('%d.%m.%Y')} {booking.market_city} {booking.market_name}"


def market_label(market) -> str:
    return f"{market.city} {market.name}"


def unique_labels(items: Iterable, label_func) -> Dict[str, str]:
    """
    Подписи кнопок -> id записей. Совпадающие подписи (например, рынки-
    дубликаты) различаются номером в скобках.
    """
    choices: Dict[str, str] = {}
    for item in items:
        label = label_func(item)
        if label in choices:
            n = 2
            while f"{label} ({n})" in choices:
                n += 1
            label = f"{label} ({n})"
        choices[label] = item.id
    return choices


def role_of(vendor) -> str:
    return "admin" if vendor.is_admin else "vendor"


def upcoming_dates(today: datetime.date, days: int = 8) -> List[str]:
    return [(today + datetime.timedelta(days=i)).strftime("%d.%m.%Y") for i in range(days)]
