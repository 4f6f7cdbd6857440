from aiogram import F, Router, types
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from stallbook.core.config import Settings
from stallbook.core.database import get_session
from stallbook.core.exceptions import (
    ConflictError,
    ExternalServiceError,
    PermissionDeniedError,
    StoreWriteError,
    ValidationError,
)
from stallbook.core.feed import LiveFeed
from stallbook.core.states import (
    BookingStates,
    DeleteBookingStates,
    PromoStates,
    SalesStates,
)
from stallbook.services.ai_service import TextGenerationService
from stallbook.services.board import BookingBoard
from stallbook.services.booking_service import (
    BookingService,
    PendingDeletion,
    describe_conflicts,
)
from stallbook.services.market_service import MarketService
from stallbook.services.recommendation import BEST_MATCH, POPULAR, UNDER_EXPLORED
from stallbook.services.sales_service import SalesService
from stallbook.services.weather_service import WeatherService
from stallbook.utils.date_utils import (
    format_date_for_display,
    get_month_range,
    parse_period,
    render_month,
)
from stallbook.utils.menu import (
    NEW_MARKET_TEXT,
    NO_TEXT,
    SKIP_TEXT,
    YES_TEXT,
    booking_label,
    choice_keyboard,
    confirm_keyboard,
    get_main_keyboard,
    unique_labels,
    upcoming_dates,
)
from stallbook.utils.permissions import require_vendor, reset_dialog
from stallbook.utils.validators import validate_date_format, validate_sales_quantity
import datetime
import logging

router = Router()
logger = logging.getLogger(__name__)

REASON_TITLES = {
    BEST_MATCH: "⭐ Ваш любимый рынок",
    UNDER_EXPLORED: "🧭 Вы здесь бывали редко",
    POPULAR: "🔥 Популярный рынок",
}

# сколько последних бронирований предлагать для ввода продаж
SALES_CHOICES_LIMIT = 10


def _today() -> datetime.date:
    return datetime.date.today()


def _booking_line(booking, with_vendor: bool = True) -> str:
    line = (
        f"• {format_date_for_display(booking.date, 'short')} "
        f"{booking.market_city} {booking.market_name}"
    )
    if with_vendor:
        line += f" - {booking.vendor_name}"
    if booking.remark:
        line += f" ({booking.remark})"
    return line


async def _selected_id(message: types.Message, state: FSMContext):
    data = await state.get_data()
    return data.get("choices", {}).get((message.text or "").strip())


async def _ask_booking(message, state, bookings, prompt, next_state):
    if not bookings:
        await message.answer("У вас нет подходящих бронирований.")
        await reset_dialog(state)
        return
    choices = unique_labels(bookings, booking_label)
    await state.update_data(choices=choices)
    await message.answer(prompt, reply_markup=choice_keyboard(choices.keys(), columns=1))
    await state.set_state(next_state)


# ---------- создание и изменение ----------


async def _ask_date(message: types.Message, state: FSMContext, current=None):
    dates = upcoming_dates(_today())
    if current and current not in dates:
        dates.insert(0, current)
    await message.answer(
        "Выберите дату или введите ее в формате ДД.ММ.ГГГГ:",
        reply_markup=choice_keyboard(dates, columns=2),
    )
    await state.set_state(BookingStates.waiting_date)


async def _ask_city(message: types.Message, state: FSMContext):
    async with get_session() as session:
        cities = await MarketService(session).get_cities()
    await message.answer(
        "Выберите город:",
        reply_markup=choice_keyboard(cities + [NEW_MARKET_TEXT]),
    )
    await state.set_state(BookingStates.waiting_city)


async def _after_market(message, state, settings: Settings, market_id: str):
    """Рынок выбран: предупреждаем о конфликтах и спрашиваем примечание"""
    data = await state.get_data()
    async with get_session() as session:
        conflicts = await BookingService(session).preview_conflicts(
            data["date"], market_id, data.get("booking_id")
        )

    if conflicts and not settings.soft_conflicts:
        await message.answer(
            "⚠️ На этом рынке уже есть бронирование в пределах недели: "
            f"{describe_conflicts(conflicts)}.\nВыберите другой рынок:"
        )
        return

    await state.update_data(market_id=market_id)
    if conflicts:
        await message.answer(
            "⚠️ Внимание: рядом по датам уже есть бронирование "
            f"({describe_conflicts(conflicts)}). Запись все равно будет сохранена."
        )

    hint = f"\nТекущее: {data['remark']}" if data.get("remark") else ""
    await message.answer(
        f"Добавьте примечание или нажмите «{SKIP_TEXT}»:{hint}",
        reply_markup=choice_keyboard([SKIP_TEXT]),
    )
    await state.set_state(BookingStates.waiting_remark)


@router.message(Command("book"))
async def cmd_book(message: types.Message, state: FSMContext):
    """Новое бронирование"""
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return

    await reset_dialog(state)
    await _ask_date(message, state)


@router.message(Command("edit"))
async def cmd_edit(message: types.Message, state: FSMContext):
    """Изменение своего бронирования"""
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        bookings = await BookingService(session).get_for_vendor(vendor.id, _today())

    await reset_dialog(state)
    await _ask_booking(
        message, state, bookings, "Выберите бронирование для изменения:",
        BookingStates.waiting_booking,
    )


@router.message(BookingStates.waiting_booking)
async def process_edit_booking(message: types.Message, state: FSMContext):
    booking_id = await _selected_id(message, state)
    if not booking_id:
        await message.answer("Выберите бронирование из списка:")
        return

    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        try:
            draft = await BookingService(session).edit_draft(vendor, booking_id)
        except (ValidationError, PermissionDeniedError) as e:
            await message.answer(f"❌ {e}")
            await reset_dialog(state)
            return

    current = draft.date.strftime("%d.%m.%Y")
    await state.update_data(booking_id=draft.booking_id, remark=draft.remark)
    await message.answer(f"Текущая дата: {current}")
    await _ask_date(message, state, current)


@router.message(BookingStates.waiting_date)
async def process_date(message: types.Message, state: FSMContext):
    try:
        date_ = validate_date_format(message.text)
    except ValidationError as e:
        await message.answer(f"❌ {e}")
        return

    await state.update_data(date=date_.isoformat())
    await _ask_city(message, state)


@router.message(BookingStates.waiting_city, F.text == NEW_MARKET_TEXT)
async def process_new_market_request(message: types.Message, state: FSMContext):
    async with get_session() as session:
        cities = await MarketService(session).get_cities()
    await message.answer(
        "Выберите город нового рынка или введите название города:",
        reply_markup=choice_keyboard(cities),
    )
    await state.set_state(BookingStates.waiting_new_market_city)


@router.message(BookingStates.waiting_city)
async def process_city(message: types.Message, state: FSMContext):
    city = (message.text or "").strip()
    async with get_session() as session:
        markets = await MarketService(session).get_by_city(city)

    if not markets:
        await message.answer("Город не найден. Выберите город из списка:")
        return

    choices = unique_labels(markets, lambda m: m.name)
    await state.update_data(city=city, choices=choices)
    await message.answer(
        f"Рынки города {city}:",
        reply_markup=choice_keyboard(list(choices.keys()) + [NEW_MARKET_TEXT]),
    )
    await state.set_state(BookingStates.waiting_market)


@router.message(BookingStates.waiting_market, F.text == NEW_MARKET_TEXT)
async def process_new_market_in_city(message: types.Message, state: FSMContext):
    data = await state.get_data()
    await message.answer(
        f"Введите название нового рынка в городе {data.get('city')}:",
        reply_markup=choice_keyboard([]),
    )
    await state.set_state(BookingStates.waiting_new_market_name)


@router.message(BookingStates.waiting_market)
async def process_market(message: types.Message, state: FSMContext, settings: Settings):
    market_id = await _selected_id(message, state)
    if not market_id:
        await message.answer("Выберите рынок из списка:")
        return
    await _after_market(message, state, settings, market_id)


@router.message(BookingStates.waiting_new_market_city)
async def process_new_market_city(message: types.Message, state: FSMContext):
    city = (message.text or "").strip()
    if not city:
        await message.answer("Введите название города:")
        return
    await state.update_data(city=city)
    await message.answer(
        f"Введите название нового рынка в городе {city}:",
        reply_markup=choice_keyboard([]),
    )
    await state.set_state(BookingStates.waiting_new_market_name)


@router.message(BookingStates.waiting_new_market_name)
async def process_new_market_name(
    message: types.Message, state: FSMContext, settings: Settings, feed: LiveFeed = None
):
    data = await state.get_data()
    async with get_session() as session:
        try:
            market = await MarketService(session, feed).create_market(
                data.get("city", ""), message.text or ""
            )
        except (ValidationError, StoreWriteError) as e:
            await message.answer(f"❌ {e}. Введите другое название:")
            return

    await message.answer(f"✅ Рынок {market.city} {market.name} добавлен.")
    await _after_market(message, state, settings, market.id)


@router.message(BookingStates.waiting_remark)
async def process_remark(
    message: types.Message, state: FSMContext, settings: Settings, feed: LiveFeed = None
):
    data = await state.get_data()
    text = (message.text or "").strip()
    remark = data.get("remark") if text == SKIP_TEXT else text

    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return

        service = BookingService(session, feed, soft_conflicts=settings.soft_conflicts)
        try:
            if data.get("booking_id"):
                draft = await service.update(
                    vendor, data["booking_id"], data["date"], data["market_id"], remark
                )
            else:
                draft = await service.create(
                    vendor, data["date"], data["market_id"], remark
                )
        except ConflictError as e:
            logger.info("Бронирование отклонено из-за конфликта: %s", e)
            await message.answer(f"❌ {e}")
            await reset_dialog(state)
            return
        except (ValidationError, PermissionDeniedError, StoreWriteError) as e:
            await message.answer(f"❌ Не удалось сохранить бронирование: {e}")
            await reset_dialog(state)
            return

    booking = draft.result
    text = (
        f"✅ Бронирование {'изменено' if draft.is_edit else 'сохранено'}:\n"
        f"{_booking_line(booking, with_vendor=False)}"
    )
    if draft.warnings:
        text += f"\n⚠️ Пересечение с: {describe_conflicts(draft.warnings)}"

    await reset_dialog(state)
    await message.answer(text, reply_markup=get_main_keyboard(data.get("role")))


# ---------- удаление ----------


@router.message(Command("delete"))
async def cmd_delete(message: types.Message, state: FSMContext):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        bookings = await BookingService(session).get_for_vendor(vendor.id)

    await reset_dialog(state)
    await _ask_booking(
        message, state, bookings, "Выберите бронирование для удаления:",
        DeleteBookingStates.waiting_booking,
    )


@router.message(DeleteBookingStates.waiting_booking)
async def process_delete_booking(message: types.Message, state: FSMContext):
    booking_id = await _selected_id(message, state)
    if not booking_id:
        await message.answer("Выберите бронирование из списка:")
        return

    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        try:
            pending = await BookingService(session).request_delete(vendor, booking_id)
        except (ValidationError, PermissionDeniedError) as e:
            await message.answer(f"❌ {e}")
            await reset_dialog(state)
            return

    await state.update_data(pending_delete=pending.as_dict())
    await message.answer(
        f"Удалить бронирование {format_date_for_display(datetime.date.fromisoformat(pending.date), 'short')} "
        f"{pending.market_name}?",
        reply_markup=confirm_keyboard(),
    )
    await state.set_state(DeleteBookingStates.waiting_confirmation)


@router.message(DeleteBookingStates.waiting_confirmation)
async def process_delete_confirmation(
    message: types.Message, state: FSMContext, feed: LiveFeed = None
):
    data = await state.get_data()
    role = data.get("role")

    if message.text != YES_TEXT:
        await reset_dialog(state)
        text = "Удаление отменено." if message.text == NO_TEXT else "Удаление отменено: ответ не распознан."
        await message.answer(text, reply_markup=get_main_keyboard(role))
        return

    pending = PendingDeletion.from_dict(data["pending_delete"])
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        try:
            await BookingService(session, feed).confirm_delete(vendor, pending)
        except (ValidationError, PermissionDeniedError, StoreWriteError) as e:
            await message.answer(f"❌ {e}")
            await reset_dialog(state)
            return

    await reset_dialog(state)
    await message.answer("✅ Бронирование удалено.", reply_markup=get_main_keyboard(role))


# ---------- просмотр ----------


@router.message(Command("mybookings"))
async def cmd_my_bookings(message: types.Message, state: FSMContext):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        bookings = await BookingService(session).get_for_vendor(vendor.id, _today())

    if not bookings:
        await message.answer("У вас нет предстоящих бронирований. Забронировать: /book")
        return

    lines = ["📅 <b>Ваши ближайшие бронирования:</b>"]
    lines.extend(_booking_line(b, with_vendor=False) for b in bookings)
    await message.answer("\n".join(lines), parse_mode="HTML")


@router.message(Command("day"))
async def cmd_day(
    message: types.Message,
    state: FSMContext,
    settings: Settings,
    command: CommandObject = None,
):
    """Бронирования на дату (по умолчанию сегодня) с прогнозом погоды"""
    try:
        date_ = validate_date_format(command.args) if command and command.args else _today()
    except ValidationError as e:
        await message.answer(f"❌ {e}")
        return

    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        bookings = await BookingService(session).get_by_date(date_)

    title = f"📅 <b>{format_date_for_display(date_)}</b>"
    if not bookings:
        await message.answer(f"{title}\nБронирований нет.", parse_mode="HTML")
        return

    weather = WeatherService(settings.app_id, settings.timezone)
    lines = [title]
    forecasts = {}
    for booking in bookings:
        if booking.market_city not in forecasts:
            forecasts[booking.market_city] = await weather.get_forecast(
                booking.market_city, date_
            )
        line = _booking_line(booking)
        forecast = forecasts[booking.market_city]
        if forecast:
            line += f"\n   {forecast.describe()}"
        lines.append(line)

    await message.answer("\n".join(lines), parse_mode="HTML")


@router.message(Command("calendar"))
async def cmd_calendar(
    message: types.Message, state: FSMContext, command: CommandObject = None
):
    """Календарь месяца с числом бронирований по дням: /calendar [ММ.ГГГГ]"""
    today = _today()
    year, month = today.year, today.month
    if command and command.args:
        try:
            month_str, year_str = command.args.strip().split(".")
            year, month = int(year_str), int(month_str)
            datetime.date(year, month, 1)
        except ValueError:
            await message.answer("❌ Укажите месяц в формате ММ.ГГГГ, например /calendar 03.2025")
            return

    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        counts = await BookingService(session).get_month_counts(year, month)

    await message.answer(
        f"<pre>{render_month(year, month, counts)}</pre>\n"
        "Бронирования на день: /day ДД.ММ.ГГГГ",
        parse_mode="HTML",
    )


@router.message(Command("suggest"))
async def cmd_suggest(message: types.Message, state: FSMContext, board: BookingBoard):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return

    suggestions = board.suggestions(vendor.id, _today())
    if not suggestions:
        await message.answer("Сейчас нет рынков, на которых давно никто не стоял.")
        return

    lines = ["💡 <b>Рекомендуемые рынки:</b>"]
    for item in suggestions:
        last = (
            format_date_for_display(item.last_booked, "short")
            if item.last_booked
            else "еще не было"
        )
        lines.append(
            f"{REASON_TITLES[item.reason]}: {item.market.city} {item.market.name}\n"
            f"   бронирований: {item.count}, последнее: {last}"
        )
    lines.append("\nAI-анализ первого рынка: /analyze")
    await message.answer("\n".join(lines), parse_mode="HTML")


@router.message(Command("analyze"))
async def cmd_analyze(
    message: types.Message, state: FSMContext, settings: Settings, board: BookingBoard
):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return

    suggestions = board.suggestions(vendor.id, _today())
    if not suggestions:
        await message.answer("Нет рекомендованных рынков для анализа.")
        return

    top = suggestions[0]
    msg = await message.answer("Готовлю анализ, подождите...")
    ai = TextGenerationService(settings.gemini_api_key, settings.gemini_model)
    try:
        text = await ai.market_analysis(top, settings.brand)
    except ExternalServiceError as e:
        await msg.delete()
        await message.answer(f"❌ {e}")
        return

    await msg.delete()
    await message.answer(f"🤖 {top.market.city} {top.market.name}\n\n{text}")


@router.message(Command("promo"))
async def cmd_promo(message: types.Message, state: FSMContext):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        bookings = await BookingService(session).get_for_vendor(vendor.id, _today())

    await reset_dialog(state)
    await _ask_booking(
        message, state, bookings, "Для какого выхода подготовить текст?",
        PromoStates.waiting_booking,
    )


@router.message(PromoStates.waiting_booking)
async def process_promo_booking(message: types.Message, state: FSMContext, settings: Settings):
    booking_id = await _selected_id(message, state)
    if not booking_id:
        await message.answer("Выберите бронирование из списка:")
        return

    data = await state.get_data()
    async with get_session() as session:
        booking = await BookingService(session).get_by_id(booking_id)

    await reset_dialog(state)
    if booking is None:
        await message.answer("❌ Бронирование не найдено.")
        return

    ai = TextGenerationService(settings.gemini_api_key, settings.gemini_model)
    try:
        text = await ai.promo_text(booking, settings.brand)
    except ExternalServiceError as e:
        await message.answer(f"❌ {e}", reply_markup=get_main_keyboard(data.get("role")))
        return

    await message.answer(text, reply_markup=get_main_keyboard(data.get("role")))


# ---------- продажи ----------


@router.message(Command("setsales"))
async def cmd_set_sales(message: types.Message, state: FSMContext):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        bookings = await BookingService(session).get_for_vendor(vendor.id)

    today = _today()
    recent = [b for b in bookings if b.date <= today][-SALES_CHOICES_LIMIT:]
    await reset_dialog(state)
    await _ask_booking(
        message, state, list(reversed(recent)), "По какому бронированию записать продажи?",
        SalesStates.waiting_booking,
    )


@router.message(SalesStates.waiting_booking)
async def process_sales_booking(message: types.Message, state: FSMContext):
    booking_id = await _selected_id(message, state)
    if not booking_id:
        await message.answer("Выберите бронирование из списка:")
        return

    await state.update_data(booking_id=booking_id)
    await message.answer(
        "Введите количество проданных товаров:", reply_markup=choice_keyboard([])
    )
    await state.set_state(SalesStates.waiting_quantity)


@router.message(SalesStates.waiting_quantity)
async def process_sales_quantity(
    message: types.Message, state: FSMContext, feed: LiveFeed = None
):
    try:
        quantity = validate_sales_quantity(message.text)
    except ValidationError as e:
        await message.answer(f"❌ {e}")
        return

    data = await state.get_data()
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        try:
            booking = await BookingService(session, feed).record_sales(
                vendor, data["booking_id"], quantity
            )
        except (ValidationError, PermissionDeniedError, StoreWriteError) as e:
            await message.answer(f"❌ {e}")
            await reset_dialog(state)
            return

    await reset_dialog(state)
    await message.answer(
        f"✅ Продажи записаны: {booking_label(booking)} - {booking.sales_quantity} шт.",
        reply_markup=get_main_keyboard(data.get("role")),
    )


@router.message(Command("sales"))
async def cmd_sales(message: types.Message, state: FSMContext, command: CommandObject = None):
    """Сумма продаж за период: /sales [ДД.ММ.ГГГГ ДД.ММ.ГГГГ], по умолчанию текущий месяц"""
    try:
        if command and command.args:
            start, end = parse_period(command.args)
        else:
            start, end = get_month_range(_today())
    except ValueError as e:
        await message.answer(f"❌ {e}")
        return

    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return
        total = await SalesService(session).get_vendor_total(vendor.id, start, end)

    await message.answer(
        f"📊 Продажи с {format_date_for_display(start, 'short')} "
        f"по {format_date_for_display(end, 'short')}: <b>{total}</b> шт.",
        parse_mode="HTML",
    )
