from aiogram import F, Router, types
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from stallbook.core.config import Settings
from stallbook.core.database import get_session
from stallbook.core.exceptions import (
    ImportInterruptedError,
    PermissionDeniedError,
    StallbookError,
    StoreWriteError,
    ValidationError,
)
from stallbook.core.feed import LiveFeed
from stallbook.core.states import (
    AnnouncementStates,
    CreateMarketStates,
    CreateVendorStates,
    DeleteMarketStates,
    DeleteVendorStates,
    EditMarketStates,
    ImportStates,
    ResetPasswordStates,
)
from stallbook.services.announcement_service import AnnouncementService
from stallbook.services.csv_service import CsvService, export_filename
from stallbook.services.market_service import MarketService
from stallbook.services.sales_service import SalesService
from stallbook.services.vendor_service import VendorService
from stallbook.utils.date_utils import format_date_for_display, parse_period
from stallbook.utils.menu import (
    YES_TEXT,
    choice_keyboard,
    confirm_keyboard,
    get_main_keyboard,
    market_label,
    unique_labels,
)
from stallbook.utils.permissions import require_admin, reset_dialog
from stallbook.utils.validators import validate_vendor_id
import logging

router = Router()
logger = logging.getLogger(__name__)

ROLE_VENDOR_TEXT = "Продавец"
ROLE_ADMIN_TEXT = "Администратор"
FIELD_CITY_TEXT = "Город"
FIELD_NAME_TEXT = "Название"

# в ответ на импорт выводится не больше стольких строк ошибок
MAX_REPORTED_ROWS = 20


def _vendor_label(vendor) -> str:
    return f"{vendor.id} - {vendor.name}"


async def _selected_id(message: types.Message, state: FSMContext):
    data = await state.get_data()
    return data.get("choices", {}).get((message.text or "").strip())


async def _done(message: types.Message, state: FSMContext, text: str):
    await reset_dialog(state)
    await message.answer(text, reply_markup=get_main_keyboard("admin"))


# ---------- продавцы ----------


@router.message(Command("vendors"))
async def cmd_list_vendors(message: types.Message, state: FSMContext):
    """Просмотр списка продавцов"""
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return
        vendors = await VendorService(session).list_vendors()

    if not vendors:
        await message.answer("В системе пока нет продавцов.")
        return

    result = "📋 <b>Продавцы:</b>\n\n"
    for vendor in vendors:
        flags = []
        if vendor.is_admin:
            flags.append("админ")
        if not vendor.has_password:
            flags.append("без пароля")
        if vendor.chat_id:
            flags.append("в Telegram")
        suffix = f" ({', '.join(flags)})" if flags else ""
        result += f"• <code>{vendor.id}</code> {vendor.name}{suffix}\n"

    await message.answer(result, parse_mode="HTML")


@router.message(Command("addvendor"))
async def cmd_add_vendor(message: types.Message, state: FSMContext):
    """Добавление нового продавца"""
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return

    await reset_dialog(state)
    await message.answer(
        "Введите код нового продавца (латиница, цифры, точка, дефис, подчеркивание):",
        reply_markup=choice_keyboard([]),
    )
    await state.set_state(CreateVendorStates.waiting_id)


@router.message(CreateVendorStates.waiting_id)
async def process_vendor_id(message: types.Message, state: FSMContext):
    try:
        vendor_id = validate_vendor_id(message.text)
    except ValidationError as e:
        await message.answer(f"❌ {e}. Введите другой код:")
        return

    async with get_session() as session:
        if await VendorService(session).get_by_id(vendor_id):
            await message.answer(
                f"⚠️ Продавец с кодом {vendor_id} уже существует. Введите другой код:"
            )
            return

    await state.update_data(new_vendor_id=vendor_id)
    await message.answer("Введите имя продавца:")
    await state.set_state(CreateVendorStates.waiting_name)


@router.message(CreateVendorStates.waiting_name)
async def process_vendor_name(message: types.Message, state: FSMContext):
    name = (message.text or "").strip()
    if not name:
        await message.answer("Имя не может быть пустым. Пожалуйста, введите имя:")
        return

    await state.update_data(new_vendor_name=name)
    await message.answer(
        "Выберите роль:",
        reply_markup=choice_keyboard([ROLE_VENDOR_TEXT, ROLE_ADMIN_TEXT]),
    )
    await state.set_state(CreateVendorStates.waiting_role)


@router.message(CreateVendorStates.waiting_role)
async def process_vendor_role(
    message: types.Message, state: FSMContext, feed: LiveFeed = None
):
    if message.text not in (ROLE_VENDOR_TEXT, ROLE_ADMIN_TEXT):
        await message.answer("Выберите роль кнопкой:")
        return

    data = await state.get_data()
    async with get_session() as session:
        try:
            vendor = await VendorService(session, feed).create_vendor(
                data["new_vendor_id"],
                data["new_vendor_name"],
                is_admin=message.text == ROLE_ADMIN_TEXT,
            )
        except (ValidationError, StoreWriteError) as e:
            await _done(message, state, f"❌ {e}")
            return

    await _done(
        message,
        state,
        f"✅ Продавец {vendor.name} добавлен. Код для входа: {vendor.id}. "
        "Пароль продавец задаст при первом входе.",
    )


@router.message(Command("delvendor"))
async def cmd_delete_vendor(message: types.Message, state: FSMContext, settings: Settings):
    async with get_session() as session:
        admin = await require_admin(message, state, session)
        if not admin:
            return
        vendors = await VendorService(session).list_vendors()

    protected = {settings.seed_admin_id.lower(), admin.id.lower()}
    candidates = [v for v in vendors if v.id.lower() not in protected]
    if not candidates:
        await message.answer("Нет продавцов, которых можно удалить.")
        return

    await reset_dialog(state)
    choices = unique_labels(candidates, _vendor_label)
    await state.update_data(choices=choices)
    await message.answer(
        "Выберите продавца для удаления:",
        reply_markup=choice_keyboard(choices.keys(), columns=1),
    )
    await state.set_state(DeleteVendorStates.waiting_vendor)


@router.message(DeleteVendorStates.waiting_vendor)
async def process_delete_vendor(message: types.Message, state: FSMContext):
    vendor_id = await _selected_id(message, state)
    if not vendor_id:
        await message.answer("Выберите продавца из списка:")
        return

    await state.update_data(target_vendor_id=vendor_id)
    await message.answer(
        f"Удалить продавца {message.text}? Его бронирования останутся в истории.",
        reply_markup=confirm_keyboard(),
    )
    await state.set_state(DeleteVendorStates.waiting_confirmation)


@router.message(DeleteVendorStates.waiting_confirmation)
async def process_delete_vendor_confirmation(
    message: types.Message, state: FSMContext, settings: Settings, feed: LiveFeed = None
):
    if message.text != YES_TEXT:
        await _done(message, state, "Удаление отменено.")
        return

    data = await state.get_data()
    async with get_session() as session:
        try:
            vendor = await VendorService(session, feed).delete_vendor(
                data["target_vendor_id"], settings.seed_admin_id
            )
        except (ValidationError, PermissionDeniedError, StoreWriteError) as e:
            await _done(message, state, f"❌ {e}")
            return

    await _done(message, state, f"✅ Продавец {vendor.name} удален.")


@router.message(Command("resetpassword"))
async def cmd_reset_password(message: types.Message, state: FSMContext):
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return
        vendors = await VendorService(session).list_vendors()

    candidates = [v for v in vendors if v.has_password]
    if not candidates:
        await message.answer("Ни у одного продавца не задан пароль.")
        return

    await reset_dialog(state)
    choices = unique_labels(candidates, _vendor_label)
    await state.update_data(choices=choices)
    await message.answer(
        "Чей пароль сбросить?", reply_markup=choice_keyboard(choices.keys(), columns=1)
    )
    await state.set_state(ResetPasswordStates.waiting_vendor)


@router.message(ResetPasswordStates.waiting_vendor)
async def process_reset_password(
    message: types.Message, state: FSMContext, feed: LiveFeed = None
):
    vendor_id = await _selected_id(message, state)
    if not vendor_id:
        await message.answer("Выберите продавца из списка:")
        return

    async with get_session() as session:
        try:
            vendor = await VendorService(session, feed).reset_password(vendor_id)
        except (ValidationError, StoreWriteError) as e:
            await _done(message, state, f"❌ {e}")
            return

    await _done(
        message,
        state,
        f"✅ Пароль продавца {vendor.name} сброшен. Новый пароль он задаст при входе.",
    )


# ---------- рынки ----------


@router.message(Command("markets"))
async def cmd_list_markets(message: types.Message, state: FSMContext):
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return
        grouped = await MarketService(session).grouped_by_city()

    if not grouped:
        await message.answer("В системе пока нет рынков. Добавить: /addmarket")
        return

    result = "🏪 <b>Рынки:</b>\n"
    for city, markets in grouped.items():
        result += f"\n<b>{city}</b>\n"
        result += "".join(f"• {m.name}\n" for m in markets)

    await message.answer(result, parse_mode="HTML")


@router.message(Command("addmarket"))
async def cmd_add_market(message: types.Message, state: FSMContext):
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return
        cities = await MarketService(session).get_cities()

    await reset_dialog(state)
    await message.answer(
        "Выберите город или введите новый:", reply_markup=choice_keyboard(cities)
    )
    await state.set_state(CreateMarketStates.waiting_city)


@router.message(CreateMarketStates.waiting_city)
async def process_market_city(message: types.Message, state: FSMContext):
    city = (message.text or "").strip()
    if not city:
        await message.answer("Город не может быть пустым. Пожалуйста, введите город:")
        return

    await state.update_data(city=city)
    await message.answer(
        f"Введите название рынка в городе {city}:", reply_markup=choice_keyboard([])
    )
    await state.set_state(CreateMarketStates.waiting_name)


@router.message(CreateMarketStates.waiting_name)
async def process_market_name(
    message: types.Message, state: FSMContext, feed: LiveFeed = None
):
    data = await state.get_data()
    async with get_session() as session:
        service = MarketService(session, feed)
        duplicate = await service.find_by_name((message.text or "").strip(), data["city"])
        try:
            market = await service.create_market(data["city"], message.text or "")
        except ValidationError as e:
            await message.answer(f"❌ {e}. Введите другое название:")
            return
        except StoreWriteError as e:
            await _done(message, state, f"❌ {e}")
            return

    text = f"✅ Рынок {market_label(market)} добавлен."
    if duplicate:
        text += "\n⚠️ В этом городе уже есть рынок с таким названием."
    await _done(message, state, text)


async def _ask_market(message, state, session, prompt, next_state) -> bool:
    markets = await MarketService(session).list_markets()
    if not markets:
        await message.answer("В системе пока нет рынков.")
        return False

    await reset_dialog(state)
    choices = unique_labels(markets, market_label)
    await state.update_data(choices=choices)
    await message.answer(prompt, reply_markup=choice_keyboard(choices.keys(), columns=1))
    await state.set_state(next_state)
    return True


@router.message(Command("editmarket"))
async def cmd_edit_market(message: types.Message, state: FSMContext):
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return
        await _ask_market(
            message, state, session, "Выберите рынок для изменения:",
            EditMarketStates.waiting_market,
        )


@router.message(EditMarketStates.waiting_market)
async def process_edit_market(message: types.Message, state: FSMContext):
    market_id = await _selected_id(message, state)
    if not market_id:
        await message.answer("Выберите рынок из списка:")
        return

    await state.update_data(market_id=market_id)
    await message.answer(
        "Что изменить?", reply_markup=choice_keyboard([FIELD_CITY_TEXT, FIELD_NAME_TEXT])
    )
    await state.set_state(EditMarketStates.waiting_field)


@router.message(EditMarketStates.waiting_field)
async def process_edit_market_field(message: types.Message, state: FSMContext):
    if message.text not in (FIELD_CITY_TEXT, FIELD_NAME_TEXT):
        await message.answer("Выберите поле кнопкой:")
        return

    await state.update_data(field="city" if message.text == FIELD_CITY_TEXT else "name")
    await message.answer("Введите новое значение:", reply_markup=choice_keyboard([]))
    await state.set_state(EditMarketStates.waiting_value)


@router.message(EditMarketStates.waiting_value)
async def process_edit_market_value(
    message: types.Message, state: FSMContext, feed: LiveFeed = None
):
    data = await state.get_data()
    async with get_session() as session:
        service = MarketService(session, feed)
        market = await service.get_by_id(data["market_id"])
        if market is None:
            await _done(message, state, "❌ Рынок не найден.")
            return
        try:
            market = await service.update_market(market, **{data["field"]: message.text or ""})
        except ValidationError as e:
            await message.answer(f"❌ {e}. Введите другое значение:")
            return
        except StoreWriteError as e:
            await _done(message, state, f"❌ {e}")
            return

    await _done(
        message,
        state,
        f"✅ Рынок изменен: {market_label(market)}. "
        "В существующих бронированиях остается прежнее название.",
    )


@router.message(Command("delmarket"))
async def cmd_delete_market(message: types.Message, state: FSMContext):
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return
        await _ask_market(
            message, state, session, "Выберите рынок для удаления:",
            DeleteMarketStates.waiting_market,
        )


@router.message(DeleteMarketStates.waiting_market)
async def process_delete_market(message: types.Message, state: FSMContext):
    market_id = await _selected_id(message, state)
    if not market_id:
        await message.answer("Выберите рынок из списка:")
        return

    await state.update_data(market_id=market_id)
    await message.answer(f"Удалить рынок {message.text}?", reply_markup=confirm_keyboard())
    await state.set_state(DeleteMarketStates.waiting_confirmation)


@router.message(DeleteMarketStates.waiting_confirmation)
async def process_delete_market_confirmation(
    message: types.Message, state: FSMContext, feed: LiveFeed = None
):
    if message.text != YES_TEXT:
        await _done(message, state, "Удаление отменено.")
        return

    data = await state.get_data()
    async with get_session() as session:
        service = MarketService(session, feed)
        market = await service.get_by_id(data["market_id"])
        if market is None:
            await _done(message, state, "❌ Рынок не найден.")
            return
        label = market_label(market)
        try:
            await service.delete_market(market)
        except (ValidationError, StoreWriteError) as e:
            await _done(message, state, f"❌ {e}")
            return

    await _done(message, state, f"✅ Рынок {label} удален.")


# ---------- объявления ----------


@router.message(Command("announce"))
async def cmd_announce(message: types.Message, state: FSMContext):
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return

    await reset_dialog(state)
    await message.answer(
        "Введите текст объявления для всех продавцов:", reply_markup=choice_keyboard([])
    )
    await state.set_state(AnnouncementStates.waiting_content)


@router.message(AnnouncementStates.waiting_content)
async def process_announcement(
    message: types.Message, state: FSMContext, feed: LiveFeed = None
):
    async with get_session() as session:
        try:
            announcement = await AnnouncementService(session, feed).post(message.text or "")
        except ValidationError as e:
            await message.answer(f"❌ {e}. Введите другой текст:")
            return
        except StoreWriteError as e:
            await _done(message, state, f"❌ {e}")
            return
        recipients = await VendorService(session).get_with_chat()

    sent = 0
    for vendor in recipients:
        if vendor.chat_id == message.chat.id:
            continue
        try:
            await message.bot.send_message(
                vendor.chat_id, f"📢 Объявление:\n{announcement.content}"
            )
            sent += 1
        except TelegramAPIError as e:
            logger.error("Не удалось отправить объявление продавцу %s: %s", vendor.id, e)

    await _done(
        message, state, f"✅ Объявление опубликовано и отправлено продавцам: {sent}."
    )


# ---------- выгрузка, загрузка, отчет ----------


@router.message(Command("export"))
async def cmd_export(message: types.Message, state: FSMContext, settings: Settings):
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return
        data = await CsvService(session).export_bookings()

    await message.answer_document(
        types.BufferedInputFile(data, filename=export_filename(settings.brand)),
        caption="Выгрузка всех бронирований",
    )


@router.message(Command("import"))
async def cmd_import(message: types.Message, state: FSMContext):
    async with get_session() as session:
        if not await require_admin(message, state, session):
            return

    await reset_dialog(state)
    await message.answer(
        "Отправьте CSV-файл с колонками date, marketCity, marketName, vendorId.",
        reply_markup=choice_keyboard([]),
    )
    await state.set_state(ImportStates.waiting_file)


@router.message(ImportStates.waiting_file, F.document)
async def process_import_file(
    message: types.Message, state: FSMContext, feed: LiveFeed = None
):
    buffer = await message.bot.download(message.document)

    async with get_session() as session:
        try:
            result = await CsvService(session, feed).import_bookings(buffer.read())
        except ImportInterruptedError as e:
            await _done(
                message,
                state,
                f"❌ Импорт прерван: {e}\n"
                f"Уже загружено бронирований: {len(e.result.imported)}",
            )
            return
        except StallbookError as e:
            await _done(message, state, f"❌ {e}")
            return

    lines = [
        f"✅ Загружено бронирований: {len(result.imported)}",
        f"Пропущено дубликатов: {result.skipped}",
    ]
    if result.errors:
        lines.append(f"\n❌ Ошибки ({len(result.errors)}):")
        lines.extend(result.errors[:MAX_REPORTED_ROWS])
    if result.warnings:
        lines.append(f"\n⚠️ Пересечения ({len(result.warnings)}):")
        lines.extend(result.warnings[:MAX_REPORTED_ROWS])

    logger.info(
        "Импорт CSV: загружено %d, пропущено %d, ошибок %d",
        len(result.imported),
        result.skipped,
        len(result.errors),
    )
    await _done(message, state, "\n".join(lines))


@router.message(ImportStates.waiting_file)
async def process_import_not_file(message: types.Message, state: FSMContext):
    await message.answer("Пожалуйста, отправьте CSV-файл документом.")


@router.message(Command("report"))
async def cmd_report(message: types.Message, state: FSMContext, command: CommandObject = None):
    """Отчет о продажах в Excel: /report [ДД.ММ.ГГГГ ДД.ММ.ГГГГ]"""
    start = end = None
    if command and command.args:
        try:
            start, end = parse_period(command.args)
        except ValueError as e:
            await message.answer(f"❌ {e}")
            return

    async with get_session() as session:
        if not await require_admin(message, state, session):
            return

        msg = await message.answer("Генерируется отчет, подождите...")
        excel_bytes, charts = await SalesService(session).export_report(start, end)

    period = ""
    if start and end:
        period = (
            f" с {format_date_for_display(start, 'short')}"
            f" по {format_date_for_display(end, 'short')}"
        )

    await message.answer_document(
        types.BufferedInputFile(excel_bytes, filename="sales_report.xlsx"),
        caption=f"Отчет о продажах{period}",
    )

    for i, (market, png) in enumerate(charts.items(), 1):
        await message.answer_photo(
            types.BufferedInputFile(png, filename=f"sales_chart_{i}.png"),
            caption=f"📊 {market}",
        )

    await msg.delete()
