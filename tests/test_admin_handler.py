import io
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import CommandObject

from stallbook.core.exceptions import ImportInterruptedError
from stallbook.core.states import CreateVendorStates, DeleteVendorStates, ImportStates
from stallbook.handlers.admin_handler import (
    FIELD_NAME_TEXT,
    ROLE_ADMIN_TEXT,
    cmd_add_market,
    cmd_add_vendor,
    cmd_announce,
    cmd_delete_market,
    cmd_delete_vendor,
    cmd_edit_market,
    cmd_export,
    cmd_import,
    cmd_list_markets,
    cmd_list_vendors,
    cmd_report,
    cmd_reset_password,
    process_announcement,
    process_delete_market,
    process_delete_market_confirmation,
    process_delete_vendor,
    process_delete_vendor_confirmation,
    process_edit_market,
    process_edit_market_field,
    process_edit_market_value,
    process_import_file,
    process_import_not_file,
    process_market_city,
    process_market_name,
    process_reset_password,
    process_vendor_id,
    process_vendor_name,
    process_vendor_role,
)
from stallbook.services.announcement_service import AnnouncementService
from stallbook.services.booking_service import BookingService
from stallbook.services.csv_service import ImportResult
from stallbook.services.market_service import MarketService
from stallbook.services.vendor_service import VendorService
from stallbook.utils.menu import NO_TEXT, YES_TEXT
from stallbook.utils.permissions import NOT_ADMIN_TEXT


@pytest_asyncio.fixture
async def admin_state(state, vendors, markets):
    await state.set_data({"vendor_id": "sd", "role": "admin"})
    return state


async def _send(handler, create_message, state, text, **kwargs):
    message = create_message(text)
    await handler(message, state, **kwargs)
    return message


@pytest.mark.asyncio
async def test_vendor_cannot_use_admin_commands(
    session_patch, vendors, create_message, state, settings, answers
):
    await state.set_data({"vendor_id": "vendor-a", "role": "vendor"})

    for handler, kwargs in [
        (cmd_list_vendors, {}),
        (cmd_add_market, {}),
        (cmd_export, {"settings": settings}),
    ]:
        message = create_message("/admin")
        await handler(message, state, **kwargs)
        assert answers(message) == NOT_ADMIN_TEXT
        message.answer_document.assert_not_awaited()


@pytest.mark.asyncio
async def test_add_vendor_flow(session_patch, admin_state, create_message, answers):
    await cmd_add_vendor(create_message("/addvendor"), admin_state)
    assert await admin_state.get_state() == CreateVendorStates.waiting_id.state

    taken = await _send(process_vendor_id, create_message, admin_state, "VENDOR-A")
    assert "уже существует" in answers(taken)

    bad = await _send(process_vendor_id, create_message, admin_state, "новый")
    assert "❌" in answers(bad)

    await _send(process_vendor_id, create_message, admin_state, "vendor-c")
    await _send(process_vendor_name, create_message, admin_state, "Продавец C")
    done = await _send(process_vendor_role, create_message, admin_state, ROLE_ADMIN_TEXT)

    assert "Продавец C добавлен" in answers(done)
    assert await admin_state.get_data() == {"vendor_id": "sd", "role": "admin"}
    created = await VendorService(session_patch).get_by_id("vendor-c")
    assert created.is_admin
    assert not created.has_password

    listing = await _send(cmd_list_vendors, create_message, admin_state, "/vendors")
    assert "<code>vendor-c</code> Продавец C (админ, без пароля)" in answers(listing)


@pytest.mark.asyncio
async def test_delete_vendor_keeps_seed_admin(
    session_patch, admin_state, create_message, settings
):
    await cmd_delete_vendor(create_message("/delvendor"), admin_state, settings)
    choices = (await admin_state.get_data())["choices"]
    assert set(choices.values()) == {"vendor-a", "vendor-b"}

    await _send(process_delete_vendor, create_message, admin_state, "vendor-b - Продавец B")
    assert await admin_state.get_state() == DeleteVendorStates.waiting_confirmation.state

    await _send(
        process_delete_vendor_confirmation, create_message, admin_state, YES_TEXT,
        settings=settings,
    )
    assert await VendorService(session_patch).get_by_id("vendor-b") is None
    assert await VendorService(session_patch).get_by_id("sd") is not None


@pytest.mark.asyncio
async def test_reset_password(session_patch, admin_state, vendors, create_message, answers):
    service = VendorService(session_patch)
    empty = await _send(cmd_reset_password, create_message, admin_state, "/resetpassword")
    assert "Ни у одного" in answers(empty)

    await service.set_password(vendors["a"], "secret")
    await cmd_reset_password(create_message("/resetpassword"), admin_state)
    done = await _send(
        process_reset_password, create_message, admin_state, "vendor-a - Продавец A"
    )

    assert "сброшен" in answers(done)
    assert not (await service.get_by_id("vendor-a")).has_password


@pytest.mark.asyncio
async def test_add_and_edit_market(session_patch, admin_state, create_message, answers):
    await cmd_add_market(create_message("/addmarket"), admin_state)
    await _send(process_market_city, create_message, admin_state, "Тайбэй")
    duplicate = await _send(process_market_name, create_message, admin_state, "Рынок Раохэ")
    assert "уже есть рынок с таким названием" in answers(duplicate)

    await cmd_add_market(create_message("/addmarket"), admin_state)
    await _send(process_market_city, create_message, admin_state, "Гаосюн")
    await _send(process_market_name, create_message, admin_state, "Рынок Лючжун")
    assert "Гаосюн" in await MarketService(session_patch).get_cities()

    listing = await _send(cmd_list_markets, create_message, admin_state, "/markets")
    assert "<b>Гаосюн</b>" in answers(listing)

    await cmd_edit_market(create_message("/editmarket"), admin_state)
    await _send(process_edit_market, create_message, admin_state, "Тайчжун Рынок Фэнцзя")
    await _send(process_edit_market_field, create_message, admin_state, FIELD_NAME_TEXT)
    done = await _send(process_edit_market_value, create_message, admin_state, "Фэнцзя Ночной")

    assert "Тайчжун Фэнцзя Ночной" in answers(done)
    assert (await MarketService(session_patch).get_by_id("m3")).name == "Фэнцзя Ночной"


@pytest.mark.asyncio
async def test_delete_market_refused_while_booked(
    session_patch, admin_state, vendors, create_message, answers
):
    await BookingService(session_patch).create(vendors["a"], "2030-03-10", "m1")

    await cmd_delete_market(create_message("/delmarket"), admin_state)
    await _send(process_delete_market, create_message, admin_state, "Тайбэй Ночной рынок Шилинь")
    refused = await _send(
        process_delete_market_confirmation, create_message, admin_state, YES_TEXT
    )
    assert "удаление невозможно" in answers(refused)
    assert await MarketService(session_patch).get_by_id("m1") is not None

    await cmd_delete_market(create_message("/delmarket"), admin_state)
    await _send(process_delete_market, create_message, admin_state, "Тайбэй Рынок Раохэ")
    kept = await _send(process_delete_market_confirmation, create_message, admin_state, NO_TEXT)
    assert "отменено" in answers(kept)

    await cmd_delete_market(create_message("/delmarket"), admin_state)
    await _send(process_delete_market, create_message, admin_state, "Тайбэй Рынок Раохэ")
    await _send(process_delete_market_confirmation, create_message, admin_state, YES_TEXT)
    assert await MarketService(session_patch).get_by_id("m2") is None


@pytest.mark.asyncio
async def test_announcement_is_stored_and_broadcast(
    session_patch, admin_state, vendors, create_message, answers
):
    service = VendorService(session_patch)
    await service.update_chat_id(vendors["admin"], 123456789)
    await service.update_chat_id(vendors["a"], 111)
    await service.update_chat_id(vendors["b"], 222)

    await cmd_announce(create_message("/announce"), admin_state)

    message = create_message("Ярмарка в субботу")
    message.bot = MagicMock()

    async def send_message(chat_id, text):
        if chat_id == 222:
            raise TelegramAPIError(method=MagicMock(), message="bot was blocked")

    message.bot.send_message = AsyncMock(side_effect=send_message)
    await process_announcement(message, admin_state)

    assert "отправлено продавцам: 1" in answers(message)
    sent_to = [call.args[0] for call in message.bot.send_message.await_args_list]
    assert sorted(sent_to) == [111, 222]
    latest = await AnnouncementService(session_patch).get_latest()
    assert latest.content == "Ярмарка в субботу"


@pytest.mark.asyncio
async def test_export_sends_csv(
    session_patch, admin_state, vendors, create_message, settings
):
    await BookingService(session_patch).create(vendors["a"], "2030-03-10", "m1")

    message = create_message("/export")
    await cmd_export(message, admin_state, settings)

    document = message.answer_document.await_args.args[0]
    assert document.filename.startswith("stallbook_")
    assert document.filename.endswith(".csv")
    assert "Ночной рынок Шилинь" in document.data.decode("utf-8-sig")


@pytest.mark.asyncio
async def test_import_from_document(session_patch, admin_state, create_message, answers):
    await cmd_import(create_message("/import"), admin_state)
    assert await admin_state.get_state() == ImportStates.waiting_file.state

    text_only = await _send(process_import_not_file, create_message, admin_state, "файл")
    assert "CSV-файл" in answers(text_only)

    csv_data = (
        "date,marketCity,marketName,vendorId\n"
        "2030-03-10,Тайбэй,Рынок Раохэ,vendor-a\n"
        "2030-03-11,Гаосюн,Рынок Лючжун,VENDOR-B\n"
        "потом,Тайбэй,Рынок Раохэ,vendor-a\n"
    ).encode("utf-8")

    message = create_message("")
    message.document = MagicMock()
    message.bot = MagicMock()
    message.bot.download = AsyncMock(return_value=io.BytesIO(csv_data))
    await process_import_file(message, admin_state)

    text = answers(message)
    assert "Загружено бронирований: 2" in text
    assert "Строка 4" in text
    assert await admin_state.get_state() is None
    assert len(await BookingService(session_patch).list_bookings()) == 2


@pytest.mark.asyncio
async def test_report_sends_excel_and_charts(
    session_patch, admin_state, vendors, create_message, answers
):
    service = BookingService(session_patch)
    booking = (await service.create(vendors["a"], "2030-03-10", "m1")).result
    await service.record_sales(vendors["a"], booking.id, 25)

    message = create_message("/report")
    await cmd_report(
        message, admin_state, command=CommandObject(command="report", args="01.03.2030 31.03.2030")
    )

    document = message.answer_document.await_args.args[0]
    assert document.filename == "sales_report.xlsx"
    assert "01.03.2030" in message.answer_document.await_args.kwargs["caption"]
    message.answer_photo.assert_awaited()
    message.answer.return_value.delete.assert_awaited_once()

    wrong = create_message("/report")
    await cmd_report(wrong, admin_state, command=CommandObject(command="report", args="x"))
    assert "❌" in answers(wrong)
    wrong.answer_document.assert_not_awaited()


@pytest.mark.asyncio
async def test_interrupted_import_reports_saved_rows(
    session_patch, admin_state, create_message, answers
):
    await cmd_import(create_message("/import"), admin_state)
    partial = ImportResult(imported=[MagicMock(), MagicMock()])

    message = create_message("")
    message.document = MagicMock()
    message.bot = MagicMock()
    message.bot.download = AsyncMock(return_value=io.BytesIO(b"date,marketName,vendorId\n"))
    with patch(
        "stallbook.handlers.admin_handler.CsvService.import_bookings",
        AsyncMock(side_effect=ImportInterruptedError("Строка 4: нет связи", partial)),
    ):
        await process_import_file(message, admin_state)

    text = answers(message)
    assert "Импорт прерван" in text
    assert "Уже загружено бронирований: 2" in text
    assert await admin_state.get_state() is None
