from aiogram import F, Router, types
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from stallbook.core.database import get_session
from stallbook.core.exceptions import AuthError, ValidationError
from stallbook.core.feed import LiveFeed
from stallbook.core.states import AuthStates, ChangePasswordStates, ProfileStates
from stallbook.models.vendor import Vendor
from stallbook.services.announcement_service import AnnouncementService
from stallbook.services.vendor_service import VendorService
from stallbook.utils.date_utils import format_date_for_display
from stallbook.utils.menu import (
    CANCEL_TEXT,
    choice_keyboard,
    get_main_keyboard,
    get_menu_text,
    role_of,
)
from stallbook.utils.permissions import require_vendor, reset_dialog
import logging

router = Router()
logger = logging.getLogger(__name__)


async def _announcement_text(session) -> str:
    latest = await AnnouncementService(session).get_latest()
    if not latest:
        return ""
    posted = format_date_for_display(latest.created_at.date(), "short")
    return f"\n📢 <b>Объявление от {posted}</b>\n{latest.content}"


async def _finish_login(
    message: types.Message, state: FSMContext, vendor: Vendor, session, feed
):
    vendor = await VendorService(session, feed).update_chat_id(vendor, message.chat.id)
    role = role_of(vendor)

    await state.set_state(None)
    await state.set_data({"vendor_id": vendor.id, "role": role})
    logger.info("Продавец авторизован: %s (%s)", vendor.id, role)

    await message.answer(
        f"✅ Вы вошли как {vendor.name} ({vendor.id}).",
        reply_markup=get_main_keyboard(role),
    )
    await message.answer(
        get_menu_text(role) + await _announcement_text(session), parse_mode="HTML"
    )

    if not vendor.has_password:
        await message.answer(
            "У вашей учетной записи еще нет пароля. Придумайте пароль "
            "(не короче 4 символов):",
            reply_markup=choice_keyboard([], cancel=True),
        )
        await state.set_state(AuthStates.waiting_new_password)


@router.message(F.text == CANCEL_TEXT)
async def cancel_dialog(message: types.Message, state: FSMContext):
    """Отмена любого диалога"""
    data = await state.get_data()
    await reset_dialog(state)
    await message.answer("Действие отменено.", reply_markup=get_main_keyboard(data.get("role")))


@router.message(Command("start"))
async def cmd_start(message: types.Message, state: FSMContext, feed: LiveFeed = None):
    data = await state.get_data()

    if data.get("vendor_id"):
        async with get_session() as session:
            vendor = await VendorService(session).get_by_id(data["vendor_id"])
            if vendor:
                await reset_dialog(state)
                await _finish_login(message, state, vendor, session, feed)
                return

    await state.clear()
    await message.answer(
        "Здравствуйте! Введите ваш код продавца для входа:",
        reply_markup=types.ReplyKeyboardRemove(),
    )
    await state.set_state(AuthStates.waiting_vendor_id)


@router.message(Command("logout"))
async def cmd_logout(message: types.Message, state: FSMContext):
    data = await state.get_data()
    await state.clear()
    if data.get("vendor_id"):
        logger.info("Продавец %s вышел", data["vendor_id"])
    await message.answer(
        "Вы вышли из системы. Для входа отправьте /start.",
        reply_markup=get_main_keyboard(None),
    )


@router.message(Command("help"))
async def cmd_help(message: types.Message, state: FSMContext):

    data = await state.get_data()
    role = data.get("role")

    async with get_session() as session:
        announcement = await _announcement_text(session) if role else ""

    await message.answer(
        get_menu_text(role) + announcement,
        parse_mode="HTML",
        reply_markup=get_main_keyboard(role),
    )


@router.message(AuthStates.waiting_vendor_id)
async def process_vendor_id(message: types.Message, state: FSMContext, feed: LiveFeed = None):
    vendor_id = (message.text or "").strip()

    async with get_session() as session:
        vendor = await VendorService(session).get_by_id(vendor_id)

        if not vendor:
            await message.answer(
                "❌ Продавец с таким кодом не найден, проверьте код и попробуйте еще раз:"
            )
            return

        if vendor.has_password:
            await state.update_data(pending_vendor_id=vendor.id)
            await message.answer("Введите пароль:")
            await state.set_state(AuthStates.waiting_password)
            return

        await _finish_login(message, state, vendor, session, feed)


@router.message(AuthStates.waiting_password)
async def process_password(message: types.Message, state: FSMContext, feed: LiveFeed = None):
    data = await state.get_data()

    async with get_session() as session:
        try:
            vendor = await VendorService(session).authenticate(
                data.get("pending_vendor_id"), message.text
            )
        except AuthError as e:
            await message.answer(f"❌ {e}. Попробуйте еще раз или отправьте /start:")
            return

        await _finish_login(message, state, vendor, session, feed)


@router.message(AuthStates.waiting_new_password)
@router.message(ChangePasswordStates.waiting_new_password)
async def process_new_password(message: types.Message, state: FSMContext, feed: LiveFeed = None):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return

        try:
            await VendorService(session, feed).set_password(vendor, message.text or "")
        except ValidationError as e:
            await message.answer(f"❌ {e}. Введите другой пароль:")
            return

    await reset_dialog(state)
    await message.answer(
        "✅ Пароль сохранен.", reply_markup=get_main_keyboard(role_of(vendor))
    )


@router.message(Command("password"))
async def cmd_password(message: types.Message, state: FSMContext):
    """Смена пароля вошедшим продавцом"""
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return

    await reset_dialog(state)
    if vendor.has_password:
        await message.answer(
            "Введите текущий пароль:", reply_markup=choice_keyboard([], cancel=True)
        )
        await state.set_state(ChangePasswordStates.waiting_old_password)
    else:
        await message.answer(
            "Придумайте пароль (не короче 4 символов):",
            reply_markup=choice_keyboard([], cancel=True),
        )
        await state.set_state(ChangePasswordStates.waiting_new_password)


@router.message(ChangePasswordStates.waiting_old_password)
async def process_old_password(message: types.Message, state: FSMContext):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return

        try:
            await VendorService(session).authenticate(vendor.id, message.text)
        except AuthError:
            await message.answer("❌ Текущий пароль указан неверно. Попробуйте еще раз:")
            return

    await message.answer("Введите новый пароль (не короче 4 символов):")
    await state.set_state(ChangePasswordStates.waiting_new_password)


@router.message(Command("profile"))
async def cmd_profile(message: types.Message, state: FSMContext):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return

    await reset_dialog(state)
    await message.answer(
        f"Текущее имя: {vendor.name}\nВведите новое отображаемое имя:",
        reply_markup=choice_keyboard([], cancel=True),
    )
    await state.set_state(ProfileStates.waiting_name)


@router.message(ProfileStates.waiting_name)
async def process_profile_name(message: types.Message, state: FSMContext, feed: LiveFeed = None):
    async with get_session() as session:
        vendor = await require_vendor(message, state, session)
        if not vendor:
            return

        try:
            vendor = await VendorService(session, feed).rename(vendor, message.text or "")
        except ValidationError as e:
            await message.answer(f"❌ {e}. Введите другое имя:")
            return

    await reset_dialog(state)
    await message.answer(
        f"✅ Имя изменено на {vendor.name}. Уже созданные бронирования "
        "сохраняют прежнее имя.",
        reply_markup=get_main_keyboard(role_of(vendor)),
    )
