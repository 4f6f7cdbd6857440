from typing import Optional

from aiogram import types
from aiogram.fsm.context import FSMContext
from sqlalchemy.ext.asyncio import AsyncSession

from stallbook.models.vendor import Vendor
from stallbook.services.vendor_service import VendorService

NOT_AUTHORIZED_TEXT = "Сначала авторизуйтесь: отправьте /start и введите код продавца."
NOT_ADMIN_TEXT = "У вас нет прав администратора для выполнения этой команды."

# ключи FSM, которые переживают завершение любого диалога
SESSION_KEYS = ("vendor_id", "role")


async def reset_dialog(state: FSMContext) -> None:
    """Завершает текущий диалог, сохраняя данные входа"""
    data = await state.get_data()
    await state.set_state(None)
    await state.set_data({key: data[key] for key in SESSION_KEYS if key in data})


async def get_current_vendor(
    session: AsyncSession, state: FSMContext
) -> Optional[Vendor]:
    data = await state.get_data()
    vendor_id = data.get("vendor_id")
    if not vendor_id:
        return None
    return await VendorService(session).get_by_id(vendor_id)


async def require_vendor(
    message: types.Message, state: FSMContext, session: AsyncSession
) -> Optional[Vendor]:
    """
    Возвращает вошедшего продавца или отвечает подсказкой и возвращает None.
    Если продавца удалили после входа, данные входа сбрасываются.
    """
    vendor = await get_current_vendor(session, state)
    if vendor is None:
        await state.clear()
        await message.answer(NOT_AUTHORIZED_TEXT)
    return vendor


async def require_admin(
    message: types.Message, state: FSMContext, session: AsyncSession
) -> Optional[Vendor]:
    vendor = await require_vendor(message, state, session)
    if vendor is None:
        return None
    if not vendor.is_admin:
        await message.answer(NOT_ADMIN_TEXT)
        return None
    return vendor
