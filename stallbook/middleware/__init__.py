"""
Middleware для автоматического обновления chat_id продавца
"""

from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import Message
from aiogram.fsm.context import FSMContext
from sqlalchemy.exc import SQLAlchemyError
from stallbook.core.database import get_session
from stallbook.core.exceptions import StoreWriteError
from stallbook.services.vendor_service import VendorService
import logging

logger = logging.getLogger(__name__)


class UpdateChatIdMiddleware(BaseMiddleware):
    """
    Middleware для обновления chat_id вошедшего продавца при каждом сообщении,
    чтобы напоминания и объявления уходили в актуальный чат
    """

    async def __call__(
        self,
        handler: Callable[[Message, Dict[str, Any]], Awaitable[Any]],
        event: Message,
        data: Dict[str, Any],
    ) -> Any:

        state: FSMContext = data.get("state")
        if not state:
            return await handler(event, data)

        user_data = await state.get_data()
        vendor_id = user_data.get("vendor_id")

        if vendor_id:
            try:
                async with get_session() as session:
                    vendor_service = VendorService(session, data.get("feed"))
                    vendor = await vendor_service.get_by_id(vendor_id)

                    if vendor and vendor.chat_id != event.chat.id:
                        await vendor_service.update_chat_id(vendor, event.chat.id)
                        logger.info(f"Chat ID обновлен для продавца {vendor.id}")

            except (SQLAlchemyError, StoreWriteError) as e:
                logger.error(f"Ошибка при обновлении chat_id: {e}")

        return await handler(event, data)
