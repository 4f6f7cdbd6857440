import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.fsm.storage.redis import RedisStorage

from stallbook.core.config import Settings, load_settings
from stallbook.core.database import create_schema, get_session, init_database
from stallbook.core.feed import LiveFeed
from stallbook.handlers.auth_handler import router as auth_router
from stallbook.handlers.booking_handler import router as booking_router
from stallbook.handlers.admin_handler import router as admin_router
from stallbook.middleware import UpdateChatIdMiddleware
from stallbook.services.board import BookingBoard
from stallbook.services.vendor_service import VendorService
from stallbook.utils.cache import init_cache
from stallbook.utils.scheduler import schedule_daily_reminders

logger = logging.getLogger(__name__)


async def on_startup(settings: Settings, feed: LiveFeed, board: BookingBoard):
    # Создаем таблицы в БД и заполняем пустую базу
    await create_schema()
    async with get_session() as session:
        if await VendorService(session, feed).seed_defaults(settings):
            logger.info("База заполнена начальными данными")
        await board.start(session)


def build_dispatcher(settings: Settings, feed: LiveFeed, board: BookingBoard) -> Dispatcher:
    # Redis хранит состояния диалогов между перезапусками
    if settings.redis_dsn:
        storage = RedisStorage.from_url(settings.redis_dsn)
    else:
        storage = MemoryStorage()

    dp = Dispatcher(storage=storage, settings=settings, feed=feed, board=board)
    dp.message.middleware(UpdateChatIdMiddleware())

    # Роутер входа первым: в нем отмена диалогов
    dp.include_router(auth_router)
    dp.include_router(booking_router)
    dp.include_router(admin_router)

    # Глобальный обработчик ошибок aiogram v3
    async def global_error_handler(event) -> bool:
        logging.getLogger("aiogram").error(
            "Exception %s, update %s", event.exception, event.update
        )
        return True

    dp.errors.register(global_error_handler)
    return dp


async def main():
    settings = load_settings()
    if not settings.bot_token:
        raise RuntimeError("BOT_TOKEN не задан")

    init_database(settings)
    init_cache(settings)

    feed = LiveFeed(settings.app_id)
    board = BookingBoard(feed, settings)
    await on_startup(settings, feed, board)

    bot = Bot(token=settings.bot_token)
    # Удаляем все вебхуки перед началом polling
    await bot.delete_webhook(drop_pending_updates=True)

    dp = build_dispatcher(settings, feed, board)
    scheduler = schedule_daily_reminders(bot, settings)

    try:
        await dp.start_polling(bot)
    finally:
        scheduler.shutdown(wait=False)
        board.close()
        feed.close_all()
        await bot.session.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    asyncio.run(main())
