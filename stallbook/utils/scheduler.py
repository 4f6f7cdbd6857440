import asyncio
import datetime
import pytz
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from sqlalchemy.exc import SQLAlchemyError
from stallbook.core.config import Settings
from stallbook.core.database import get_session
from stallbook.core.exceptions import StallbookError
from stallbook.services.booking_service import BookingService
from stallbook.services.vendor_service import VendorService
from stallbook.services.weather_service import WeatherService
from stallbook.utils.date_utils import format_date_for_display

logger = logging.getLogger(__name__)


def local_today(settings: Settings) -> datetime.date:
    return datetime.datetime.now(pytz.timezone(settings.timezone)).date()


async def _send(bot: Bot, chat_id: int, text: str) -> bool:
    try:
        await bot.send_message(chat_id, text, parse_mode="HTML")
        return True
    except TelegramAPIError as send_error:
        logger.error(f"❌ Ошибка отправки напоминания (chat_id: {chat_id}): {send_error}")
        return False


async def send_daily_reminders(
    bot: Bot, settings: Settings, weather: WeatherService = None
) -> int:
    """
    Рассылает напоминания о завтрашних бронированиях: каждому продавцу его
    выходы с прогнозом погоды, администраторам сводку за день.
    Возвращает число успешно отправленных сообщений.
    """
    weather = weather or WeatherService(settings.app_id, settings.timezone)
    tomorrow = local_today(settings) + datetime.timedelta(days=1)

    try:
        async with get_session() as session:
            bookings = await BookingService(session).get_by_date(tomorrow)
            vendors = await VendorService(session).get_with_chat()
    except (SQLAlchemyError, StallbookError) as e:
        logger.error(f"⚠️ Не удалось подготовить напоминания: {e}")
        for chat_id in settings.admin_chat_ids:
            await _send(bot, chat_id, f"⚠️ Ошибка при подготовке напоминаний: {e}")
        return 0

    if not bookings:
        logger.info("На %s бронирований нет - напоминания не отправляются", tomorrow)
        return 0

    day = format_date_for_display(tomorrow)
    forecasts = {}
    for booking in bookings:
        if booking.market_city not in forecasts:
            forecasts[booking.market_city] = await weather.get_forecast(
                booking.market_city, tomorrow
            )

    sent = 0
    chats = {v.id: v.chat_id for v in vendors}
    for vendor_id in sorted({b.vendor_id for b in bookings}):
        chat_id = chats.get(vendor_id)
        if not chat_id:
            continue
        lines = [f"⏰ <b>Завтра, {day}</b>"]
        for booking in bookings:
            if booking.vendor_id != vendor_id:
                continue
            lines.append(f"• {booking.market_city} {booking.market_name}")
            forecast = forecasts.get(booking.market_city)
            if forecast:
                lines.append(f"   {forecast.describe()}")
        if await _send(bot, chat_id, "\n".join(lines)):
            sent += 1

    admin_chats = set(settings.admin_chat_ids) | {v.chat_id for v in vendors if v.is_admin}
    summary = [f"📋 <b>Бронирования на {day}: {len(bookings)}</b>"]
    summary.extend(
        f"• {b.market_city} {b.market_name} - {b.vendor_name}" for b in bookings
    )
    for chat_id in sorted(admin_chats):
        if await _send(bot, chat_id, "\n".join(summary)):
            sent += 1

    logger.info(f"Напоминания на {tomorrow} отправлены: {sent}")
    return sent


def schedule_daily_reminders(bot: Bot, settings: Settings) -> AsyncIOScheduler:
    """Планирует ежедневную рассылку напоминаний по часовому поясу из настроек"""
    tz = pytz.timezone(settings.timezone)
    scheduler = AsyncIOScheduler(timezone=tz)

    trigger = CronTrigger(
        hour=settings.reminder_hour, minute=settings.reminder_minute, timezone=tz
    )
    scheduler.add_job(send_daily_reminders, trigger=trigger, args=[bot, settings])
    logger.info(
        f"Планировщик настроен на ежедневную отправку в "
        f"{settings.reminder_hour:02d}:{settings.reminder_minute:02d} ({settings.timezone})"
    )
    try:
        scheduler.start()
        logger.info("Планировщик напоминаний запущен")
    except RuntimeError as e:
        logger.warning(f"Планировщик уже запущен: {e}")
    return scheduler


if __name__ == "__main__":
    from stallbook.core.config import load_settings
    from stallbook.core.database import init_database
    from stallbook.utils.cache import init_cache

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    async def _run_once():
        settings = load_settings()
        init_database(settings)
        init_cache(settings)
        bot = Bot(token=settings.bot_token)
        try:
            await send_daily_reminders(bot, settings)
        finally:
            await bot.session.close()

    logger.info("Запуск тестовой отправки напоминаний")
    asyncio.run(_run_once())
    logger.info("Тестовая отправка завершена")
