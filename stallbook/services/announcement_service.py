from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from stallbook.core.feed import LiveFeed
from stallbook.models.announcement import Announcement
from stallbook.repositories.announcement_repository import AnnouncementRepository
from stallbook.utils.validators import validate_name
import logging

logger = logging.getLogger(__name__)

MAX_ANNOUNCEMENT_LENGTH = 2000


class AnnouncementService:
    def __init__(self, session: AsyncSession, feed: Optional[LiveFeed] = None):
        self.repo = AnnouncementRepository(session, feed)

    async def post(self, content: str) -> Announcement:
        content = validate_name(content, "Текст объявления", MAX_ANNOUNCEMENT_LENGTH)
        announcement = await self.repo.add(content=content)
        logger.info("Опубликовано объявление %s", announcement.id)
        return announcement

    async def get_latest(self) -> Optional[Announcement]:
        """Показывается только самое свежее объявление"""
        return await self.repo.get_latest()
