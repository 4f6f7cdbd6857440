from typing import Optional
from sqlalchemy.future import select
from stallbook.models.announcement import Announcement
from stallbook.repositories.base import CollectionRepository


class AnnouncementRepository(CollectionRepository):
    model = Announcement
    collection = "announcements"
    ordering = (Announcement.created_at.desc(),)

    async def get_latest(self) -> Optional[Announcement]:
        result = await self.session.execute(
            select(Announcement).order_by(Announcement.created_at.desc()).limit(1)
        )
        return result.scalars().first()
