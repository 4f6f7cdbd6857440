from typing import List, Optional
from sqlalchemy.future import select
from sqlalchemy.sql import func
from stallbook.models.vendor import Vendor
from stallbook.repositories.base import CollectionRepository


class VendorRepository(CollectionRepository):
    model = Vendor
    collection = "vendors"
    ordering = (Vendor.id,)

    async def get_by_id_ci(self, vendor_id: str) -> Optional[Vendor]:
        """Поиск продавца по коду без учета регистра"""
        if not vendor_id:
            return None
        result = await self.session.execute(
            select(Vendor).where(func.lower(Vendor.id) == vendor_id.strip().lower())
        )
        return result.scalars().first()

    async def get_by_chat_id(self, chat_id: int) -> Optional[Vendor]:
        result = await self.session.execute(select(Vendor).filter_by(chat_id=chat_id))
        return result.scalars().first()

    async def get_with_chat(self) -> List[Vendor]:
        result = await self.session.execute(
            select(Vendor).where(Vendor.chat_id.is_not(None)).order_by(Vendor.id)
        )
        return result.scalars().all()

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(Vendor.id)))
        return result.scalar() or 0
