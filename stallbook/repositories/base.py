import logging
import uuid
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from stallbook.core.exceptions import StoreWriteError
from stallbook.core.feed import LiveFeed

logger = logging.getLogger(__name__)


def new_record_id() -> str:
    return uuid.uuid4().hex


class CollectionRepository:
    """
    Общий адаптер коллекции: точечные записи, удаления, разовые выборки и
    публикация свежего снимка коллекции подписчикам после каждой записи.
    """

    model = None
    collection: str = ""
    ordering: tuple = ()

    def __init__(self, session: AsyncSession, feed: Optional[LiveFeed] = None):
        self.session = session
        self.feed = feed

    async def get(self, record_id: str) -> Optional[Any]:
        if not record_id:
            return None
        return await self.session.get(self.model, record_id)

    async def get_all(self) -> List[Any]:
        result = await self.session.execute(select(self.model).order_by(*self.ordering))
        return result.scalars().all()

    async def query_once(self, **filters) -> List[Any]:
        result = await self.session.execute(
            select(self.model).filter_by(**filters).order_by(*self.ordering)
        )
        return result.scalars().all()

    async def add(self, **data) -> Any:
        data.setdefault("id", new_record_id())
        record = self.model(**data)
        self.session.add(record)
        await self._commit(f"добавление в {self.collection}")
        await self.session.refresh(record)
        await self._publish()
        return record

    async def set(self, record_id: str, **data) -> Any:
        record = await self.get(record_id)
        if record is None:
            record = self.model(id=record_id, **data)
            self.session.add(record)
        else:
            for field, value in data.items():
                setattr(record, field, value)
        await self._commit(f"запись {self.collection}/{record_id}")
        await self.session.refresh(record)
        await self._publish()
        return record

    async def update(self, record: Any, **partial) -> Any:
        for field, value in partial.items():
            setattr(record, field, value)
        self.session.add(record)
        await self._commit(f"обновление {self.collection}/{record.id}")
        await self.session.refresh(record)
        await self._publish()
        return record

    async def delete(self, record: Any) -> None:
        await self.session.delete(record)
        await self._commit(f"удаление {self.collection}/{record.id}")
        await self._publish()

    async def _commit(self, action: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Ошибка хранилища ({action}): {e}")
            raise StoreWriteError(f"Не удалось сохранить данные: {e}") from e

    async def _publish(self) -> None:
        if self.feed is None or not self.feed.has_subscribers(self.collection):
            return
        snapshot = await self.get_all()
        await self.feed.publish(self.collection, snapshot)
