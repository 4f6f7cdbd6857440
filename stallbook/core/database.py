from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine
from sqlalchemy.orm import sessionmaker, declarative_base

from stallbook.core.config import Settings

Base = declarative_base()

engine: Optional[AsyncEngine] = None
AsyncSessionLocal = None


def init_database(settings: Settings) -> AsyncEngine:
    """Создает движок и фабрику сессий по настройкам приложения"""
    global engine, AsyncSessionLocal

    engine = create_async_engine(settings.database_url, echo=False, future=True)
    AsyncSessionLocal = sessionmaker(
        engine, expire_on_commit=False, class_=AsyncSession
    )
    return engine


async def create_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session():
    if AsyncSessionLocal is None:
        raise RuntimeError("База данных не инициализирована: вызовите init_database()")
    async with AsyncSessionLocal() as session:
        yield session
