import pytest
import pytest_asyncio
from contextlib import ExitStack
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from aiogram.types import Message, User as TgUser, Chat
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.memory import MemoryStorage

from stallbook.core.config import Settings
from stallbook.core.database import Base
from stallbook.core.feed import LiveFeed
from stallbook.repositories.market_repository import MarketRepository
from stallbook.repositories.vendor_repository import VendorRepository
import stallbook.models  # noqa: F401


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, future=True
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    async_session = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with async_session() as session:
        yield session


@pytest.fixture
def settings():
    return Settings(bot_token="test", redis_dsn=None, app_id="test-app")


@pytest.fixture
def feed():
    return LiveFeed("test-app")


@pytest_asyncio.fixture
async def vendors(session):
    """Администратор sd и два продавца без паролей"""
    repo = VendorRepository(session)
    admin = await repo.set("sd", name="Админ", is_admin=True)
    vendor_a = await repo.set("vendor-a", name="Продавец A", is_admin=False)
    vendor_b = await repo.set("vendor-b", name="Продавец B", is_admin=False)
    return {"admin": admin, "a": vendor_a, "b": vendor_b}


@pytest_asyncio.fixture
async def markets(session):
    repo = MarketRepository(session)
    m1 = await repo.set("m1", city="Тайбэй", name="Ночной рынок Шилинь")
    m2 = await repo.set("m2", city="Тайбэй", name="Рынок Раохэ")
    m3 = await repo.set("m3", city="Тайчжун", name="Рынок Фэнцзя")
    return {"m1": m1, "m2": m2, "m3": m3}


@pytest.fixture
def create_message():
    def _create_message(text="", chat_id=123456789, from_user_id=123456789):
        message = AsyncMock(spec=Message)
        message.text = text
        message.chat = Chat(id=chat_id, type="private")
        message.from_user = TgUser(id=from_user_id, is_bot=False, first_name="Test")
        message.document = None

        message.answer = AsyncMock()
        message.answer.return_value = AsyncMock()
        message.answer_document = AsyncMock()
        message.answer_photo = AsyncMock()
        return message

    return _create_message


@pytest.fixture
def state():
    storage = MemoryStorage()
    state = FSMContext(storage=storage, key="test")
    return state


@pytest.fixture
def answers():
    """Все тексты, отправленные через message.answer, одной строкой"""

    def _answers(message) -> str:
        return "\n".join(
            str(call.args[0]) if call.args else str(call.kwargs.get("text", ""))
            for call in message.answer.call_args_list
        )

    return _answers


@pytest.fixture
def session_patch(session):
    """Подменяет get_session во всех модулях бота на тестовую сессию"""

    class SessionContext:
        async def __aenter__(self):
            return session

        async def __aexit__(self, *args):
            pass

    targets = [
        "stallbook.handlers.auth_handler.get_session",
        "stallbook.handlers.booking_handler.get_session",
        "stallbook.handlers.admin_handler.get_session",
        "stallbook.middleware.get_session",
        "stallbook.utils.scheduler.get_session",
    ]
    with ExitStack() as stack:
        for target in targets:
            stack.enter_context(patch(target, side_effect=lambda: SessionContext()))
        yield session
