from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from stallbook.core.config import Settings
from stallbook.core.exceptions import AuthError, PermissionDeniedError, ValidationError
from stallbook.core.feed import LiveFeed
from stallbook.models.vendor import Vendor
from stallbook.repositories.vendor_repository import VendorRepository
from stallbook.repositories.market_repository import MarketRepository
from stallbook.utils.security import hash_password, verify_password
from stallbook.utils.validators import validate_vendor_id, validate_name
import logging

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 4

SEED_VENDORS = [("vendor-a", "Продавец A")]
SEED_MARKETS = [
    ("market1", "Чжанхуа", "Рынок Хэмэй"),
    ("market2", "Тайчжун", "Рынок Сяншан"),
    ("market3", "Чжанхуа", "Первый рынок Юаньлинь"),
]


class VendorService:
    def __init__(self, session: AsyncSession, feed: Optional[LiveFeed] = None):
        self.repo = VendorRepository(session, feed)
        self.session = session
        self.feed = feed

    async def list_vendors(self) -> List[Vendor]:
        return await self.repo.get_all()

    async def get_by_id(self, vendor_id: str) -> Optional[Vendor]:
        """Получить продавца по коду (регистр не учитывается)"""
        return await self.repo.get_by_id_ci(vendor_id)

    async def get_by_chat_id(self, chat_id: int) -> Optional[Vendor]:
        return await self.repo.get_by_chat_id(chat_id)

    async def create_vendor(
        self,
        vendor_id: str,
        name: str,
        is_admin: bool = False,
        password: Optional[str] = None,
    ) -> Vendor:
        vendor_id = validate_vendor_id(vendor_id)
        name = validate_name(name, "Имя продавца")

        if await self.repo.get_by_id_ci(vendor_id):
            raise ValidationError(f"Продавец с кодом {vendor_id} уже существует")

        password_hash = None
        if password:
            self._check_password_strength(password)
            password_hash = hash_password(password)

        vendor = await self.repo.set(
            vendor_id, name=name, is_admin=is_admin, password_hash=password_hash
        )
        logger.info("Добавлен продавец %s (%s), админ: %s", vendor.id, name, is_admin)
        return vendor

    async def delete_vendor(self, vendor_id: str, protected_id: str) -> Vendor:
        """
        Удаляет продавца. Защищенного (стартового) администратора удалить
        нельзя. Бронирования продавца остаются в истории со своими снимками.
        """
        vendor = await self._require(vendor_id)
        if vendor.id.lower() == (protected_id or "").lower():
            raise PermissionDeniedError("Этого продавца удалить нельзя")
        await self.repo.delete(vendor)
        logger.info("Удален продавец %s", vendor.id)
        return vendor

    async def authenticate(self, vendor_id: str, password: Optional[str]) -> Vendor:
        """
        Проверяет код продавца и пароль. Продавец без пароля входит по коду
        и должен задать пароль после входа.
        """
        vendor = await self.repo.get_by_id_ci(vendor_id or "")
        if not vendor:
            raise AuthError("Продавец с таким кодом не найден, проверьте код")
        if vendor.has_password and not verify_password(password, vendor.password_hash):
            logger.warning("Неверный пароль для продавца %s", vendor.id)
            raise AuthError("Неверный пароль")
        return vendor

    async def set_password(self, vendor: Vendor, new_password: str) -> Vendor:
        self._check_password_strength(new_password)
        vendor = await self.repo.update(vendor, password_hash=hash_password(new_password))
        logger.info("Пароль продавца %s изменен", vendor.id)
        return vendor

    async def reset_password(self, vendor_id: str) -> Vendor:
        """Сбрасывает пароль: продавец задаст новый при следующем входе"""
        vendor = await self._require(vendor_id)
        vendor = await self.repo.update(vendor, password_hash=None)
        logger.info("Пароль продавца %s сброшен администратором", vendor.id)
        return vendor

    async def rename(self, vendor: Vendor, new_name: str) -> Vendor:
        """Обновить отображаемое имя; старые бронирования хранят прежнее имя"""
        new_name = validate_name(new_name, "Имя продавца")
        logger.info("Изменение имени продавца %s: %s -> %s", vendor.id, vendor.name, new_name)
        return await self.repo.update(vendor, name=new_name)

    async def update_chat_id(self, vendor: Vendor, chat_id: int) -> Vendor:
        """Привязать Telegram chat_id к продавцу (обновляет только если отличается)"""
        if vendor.chat_id == chat_id:
            return vendor

        previous = await self.repo.get_by_chat_id(chat_id)
        if previous and previous.id != vendor.id:
            # один чат - один продавец
            await self.repo.update(previous, chat_id=None)

        logger.info(
            f"Обновление chat_id для продавца {vendor.id}: {vendor.chat_id} -> {chat_id}"
        )
        return await self.repo.update(vendor, chat_id=chat_id)

    async def get_with_chat(self) -> List[Vendor]:
        return await self.repo.get_with_chat()

    async def seed_defaults(self, settings: Settings) -> bool:
        """Заполняет пустую базу стартовым администратором и примерами рынков"""
        if await self.repo.count() > 0:
            return False

        logger.info("Начальных данных нет, создаем администратора и рынки")
        await self.repo.set(
            settings.seed_admin_id, name=settings.seed_admin_name, is_admin=True
        )
        for vendor_id, name in SEED_VENDORS:
            await self.repo.set(vendor_id, name=name, is_admin=False)

        market_repo = MarketRepository(self.session, self.feed)
        for market_id, city, name in SEED_MARKETS:
            await market_repo.set(market_id, city=city, name=name)
        return True

    async def _require(self, vendor_id: str) -> Vendor:
        vendor = await self.repo.get_by_id_ci(vendor_id)
        if not vendor:
            raise ValidationError(f"Продавец с кодом {vendor_id} не найден")
        return vendor

    def _check_password_strength(self, password: str) -> None:
        if not password or len(password.strip()) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Пароль должен содержать не менее {MIN_PASSWORD_LENGTH} символов"
            )
