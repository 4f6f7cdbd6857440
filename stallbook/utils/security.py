import logging
from typing import Optional

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
BCRYPT_BYTE_LIMIT = 72


def _normalize_password(password: str) -> str:
    """
    Убирает управляющие символы и обрезает пароль до лимита bcrypt
    в 72 байта (байта, а не символа).
    """
    if password is None:
        raise ValueError("Пароль не может быть пустым")

    cleaned = "".join(ch for ch in str(password) if ord(ch) >= 32)
    raw = cleaned.encode("utf-8")
    if len(raw) > BCRYPT_BYTE_LIMIT:
        logger.debug("Пароль длиннее %d байт, обрезаем", BCRYPT_BYTE_LIMIT)
        raw = raw[:BCRYPT_BYTE_LIMIT]
    return raw.decode("utf-8", "ignore")


def hash_password(password: str) -> str:
    return pwd_context.hash(_normalize_password(password))


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Сверяет пароль с сохраненным хешем; пустой хеш никогда не совпадает"""
    if not hashed_password or plain_password is None:
        return False
    try:
        return pwd_context.verify(_normalize_password(plain_password), hashed_password)
    except (ValueError, TypeError) as e:
        logger.warning(f"Не удалось проверить пароль: {e}")
        return False
