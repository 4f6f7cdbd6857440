import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from stallbook.core.config import Settings

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None


def init_cache(settings: Settings) -> Optional[redis.Redis]:
    """
    Создает клиент Redis по настройкам. Без REDIS_DSN кэш отключен и все
    операции ведут себя как промах.
    """
    global redis_client

    if not settings.redis_dsn:
        logger.warning("REDIS_DSN не задан, кэш отключен")
        redis_client = None
        return None

    redis_client = redis.from_url(settings.redis_dsn, decode_responses=True)
    logger.info("Redis connection initialized")
    return redis_client


def get_cache_key(*args: Any) -> str:
    """
    Генерирует ключ для кэша на основе переданных аргументов.

    Args:
        *args: Произвольные аргументы для формирования ключа

    Returns:
        str: Сгенерированный ключ кэша
    """
    if not args:
        raise ValueError("Cache key cannot be empty")

    parts = []
    for arg in args:
        if isinstance(arg, dict):
            parts.append("-".join(f"{k}:{v}" for k, v in sorted(arg.items())))
        elif isinstance(arg, (list, tuple, set)):
            parts.append("-".join(str(item) for item in arg))
        else:
            parts.append(str(arg))

    return ":".join(parts)


async def get_cached_data(key: str) -> Optional[Any]:
    """
    Получает данные из кэша по ключу.

    Returns:
        Optional[Any]: Данные из кэша или None, если кэш не найден
    """
    if redis_client is None:
        return None
    try:
        data = await redis_client.get(key)
        if data:
            return json.loads(data)
        return None
    except Exception as e:
        logger.error(f"Error getting data from cache: {e}")
        return None


async def set_cached_data(key: str, data: Any, ttl: int = 3600) -> bool:
    """
    Сохраняет данные в кэш.

    Args:
        key: Ключ для сохранения данных
        data: Данные для сохранения (будут сериализованы в JSON)
        ttl: Время жизни кэша в секундах (по умолчанию 1 час)

    Returns:
        bool: True если данные успешно сохранены, False в случае ошибки
    """
    if redis_client is None:
        return False
    try:
        await redis_client.set(key, json.dumps(data), ex=ttl)
        return True
    except Exception as e:
        logger.error(f"Error setting data to cache: {e}")
        return False
