import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

CONFLICT_POLICIES = ("strict", "warn")


@dataclass(frozen=True)
class Settings:
    """
    Настройки приложения. Создаются один раз при старте процесса и
    передаются в компоненты явно, бизнес-логика окружение не читает.
    """

    bot_token: Optional[str] = None
    database_url: str = "sqlite+aiosqlite:///stallbook.db"
    redis_dsn: Optional[str] = "redis://localhost:6379/0"
    app_id: str = "default-app-id"
    brand: str = "stallbook"
    conflict_policy: str = "strict"
    recommendation_limit: int = 3
    recommendation_threshold_days: int = 14
    seed_admin_id: str = "sd"
    seed_admin_name: str = "Главный администратор"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    timezone: str = "Asia/Taipei"
    reminder_hour: int = 20
    reminder_minute: int = 0
    admin_chat_ids: tuple = ()

    def __post_init__(self):
        if self.conflict_policy not in CONFLICT_POLICIES:
            raise ValueError(
                f"CONFLICT_POLICY должен быть одним из {CONFLICT_POLICIES}, "
                f"получено: {self.conflict_policy}"
            )
        if self.recommendation_limit < 1:
            raise ValueError("RECOMMENDATION_LIMIT должен быть положительным")
        if self.recommendation_threshold_days < 0:
            raise ValueError("RECOMMENDATION_THRESHOLD_DAYS не может быть отрицательным")

    @property
    def soft_conflicts(self) -> bool:
        return self.conflict_policy == "warn"


def _parse_chat_ids(raw: str) -> List[int]:
    return [int(chat_id.strip()) for chat_id in raw.split(",") if chat_id.strip()]


def load_settings() -> Settings:
    """Собирает настройки из переменных окружения (и файла .env)"""
    load_dotenv(override=True)

    return Settings(
        bot_token=os.getenv("BOT_TOKEN"),
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        redis_dsn=os.getenv("REDIS_DSN", Settings.redis_dsn) or None,
        app_id=os.getenv("APP_ID", Settings.app_id),
        brand=os.getenv("BRAND", Settings.brand),
        conflict_policy=os.getenv("CONFLICT_POLICY", Settings.conflict_policy).lower(),
        recommendation_limit=int(
            os.getenv("RECOMMENDATION_LIMIT", Settings.recommendation_limit)
        ),
        recommendation_threshold_days=int(
            os.getenv(
                "RECOMMENDATION_THRESHOLD_DAYS", Settings.recommendation_threshold_days
            )
        ),
        seed_admin_id=os.getenv("SEED_ADMIN_ID", Settings.seed_admin_id),
        seed_admin_name=os.getenv("SEED_ADMIN_NAME", Settings.seed_admin_name),
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL", Settings.gemini_model),
        timezone=os.getenv("TIMEZONE", Settings.timezone),
        reminder_hour=int(os.getenv("REMINDER_HOUR", Settings.reminder_hour)),
        reminder_minute=int(os.getenv("REMINDER_MINUTE", Settings.reminder_minute)),
        admin_chat_ids=tuple(_parse_chat_ids(os.getenv("ADMIN_CHAT_IDS", ""))),
    )
