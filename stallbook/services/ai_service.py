import logging
from typing import Any, Optional

import httpx

from stallbook.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class TextGenerationService:
    """Разовый запрос к Gemini generateContent: промпт на входе, текст на выходе"""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.transport = transport

    async def generate(self, prompt: str) -> str:
        """Без повторов: любая ошибка превращается в ExternalServiceError"""
        if not self.api_key:
            raise ExternalServiceError("Генерация текста не настроена (нет GEMINI_API_KEY)")

        url = f"{self.BASE_URL}/{self.model}:generateContent"
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(
                    url, params={"key": self.api_key}, json=payload
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Gemini API call failed: {e}")
            raise ExternalServiceError(
                f"AI-функция временно недоступна, попробуйте позже. ({e})"
            ) from e

        text = self._extract_text(result)
        if not text:
            logger.error("Gemini API returned no candidates: %s", result)
            raise ExternalServiceError("AI-сервис вернул пустой ответ")
        return text

    @staticmethod
    def _extract_text(result: Any) -> Optional[str]:
        try:
            return result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None

    async def promo_text(self, booking, brand: str) -> str:
        prompt = (
            f"Напиши короткий живой пост для соцсетей от продавца бренда «{brand}» "
            f"по имени «{booking.vendor_name}». "
            f"Дата: {booking.date.isoformat()}. "
            f"Место: {booking.market_city} {booking.market_name}. "
            "Стиль: дружелюбный и энергичный, в конце призыв прийти в гости. "
            "Добавь несколько уместных эмодзи."
        )
        return await self.generate(prompt)

    async def market_analysis(self, suggestion, brand: str) -> str:
        market = suggestion.market
        last = (
            f"последний раз мы стояли там {suggestion.last_booked.isoformat()}"
            if suggestion.last_booked
            else "мы там еще не стояли"
        )
        prompt = (
            f"Как профессиональный консультант, кратко объясни, почему рынок "
            f"«{market.city} {market.name}» стоит рассмотреть бренду «{brand}» "
            f"для ближайшей торговли. Известно: всего бронирований на рынке - "
            f"{suggestion.count}, {last}. Уложись в 2-3 предложения."
        )
        return await self.generate(prompt)
