import datetime
import logging
from dataclasses import dataclass, asdict
from typing import Optional

import httpx

from stallbook.utils.cache import get_cache_key, get_cached_data, set_cached_data

logger = logging.getLogger(__name__)

WEATHER_CACHE_TTL = 3 * 3600


@dataclass
class WeatherForecast:
    city: str
    date: str
    precipitation_probability: Optional[int]
    temperature_min: Optional[float]
    temperature_max: Optional[float]

    def describe(self) -> str:
        parts = []
        if self.precipitation_probability is not None:
            parts.append(f"☔ {self.precipitation_probability}%")
        if self.temperature_min is not None and self.temperature_max is not None:
            parts.append(f"🌡 {self.temperature_min:.0f}…{self.temperature_max:.0f}°C")
        return ", ".join(parts) or "прогноз недоступен"


class WeatherService:
    """
    Прогноз погоды через Open-Meteo (геокодинг города + дневной прогноз).
    Только для отображения: при любой ошибке возвращается None.
    """

    GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
    FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

    def __init__(
        self,
        namespace: str = "default-app-id",
        timezone: str = "auto",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.namespace = namespace
        self.timezone = timezone
        self.timeout = timeout
        self.transport = transport

    async def get_forecast(
        self, city: str, date_: datetime.date
    ) -> Optional[WeatherForecast]:
        if not city:
            return None

        cache_key = get_cache_key(self.namespace, "weather", city, date_.isoformat())
        cached = await get_cached_data(cache_key)
        if cached:
            return WeatherForecast(**cached)

        try:
            forecast = await self._fetch(city, date_)
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Погода для {city} на {date_} недоступна: {e}")
            return None

        if forecast:
            await set_cached_data(cache_key, asdict(forecast), ttl=WEATHER_CACHE_TTL)
        return forecast

    async def _fetch(self, city: str, date_: datetime.date) -> Optional[WeatherForecast]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            geo = await client.get(
                self.GEOCODING_URL, params={"name": city, "count": 1, "format": "json"}
            )
            geo.raise_for_status()
            places = geo.json().get("results") or []
            if not places:
                logger.info("Город %s не найден геокодером", city)
                return None

            response = await client.get(
                self.FORECAST_URL,
                params={
                    "latitude": places[0]["latitude"],
                    "longitude": places[0]["longitude"],
                    "daily": "precipitation_probability_max,temperature_2m_max,temperature_2m_min",
                    "timezone": self.timezone,
                    "start_date": date_.isoformat(),
                    "end_date": date_.isoformat(),
                },
            )
            response.raise_for_status()
            daily = response.json()["daily"]

        return WeatherForecast(
            city=city,
            date=date_.isoformat(),
            precipitation_probability=daily["precipitation_probability_max"][0],
            temperature_min=daily["temperature_2m_min"][0],
            temperature_max=daily["temperature_2m_max"][0],
        )
