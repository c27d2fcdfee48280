"""Weather intent detection and Open-Meteo lookups."""

import logging
import re
from typing import Dict, Optional

import httpx
from pydantic import ValidationError

from modelrelay.agent.schemas import ForecastDay, WeatherInfo
from modelrelay.core.exceptions import LocationNotFoundError, WeatherLookupError

logger = logging.getLogger(__name__)

GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

# "طقس في بغداد", "درجة الحرارة بـدبي", "الجو في عمان"
ARABIC_WEATHER_PATTERN = re.compile(
    r"(?:حالة الطقس|طقس|الجو|درجة الحرارة|الحرارة)\s+(?:في\s+|بـ\s*)?([^?.؟]+)"
)
ENGLISH_WEATHER_PATTERN = re.compile(r"\bweather\s+(?:in|for|at)\s+([^?.]+)", re.IGNORECASE)

WEATHER_CODES_AR: Dict[int, str] = {
    0: "صافي",
    1: "صافي جزئياً",
    2: "غائم جزئياً",
    3: "غائم",
    45: "ضباب",
    48: "ضباب كثيف",
    51: "رذاذ خفيف",
    53: "رذاذ متوسط",
    55: "رذاذ كثيف",
    61: "مطر خفيف",
    63: "مطر متوسط",
    65: "مطر غزير",
    71: "ثلج خفيف",
    73: "ثلج متوسط",
    75: "ثلج كثيف",
    77: "حبات ثلج",
    80: "زخات مطر خفيفة",
    81: "زخات مطر متوسطة",
    82: "زخات مطر عنيفة",
    85: "زخات ثلج خفيفة",
    86: "زخات ثلج كثيفة",
    95: "عاصفة رعدية",
    96: "عاصفة رعدية مع برد خفيف",
    99: "عاصفة رعدية مع برد كثيف",
}

WEATHER_CODES_EN: Dict[int, str] = {
    0: "Clear",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Dense fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Light rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Light snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Light rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Light snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with light hail",
    99: "Thunderstorm with heavy hail",
}


def describe_weather_code(code: Optional[int], language: str = "ar") -> str:
    codes = WEATHER_CODES_AR if language == "ar" else WEATHER_CODES_EN
    unknown = "غير معروف" if language == "ar" else "Unknown"
    if code is None:
        return unknown
    return codes.get(int(code), unknown)


def detect_weather_location(query: str, default_location: str = "Baghdad") -> Optional[str]:
    """Return the place a weather question asks about, or None if it is not one.

    A bare mention of weather with no place resolves to ``default_location``.
    """
    text = (query or "").strip()
    for pattern in (ARABIC_WEATHER_PATTERN, ENGLISH_WEATHER_PATTERN):
        match = pattern.search(text)
        if match:
            location = match.group(1).strip(" \t\n،,!؟?.")
            if location:
                return location
    if "الطقس" in text or "weather" in text.lower():
        return default_location
    return None


class WeatherClient:
    """Geocode a place name and fetch current conditions plus a 7-day forecast."""

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 10.0):
        self.http_client = http_client
        self.timeout = timeout

    async def _get_json(self, url: str, params: dict) -> dict:
        try:
            response = await self.http_client.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Weather request to {url} failed: {e}")
            raise WeatherLookupError(str(e)) from e

    async def get_weather(self, location: str, language: str = "ar") -> WeatherInfo:
        """Look up weather for a place name.

        Raises:
            LocationNotFoundError: geocoding had no match
            WeatherLookupError: the provider failed or sent an unusable payload
        """
        geo = await self._get_json(GEOCODING_URL, {
            "name": location,
            "count": 1,
            "language": language,
            "format": "json",
        })
        places = geo.get("results") or []
        if not places:
            raise LocationNotFoundError(location)
        place = places[0]

        data = await self._get_json(FORECAST_URL, {
            "latitude": place["latitude"],
            "longitude": place["longitude"],
            "current": "temperature_2m,relative_humidity_2m,apparent_temperature,"
                       "precipitation,weather_code,wind_speed_10m",
            "daily": "weather_code,temperature_2m_max,temperature_2m_min,precipitation_sum",
            "timezone": "auto",
            "forecast_days": 7,
        })

        try:
            current = data["current"]
            daily = data["daily"]
            forecast = [
                ForecastDay(
                    date=date,
                    max=round(daily["temperature_2m_max"][i]),
                    min=round(daily["temperature_2m_min"][i]),
                    condition=describe_weather_code(daily["weather_code"][i], language),
                )
                for i, date in enumerate(daily["time"][:7])
            ]
            name = place.get("name", location)
            country = place.get("country")
            return WeatherInfo(
                location=f"{name}, {country}" if country else name,
                temperature=round(current["temperature_2m"]),
                feels_like=round(current["apparent_temperature"]),
                humidity=current["relative_humidity_2m"],
                wind_speed=round(current["wind_speed_10m"]),
                condition=describe_weather_code(current.get("weather_code"), language),
                precipitation=current.get("precipitation") or 0.0,
                forecast=forecast,
            )
        except (KeyError, IndexError, TypeError, ValidationError) as e:
            logger.error(f"Unexpected forecast payload for {location}: {e}")
            raise WeatherLookupError(f"Malformed forecast payload: {e}") from e


def format_weather_message(info: WeatherInfo, language: str = "ar", is_voice_mode: bool = False) -> str:
    """Render weather as chat text (short sentence for voice, markdown otherwise)."""
    if language == "ar":
        if is_voice_mode:
            return (
                f"الطقس في {info.location} الآن {info.temperature:g} درجة مئوية. "
                f"الحالة {info.condition}. يشعر بـ {info.feels_like:g} درجة"
            )
        lines = [
            f"**الطقس في {info.location}**",
            "",
            f"🌡️ **درجة الحرارة الحالية:** {info.temperature:g}°C (يشعر بـ {info.feels_like:g}°C)",
            f"🌤️ **الحالة:** {info.condition}",
            f"💧 **الرطوبة:** {info.humidity:g}%",
            f"💨 **سرعة الرياح:** {info.wind_speed:g} كم/س",
            "",
            "**توقعات الأيام القادمة:**",
        ]
    else:
        if is_voice_mode:
            return (
                f"The weather in {info.location} is {info.temperature:g} degrees Celsius, "
                f"{info.condition}, feeling like {info.feels_like:g} degrees"
            )
        lines = [
            f"**Weather in {info.location}**",
            "",
            f"🌡️ **Temperature:** {info.temperature:g}°C (feels like {info.feels_like:g}°C)",
            f"🌤️ **Condition:** {info.condition}",
            f"💧 **Humidity:** {info.humidity:g}%",
            f"💨 **Wind:** {info.wind_speed:g} km/h",
            "",
            "**Upcoming days:**",
        ]
    lines.extend(f"- **{day.date}**: {day.condition} ({day.max:g}° / {day.min:g}°)" for day in info.forecast)
    return "\n".join(lines)
