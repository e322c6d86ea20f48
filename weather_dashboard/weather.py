import logging
import math
from urllib.parse import quote

import httpx

from weather_dashboard import config
from weather_dashboard.models import CurrentWeather, ForecastDay

VC_BASE_URL = "https://weather.visualcrossing.com/VisualCrossingWebServices/rest/services/timeline"

FORECAST_DAYS = 5

logger = logging.getLogger(__name__)


class WeatherProviderError(Exception):
    pass


def round_half_up(value) -> int | None:
    """Round .5 towards positive infinity, as the dashboard client does.

    A missing reading stays missing.
    """
    if value is None:
        return None
    return math.floor(value + 0.5)


async def fetch_weather_data(city_name: str) -> dict:
    """Fetch current conditions and daily forecast for a city.

    Raises WeatherProviderError on timeouts, transport errors, non-2xx
    statuses and unparseable bodies.
    """
    url = f"{VC_BASE_URL}/{quote(city_name, safe='')}"
    params = {
        "unitGroup": "metric",
        "key": config.WEATHER_API_KEY,
        "contentType": "json",
        "include": "current,days",
    }

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(url, params=params, timeout=10.0)
            response.raise_for_status()
    except httpx.TimeoutException as exc:
        logger.error("Weather provider timed out for city=%r", city_name)
        raise WeatherProviderError("Weather service timed out.") from exc
    except httpx.HTTPStatusError as exc:
        logger.error(
            "Weather provider HTTP error %s for city=%r",
            exc.response.status_code,
            city_name,
        )
        raise WeatherProviderError("External weather service returned an error.") from exc
    except httpx.RequestError as exc:
        logger.error("Weather provider unreachable for city=%r: %s", city_name, exc)
        raise WeatherProviderError("Weather service is unreachable.") from exc

    try:
        data = response.json()
    except ValueError as exc:
        logger.error("Weather provider returned a non-JSON body for city=%r", city_name)
        raise WeatherProviderError("Weather service returned an invalid response.") from exc

    if not isinstance(data, dict) or not isinstance(data.get("currentConditions"), dict):
        logger.error("Weather provider response missing currentConditions for city=%r", city_name)
        raise WeatherProviderError("Weather service returned an invalid response.")

    return data


def current_weather(current: dict) -> CurrentWeather:
    """Normalise provider currentConditions into the dashboard's shape."""
    return CurrentWeather(
        temperature=round_half_up(current.get("temp")),
        feels_like=round_half_up(current.get("feelslike")),
        description=current.get("conditions"),
        humidity=current.get("humidity"),
        wind_speed=round_half_up(current.get("windspeed")),
        icon=current.get("icon"),
    )


def build_forecast_days(days: list[dict]) -> list[ForecastDay]:
    # days[0] is today
    return [
        ForecastDay(
            date=day.get("datetime", ""),
            min_temp=round_half_up(day.get("tempmin")),
            max_temp=round_half_up(day.get("tempmax")),
            description=day.get("conditions") or "",
            icon=day.get("icon"),
        )
        for day in days[1:FORECAST_DAYS + 1]
    ]


def resolve_location(data: dict, fallback: str) -> tuple[str, str]:
    """Return (display name, country) from the provider's resolvedAddress."""
    resolved = data.get("resolvedAddress")
    if not resolved:
        return fallback, ""
    parts = resolved.split(",")
    return parts[0].strip(), parts[-1].strip()
