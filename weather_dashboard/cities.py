import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from weather_dashboard.db import City, User, fold_city_name
from weather_dashboard.insights import compute_insights, dashboard_alerts
from weather_dashboard.models import (
    CityListResponse,
    CityRecord,
    CityView,
    CurrentWeather,
    WeatherInsights,
    WeatherSnapshot,
)
from weather_dashboard.weather import (
    WeatherProviderError,
    build_forecast_days,
    current_weather,
    fetch_weather_data,
    resolve_location,
)

HISTORY_LIMIT = 10
HISTORY_VIEW = 7

logger = logging.getLogger(__name__)


class CityError(Exception):
    pass


class CityExistsError(CityError):
    pass


class CityLookupError(CityError):
    pass


class CityNotFoundError(CityError):
    pass


# ── Helpers ──────────────────────────────────────────────────────────────────

def find_city_by_name(db: Session, user_id: int, city_name: str) -> City | None:
    return db.scalar(
        select(City).where(
            City.user_id == user_id,
            City.city_key == fold_city_name(city_name),
        )
    )


def _get_owned_city(db: Session, user: User, city_id: int) -> City:
    city = db.scalar(select(City).where(City.id == city_id, City.user_id == user.id))
    if city is None:
        raise CityNotFoundError("City not found")
    return city


def _snapshot(weather: CurrentWeather) -> dict:
    snapshot = WeatherSnapshot(**weather.model_dump(), recorded_at=datetime.now(timezone.utc))
    return snapshot.model_dump(mode="json", by_alias=True)


def _history_view(history: list[dict]) -> list[WeatherSnapshot]:
    """Most recent entries first."""
    recent = list(reversed(history))[:HISTORY_VIEW]
    return [WeatherSnapshot.model_validate(entry) for entry in recent]


def _stored_insights(city: City) -> WeatherInsights | None:
    if not city.weather_insights:
        return None
    return WeatherInsights.model_validate(city.weather_insights)


def city_record(city: City) -> CityRecord:
    return CityRecord(
        id=city.id,
        city_name=city.city_name,
        country=city.country or "",
        is_favorite=city.is_favorite,
        weather_history=[WeatherSnapshot.model_validate(entry) for entry in city.weather_history or []],
        weather_insights=_stored_insights(city),
        created_at=city.created_at,
    )


def _placeholder_view(city: City) -> CityView:
    return CityView(
        id=city.id,
        city_name=city.city_name,
        country=city.country or "",
        is_favorite=city.is_favorite,
        current_weather=CurrentWeather(temperature=None, description="unavailable"),
        forecast=[],
        alerts=[],
        weather_history=_history_view(city.weather_history or []),
        weather_insights=_stored_insights(city),
    )


# ── Operations ───────────────────────────────────────────────────────────────

async def add_city(db: Session, user: User, city_name: str) -> CityRecord:
    city_name = city_name.strip()
    if find_city_by_name(db, user.id, city_name) is not None:
        raise CityExistsError("City already added")

    try:
        data = await fetch_weather_data(city_name)
    except WeatherProviderError as exc:
        logger.warning("Lookup failed while adding city=%r: %s", city_name, exc)
        raise CityLookupError("City not found. Please check the city name.") from exc

    resolved_name, country = resolve_location(data, city_name)
    city = City(
        user_id=user.id,
        city_name=resolved_name,
        country=country,
        is_favorite=False,
        weather_history=[_snapshot(current_weather(data["currentConditions"]))],
    )
    db.add(city)
    try:
        db.commit()
    except IntegrityError as exc:
        # The resolved name can collide even when the typed one did not
        db.rollback()
        raise CityExistsError("City already added") from exc
    db.refresh(city)

    logger.info("User id=%s added city=%r (%s)", user.id, resolved_name, country)
    return city_record(city)


async def refresh_city(db: Session, city: City) -> CityView:
    """Fetch live weather for one city, record it and build its view."""
    data = await fetch_weather_data(city.city_name)
    current = data["currentConditions"]
    days = data.get("days") or []

    weather = current_weather(current)
    insights = compute_insights(current, days)

    history = [*(city.weather_history or []), _snapshot(weather)]
    city.weather_history = history[-HISTORY_LIMIT:]
    city.weather_insights = insights.model_dump(mode="json", by_alias=True)
    db.commit()

    return CityView(
        id=city.id,
        city_name=city.city_name,
        country=city.country or "",
        is_favorite=city.is_favorite,
        current_weather=weather,
        forecast=build_forecast_days(days),
        alerts=dashboard_alerts(current, days),
        weather_history=_history_view(city.weather_history),
        weather_insights=insights,
    )


async def _refresh_or_placeholder(db: Session, city: City) -> CityView:
    placeholder = _placeholder_view(city)
    try:
        return await refresh_city(db, city)
    except Exception:
        # One city's failure must not abort the rest of the listing
        logger.warning(
            "Weather refresh failed for city=%r; serving last known data",
            placeholder.city_name,
            exc_info=True,
        )
        db.rollback()
        return placeholder


async def list_cities(db: Session, user: User) -> CityListResponse:
    cities = db.scalars(
        select(City)
        .where(City.user_id == user.id)
        .order_by(City.created_at.desc(), City.id.desc())
    ).all()

    views = await asyncio.gather(*(_refresh_or_placeholder(db, city) for city in cities))

    return CityListResponse(
        favorites=[view for view in views if view.is_favorite],
        cities=list(views),
    )


def toggle_favorite(db: Session, user: User, city_id: int) -> CityRecord:
    city = _get_owned_city(db, user, city_id)
    city.is_favorite = not city.is_favorite
    db.commit()
    logger.info("User id=%s set favorite=%s on city id=%s", user.id, city.is_favorite, city.id)
    return city_record(city)


def delete_city(db: Session, user: User, city_id: int) -> None:
    city = _get_owned_city(db, user, city_id)
    db.delete(city)
    db.commit()
    logger.info("User id=%s removed city id=%s", user.id, city_id)
