from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Base for payloads exchanged with the dashboard client in camelCase."""

    model_config = ConfigDict(populate_by_name=True)


# ── Auth ──────────────────────────────────────────────────────────────────────

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    token: str
    username: str


class UserProfile(CamelModel):
    id: int
    username: str
    email: str
    created_at: datetime = Field(alias="createdAt")


# ── Weather ───────────────────────────────────────────────────────────────────

class CurrentWeather(CamelModel):
    temperature: int | None = None
    feels_like: int | None = Field(None, alias="feelsLike")
    description: str | None = None
    humidity: int | float | None = None
    wind_speed: int | None = Field(None, alias="windSpeed")
    icon: str | None = None


class WeatherSnapshot(CurrentWeather):
    recorded_at: datetime = Field(alias="recordedAt")


class ForecastDay(CamelModel):
    date: str
    min_temp: int | None = Field(None, alias="minTemp")
    max_temp: int | None = Field(None, alias="maxTemp")
    description: str
    icon: str | None = None


class WeatherInsights(CamelModel):
    summary: str = ""
    prediction: str = ""
    alerts: list[str] = []
    recommendation: str = ""
    last_updated: datetime | None = Field(None, alias="lastUpdated")


class Alert(BaseModel):
    type: Literal["danger", "warning", "info"]
    message: str


# ── Cities ────────────────────────────────────────────────────────────────────

class AddCityRequest(CamelModel):
    city_name: str = Field(..., min_length=1, alias="cityName")


class CityRecord(CamelModel):
    """A tracked city as stored, returned by add and favorite toggling."""

    id: int
    city_name: str = Field(alias="cityName")
    country: str = ""
    is_favorite: bool = Field(alias="isFavorite")
    weather_history: list[WeatherSnapshot] = Field([], alias="weatherHistory")
    weather_insights: WeatherInsights | None = Field(None, alias="weatherInsights")
    created_at: datetime = Field(alias="createdAt")


class CityView(CamelModel):
    """A tracked city as shown on the dashboard, with live weather."""

    id: int
    city_name: str = Field(alias="cityName")
    country: str = ""
    is_favorite: bool = Field(alias="isFavorite")
    current_weather: CurrentWeather = Field(alias="currentWeather")
    forecast: list[ForecastDay] = []
    alerts: list[Alert] = []
    weather_history: list[WeatherSnapshot] = Field([], alias="weatherHistory")
    weather_insights: WeatherInsights | None = Field(None, alias="weatherInsights")


class CityListResponse(BaseModel):
    favorites: list[CityView]
    cities: list[CityView]


class MessageResponse(BaseModel):
    message: str


# ── AI ────────────────────────────────────────────────────────────────────────

class RiskScore(BaseModel):
    score: int = Field(..., ge=0, le=100)
    label: Literal["Low", "Moderate", "High", "Critical"]


class WeatherAnalysisResponse(CamelModel):
    success: bool = True
    city: str
    country: str = ""
    current_weather: CurrentWeather = Field(alias="currentWeather")
    ai_summary: str = Field(alias="aiSummary")
    ai_prediction: str = Field(alias="aiPrediction")
    ai_alerts: list[Alert] = Field(alias="aiAlerts")
    risk_score: RiskScore = Field(alias="riskScore")


class ChatInsights(BaseModel):
    prediction: str | None = None
    alerts: list[str] = []
    recommendation: str | None = None


class ChatCity(CamelModel):
    name: str
    country: str | None = None
    temp: int | float | None = None
    condition: str | None = None
    humidity: int | float | None = None
    wind_speed: int | float | None = Field(None, alias="windSpeed")
    insights: ChatInsights | None = None


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    cities: list[ChatCity] = []


class ChatResponse(BaseModel):
    reply: str


class HealthResponse(BaseModel):
    status: str
    model: str
    weather_api_key_configured: bool
