"""Four-stage weather analysis for a single tracked city.

The stages run in a fixed order, each one reading the original input and
the outputs of the stages before it:

1. ``analyze_current_weather`` asks the language model for a short summary.
2. ``analyze_forecast`` asks it for an outlook over the next five days.
3. ``generate_alerts`` derives severity-tagged alerts from fixed rules.
4. ``calculate_risk_score`` turns temperature, condition and alerts into
   a 0-100 score with a label.

Every stage returns only the fields it produces; ``run_weather_analysis``
merges them into a fresh copy of the state. A language model failure
raises ``AnalysisError`` and no partial result is returned.
"""

import logging

from openai import AsyncAzureOpenAI
from pydantic import BaseModel, ConfigDict

from weather_dashboard.llm import complete
from weather_dashboard.models import Alert, CurrentWeather, ForecastDay, RiskScore, WeatherSnapshot
from weather_dashboard.prompts import CURRENT_WEATHER_PROMPT, FORECAST_PROMPT, NO_FORECAST_MESSAGE
from weather_dashboard.weather import FORECAST_DAYS, build_forecast_days, current_weather

ANALYSIS_TEMPERATURE = 0.3

logger = logging.getLogger(__name__)


class AnalysisState(BaseModel):
    model_config = ConfigDict(frozen=True)

    city: str
    country: str = ""
    current: CurrentWeather
    forecast: list[ForecastDay] = []
    history: list[WeatherSnapshot] = []

    summary: str = ""
    prediction: str = ""
    alerts: list[Alert] = []
    risk_score: RiskScore | None = None


def _or_na(value) -> str:
    return "N/A" if value is None or value == "" else str(value)


def analysis_input(city: str, country: str, data: dict, history: list[dict]) -> AnalysisState:
    """Build the initial state from a provider response and stored history."""
    return AnalysisState(
        city=city,
        country=country or "",
        current=current_weather(data["currentConditions"]),
        forecast=build_forecast_days(data.get("days") or []),
        history=[WeatherSnapshot.model_validate(entry) for entry in history],
    )


# ── Stages ───────────────────────────────────────────────────────────────────

async def analyze_current_weather(state: AnalysisState, chat_client: AsyncAzureOpenAI) -> dict:
    current = state.current
    prompt = CURRENT_WEATHER_PROMPT.format(
        city=state.city or "Unknown",
        country=state.country,
        temperature=_or_na(current.temperature),
        feels_like=_or_na(current.feels_like),
        condition=_or_na(current.description),
        humidity=_or_na(current.humidity),
        wind_speed=_or_na(current.wind_speed),
    )
    summary = await complete(
        chat_client,
        [{"role": "user", "content": prompt}],
        temperature=ANALYSIS_TEMPERATURE,
        label="current weather",
    )
    return {"summary": summary}


async def analyze_forecast(state: AnalysisState, chat_client: AsyncAzureOpenAI) -> dict:
    if not state.forecast:
        return {"prediction": NO_FORECAST_MESSAGE}

    forecast_text = "\n".join(
        f"{day.date}: High {_or_na(day.max_temp)}°C / Low {_or_na(day.min_temp)}°C, {day.description}"
        for day in state.forecast[:FORECAST_DAYS]
    )
    prediction = await complete(
        chat_client,
        [{"role": "user", "content": FORECAST_PROMPT.format(forecast=forecast_text)}],
        temperature=ANALYSIS_TEMPERATURE,
        label="forecast",
    )
    return {"prediction": prediction}


def generate_alerts(state: AnalysisState) -> dict:
    temp = state.current.temperature
    condition = (state.current.description or "").lower()
    alerts = []

    if temp is not None:
        if temp >= 38:
            alerts.append(Alert(type="danger", message="⚠ Extreme heat detected. Stay indoors and hydrate."))
        elif temp >= 33:
            alerts.append(Alert(type="warning", message="🌡 High temperature. Avoid prolonged sun exposure."))
        elif temp <= 0:
            alerts.append(Alert(type="danger", message="🧊 Freezing conditions. Risk of ice on roads."))
        elif temp <= 5:
            alerts.append(Alert(type="warning", message="🧣 Very cold weather. Dress in layers."))

    if "thunder" in condition or "storm" in condition:
        alerts.append(Alert(type="danger", message="⛈ Thunderstorm alert. Avoid open areas and tall structures."))
    if "rain" in condition or "drizzle" in condition:
        alerts.append(Alert(type="info", message="🌧 Rain expected. Carry an umbrella."))
    if "snow" in condition or "blizzard" in condition:
        alerts.append(Alert(type="warning", message="❄ Snowfall reported. Drive with caution."))
    if "fog" in condition or "mist" in condition:
        alerts.append(Alert(type="warning", message="🌫 Low visibility due to fog. Slow down while driving."))

    return {"alerts": alerts}


def risk_label(score: int) -> str:
    if score >= 70:
        return "Critical"
    if score >= 40:
        return "High"
    if score >= 20:
        return "Moderate"
    return "Low"


def calculate_risk_score(state: AnalysisState) -> dict:
    temp = state.current.temperature if state.current.temperature is not None else 20
    condition = (state.current.description or "").lower()
    score = 0

    if temp >= 40 or temp <= -5:
        score += 40
    elif temp >= 35 or temp <= 0:
        score += 25
    elif temp >= 30 or temp <= 5:
        score += 10

    if any(keyword in condition for keyword in ("thunder", "storm", "blizzard")):
        score += 35
    elif "rain" in condition or "snow" in condition:
        score += 20
    elif "fog" in condition or "mist" in condition:
        score += 15
    elif "overcast" in condition or "cloud" in condition:
        score += 5

    danger_count = sum(1 for alert in state.alerts if alert.type == "danger")
    score += min(danger_count * 10, 20)

    score = min(score, 100)
    return {"risk_score": RiskScore(score=score, label=risk_label(score))}


# ── Pipeline ─────────────────────────────────────────────────────────────────

async def run_weather_analysis(state: AnalysisState, chat_client: AsyncAzureOpenAI) -> AnalysisState:
    logger.info("Weather analysis started: city=%r", state.city)

    state = state.model_copy(update=await analyze_current_weather(state, chat_client))
    state = state.model_copy(update=await analyze_forecast(state, chat_client))
    state = state.model_copy(update=generate_alerts(state))
    state = state.model_copy(update=calculate_risk_score(state))

    logger.info(
        "Weather analysis finished: city=%r, risk=%s (%s)",
        state.city,
        state.risk_score.score,
        state.risk_score.label,
    )
    return state
